"""
Storage backends for repodex.

- SQLiteStorage: persistent single-file store
- MemoryStorage: in-memory store with the same semantics
"""

from .base import Storage
from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = [
    "Storage",
    "MemoryStorage",
    "SQLiteStorage",
]
