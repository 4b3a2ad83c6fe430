"""
Chunking strategies for repodex.

- LineChunker: line-bounded chunks under a character budget
"""

from .base import ChunkStrategy
from .line import LineChunker

__all__ = [
    "ChunkStrategy",
    "LineChunker",
]
