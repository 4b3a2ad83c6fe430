"""
Content-addressed change detection for repodex.

Decides whether a file must be re-indexed by comparing the SHA256 hash of
its bytes with the hash recorded in the store.
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import FileRecord
from .storage.base import Storage

logger = logging.getLogger(__name__)


def compute_content_hash(data: bytes) -> str:
    """
    Compute the SHA256 hash of file content.

    Args:
        data: Raw file bytes

    Returns:
        Hex digest of the hash
    """
    return hashlib.sha256(data).hexdigest()


class ChangeAction(str, Enum):
    SKIP = "skip"
    REINDEX = "reindex"


@dataclass
class ChangeDecision:
    """
    Result of comparing a file against its stored record.

    Attributes:
        action: SKIP when the stored hash matches, REINDEX otherwise
        content_hash: Hash of the current content
        existing: The stored record, if any
    """
    action: ChangeAction
    content_hash: str
    existing: Optional[FileRecord] = None

    @property
    def should_reindex(self) -> bool:
        return self.action == ChangeAction.REINDEX


class ChangeDetector:
    """Gates the indexing pipeline on content changes."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def check(self, path: str, data: bytes, force: bool = False) -> ChangeDecision:
        """
        Decide whether path needs re-indexing.

        Args:
            path: Key of the file in the store
            data: Current file bytes
            force: Re-index even when the hash matches

        Returns:
            ChangeDecision for the file
        """
        content_hash = compute_content_hash(data)
        existing = self.storage.get_file(path)

        if existing is not None and existing.content_hash == content_hash and not force:
            logger.debug(f"Skipping unchanged file: {path}")
            return ChangeDecision(ChangeAction.SKIP, content_hash, existing)

        return ChangeDecision(ChangeAction.REINDEX, content_hash, existing)
