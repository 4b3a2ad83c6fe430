"""
Storage interface for repodex.

A Storage owns every persisted row: files, their chunks (with embeddings)
and the optional symbol and relationship tables. Implementations must make
replace_file atomic and cascade file deletion to chunks and symbols.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from ..exceptions import StoreError
from ..models import (
    ChunkRecord,
    FileRecord,
    IndexStats,
    RelationshipRecord,
    SymbolRecord,
)


class Storage(ABC):
    """Abstract persistent store for the repository index."""

    def __init__(self, dimension: int):
        """
        Args:
            dimension: Length of every stored embedding vector
        """
        self.dimension = dimension

    @property
    def location(self) -> Optional[str]:
        """Human-readable location of the store (file path), if any."""
        return None

    @abstractmethod
    def open(self) -> None:
        """Open the store and create the schema if needed."""

    @abstractmethod
    def close(self) -> None:
        """Close the store. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def get_file(self, path: str) -> Optional[FileRecord]:
        """Look up a file record by path."""

    @abstractmethod
    def list_files(self) -> list[FileRecord]:
        """List all file records ordered by path."""

    @abstractmethod
    def replace_file(self, record: FileRecord, chunks: list[ChunkRecord]) -> FileRecord:
        """
        Atomically replace a file and its full chunk set.

        Any previous row for the same path is deleted (cascading to its
        chunks and symbols) and the new row and chunks are inserted in one
        transaction. On failure the prior state is left intact.

        Args:
            record: New file record
            chunks: Complete chunk set for the file, chunk_index 0..n-1

        Returns:
            The stored file record with its id

        Raises:
            StoreError: If the transaction fails or a chunk vector has the wrong dimension
        """

    @abstractmethod
    def delete_file(self, path: str) -> bool:
        """
        Delete a file record and everything that references it.

        Returns:
            True if a record was deleted
        """

    @abstractmethod
    def get_chunks(self, path: str) -> list[ChunkRecord]:
        """Get the chunks of a file ordered by chunk_index."""

    @abstractmethod
    def iter_chunks(self) -> Iterator[tuple[str, ChunkRecord]]:
        """Yield (path, chunk) for every stored chunk."""

    @abstractmethod
    def add_symbols(self, path: str, symbols: list[SymbolRecord]) -> list[SymbolRecord]:
        """
        Attach symbols to an indexed file.

        Raises:
            StoreError: If the file is not indexed
        """

    @abstractmethod
    def get_symbols(self, path: str) -> list[SymbolRecord]:
        """Get the symbols of a file ordered by line."""

    @abstractmethod
    def add_relationships(self, relationships: list[RelationshipRecord]) -> list[RelationshipRecord]:
        """
        Store typed edges between symbols.

        Raises:
            StoreError: If a referenced symbol does not exist
        """

    @abstractmethod
    def list_relationships(self) -> list[RelationshipRecord]:
        pass

    @abstractmethod
    def stats(self) -> IndexStats:
        """Counts and sizes of the stored data."""

    @abstractmethod
    def clear(self) -> None:
        """Delete all rows from every table."""

    @abstractmethod
    def vacuum(self) -> None:
        """Reclaim unused storage."""

    def _check_dimensions(self, chunks: list[ChunkRecord]) -> None:
        for chunk in chunks:
            if len(chunk.embedding) != self.dimension:
                raise StoreError(
                    f"Chunk {chunk.chunk_index} has a {len(chunk.embedding)}-dim embedding, "
                    f"store expects {self.dimension}"
                )
        indexes = [chunk.chunk_index for chunk in chunks]
        if indexes != list(range(len(chunks))):
            raise StoreError(f"Chunk indexes must be contiguous from 0, got {indexes}")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
