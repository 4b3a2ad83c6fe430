"""
In-memory storage backend for repodex.

Keeps the same semantics as SQLiteStorage (atomic replace, cascading
delete) without touching disk. Useful for tests and throwaway indexes.
"""

import logging
import threading
from typing import Iterator, Optional

from .base import Storage
from ..exceptions import IndexClosedError, StoreError
from ..models import (
    ChunkRecord,
    EmbeddingState,
    FileRecord,
    IndexStats,
    RelationshipRecord,
    SymbolRecord,
)

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    """Dictionary-backed store guarded by a single lock."""

    def __init__(self, dimension: int):
        super().__init__(dimension)
        self._lock = threading.RLock()
        self._open = False
        self._reset()

    def _reset(self) -> None:
        self._files: dict[str, FileRecord] = {}
        self._chunks: dict[int, list[ChunkRecord]] = {}
        self._symbols: dict[int, SymbolRecord] = {}
        self._relationships: dict[int, RelationshipRecord] = {}
        self._next_file_id = 1
        self._next_chunk_id = 1
        self._next_symbol_id = 1
        self._next_relationship_id = 1

    @property
    def location(self) -> Optional[str]:
        return ":memory:"

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    def _ensure_open(self) -> None:
        if not self._open:
            raise IndexClosedError("Memory store is not open")

    def get_file(self, path: str) -> Optional[FileRecord]:
        with self._lock:
            self._ensure_open()
            return self._files.get(path)

    def list_files(self) -> list[FileRecord]:
        with self._lock:
            self._ensure_open()
            return [self._files[p] for p in sorted(self._files)]

    def replace_file(self, record: FileRecord, chunks: list[ChunkRecord]) -> FileRecord:
        self._check_dimensions(chunks)
        with self._lock:
            self._ensure_open()
            # Build the new rows before touching existing state
            file_id = self._next_file_id
            stored = record.model_copy(update={"id": file_id})
            new_chunks = []
            chunk_id = self._next_chunk_id
            for chunk in chunks:
                new_chunks.append(chunk.model_copy(update={"id": chunk_id, "file_id": file_id}))
                chunk_id += 1

            self._delete_locked(record.path)
            self._files[record.path] = stored
            self._chunks[file_id] = new_chunks
            self._next_file_id = file_id + 1
            self._next_chunk_id = chunk_id
        return stored

    def delete_file(self, path: str) -> bool:
        with self._lock:
            self._ensure_open()
            return self._delete_locked(path)

    def _delete_locked(self, path: str) -> bool:
        record = self._files.pop(path, None)
        if record is None:
            return False
        self._chunks.pop(record.id, None)

        removed = {sid for sid, s in self._symbols.items() if s.file_id == record.id}
        for sid in removed:
            del self._symbols[sid]
        for rid, rel in list(self._relationships.items()):
            if rel.source_symbol_id in removed:
                del self._relationships[rid]
            elif rel.target_symbol_id in removed:
                self._relationships[rid] = rel.model_copy(update={"target_symbol_id": None})
        return True

    def get_chunks(self, path: str) -> list[ChunkRecord]:
        with self._lock:
            self._ensure_open()
            record = self._files.get(path)
            if record is None:
                return []
            return list(self._chunks.get(record.id, []))

    def iter_chunks(self) -> Iterator[tuple[str, ChunkRecord]]:
        with self._lock:
            self._ensure_open()
            snapshot = [
                (path, chunk)
                for path in sorted(self._files)
                for chunk in self._chunks.get(self._files[path].id, [])
            ]
        yield from snapshot

    def add_symbols(self, path: str, symbols: list[SymbolRecord]) -> list[SymbolRecord]:
        with self._lock:
            self._ensure_open()
            record = self._files.get(path)
            if record is None:
                raise StoreError(f"File is not indexed: {path}")
            stored = []
            for symbol in symbols:
                new = symbol.model_copy(update={"id": self._next_symbol_id, "file_id": record.id})
                self._symbols[new.id] = new
                self._next_symbol_id += 1
                stored.append(new)
            return stored

    def get_symbols(self, path: str) -> list[SymbolRecord]:
        with self._lock:
            self._ensure_open()
            record = self._files.get(path)
            if record is None:
                return []
            symbols = [s for s in self._symbols.values() if s.file_id == record.id]
            return sorted(symbols, key=lambda s: (s.line_start, s.id))

    def add_relationships(self, relationships: list[RelationshipRecord]) -> list[RelationshipRecord]:
        with self._lock:
            self._ensure_open()
            for rel in relationships:
                if rel.source_symbol_id not in self._symbols:
                    raise StoreError(f"Unknown source symbol: {rel.source_symbol_id}")
                if rel.target_symbol_id is not None and rel.target_symbol_id not in self._symbols:
                    raise StoreError(f"Unknown target symbol: {rel.target_symbol_id}")
            stored = []
            for rel in relationships:
                new = rel.model_copy(update={"id": self._next_relationship_id})
                self._relationships[new.id] = new
                self._next_relationship_id += 1
                stored.append(new)
            return stored

    def list_relationships(self) -> list[RelationshipRecord]:
        with self._lock:
            self._ensure_open()
            return [self._relationships[rid] for rid in sorted(self._relationships)]

    def stats(self) -> IndexStats:
        with self._lock:
            self._ensure_open()
            chunks = [c for file_chunks in self._chunks.values() for c in file_chunks]
            languages: dict[str, int] = {}
            for record in self._files.values():
                if record.language:
                    languages[record.language] = languages.get(record.language, 0) + 1
            return IndexStats(
                total_files=len(self._files),
                total_chunks=len(chunks),
                total_symbols=len(self._symbols),
                total_relationships=len(self._relationships),
                total_size_bytes=sum(r.file_size for r in self._files.values()),
                fallback_chunks=sum(1 for c in chunks if c.embedding_state == EmbeddingState.FALLBACK),
                languages=languages,
                last_indexed=max((r.indexed_at for r in self._files.values()), default=None),
                database_path=self.location,
            )

    def clear(self) -> None:
        with self._lock:
            self._ensure_open()
            self._reset()
        logger.info("Index cleared")

    def vacuum(self) -> None:
        with self._lock:
            self._ensure_open()
        logger.debug("Vacuum is a no-op for the memory store")

    def __repr__(self) -> str:
        return f"MemoryStorage(files={len(self._files)})"
