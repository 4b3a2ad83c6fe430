"""
Data models for repodex.

Defines Pydantic models for file and chunk records, embedding results,
search results, file events and indexing statistics.
"""

import time
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class EmbeddingState(str, Enum):
    """Whether a chunk vector came from the provider or from the zero-vector fallback."""
    EMBEDDED = "embedded"
    FALLBACK = "fallback"


class FileEventType(str, Enum):
    """Kind of filesystem change delivered by a watcher."""
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class TextChunk(BaseModel):
    """A line-bounded slice of a file produced by a chunker."""
    content: str
    start_line: int = Field(description="First line of the chunk (1-indexed)", ge=1)
    end_line: int = Field(description="Last line of the chunk (1-indexed, inclusive)", ge=1)


class EmbeddingResult(BaseModel):
    """An embedding vector tagged with how it was produced."""
    vector: list[float]
    state: EmbeddingState = EmbeddingState.EMBEDDED

    @property
    def is_fallback(self) -> bool:
        return self.state == EmbeddingState.FALLBACK


class FileRecord(BaseModel):
    """
    An indexed file.

    Replaced wholesale whenever the content hash changes.
    """
    id: Optional[int] = None
    path: str = Field(description="Absolute file path, unique key")
    content_hash: str = Field(description="SHA256 hash of the file bytes")
    last_modified: float = Field(description="File mtime as a Unix timestamp")
    file_size: int = Field(description="File size in bytes", ge=0)
    language: Optional[str] = Field(default=None, description="Detected language")
    indexed_at: float = Field(default_factory=time.time, description="Unix timestamp when indexed")


class ChunkRecord(BaseModel):
    """A stored chunk of a file together with its embedding."""
    id: Optional[int] = None
    file_id: Optional[int] = None
    chunk_index: int = Field(description="Position of the chunk within its file (0-based)", ge=0)
    content: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    embedding: list[float] = Field(default_factory=list)
    embedding_state: EmbeddingState = EmbeddingState.EMBEDDED


class SymbolRecord(BaseModel):
    """A named symbol extracted from a file by a separate analysis pass."""
    id: Optional[int] = None
    file_id: Optional[int] = None
    name: str
    kind: str = Field(description="function, class, variable, import or export")
    line_start: int = Field(ge=1)
    line_end: Optional[int] = None
    signature: Optional[str] = None
    documentation: Optional[str] = None


class RelationshipRecord(BaseModel):
    """A typed edge between symbols (calls, imports, extends, implements, references)."""
    id: Optional[int] = None
    source_symbol_id: int
    target_symbol_id: Optional[int] = None
    target_file_path: Optional[str] = None
    relationship_type: str
    line_number: Optional[int] = None


class SearchResult(BaseModel):
    """A chunk matched by a similarity query."""
    path: str
    content: str
    score: float = Field(description="Cosine similarity (-1 to 1)", ge=-1.0, le=1.0)
    start_line: int
    end_line: int
    embedding_state: EmbeddingState = EmbeddingState.EMBEDDED

    def __str__(self) -> str:
        """Format search result for display."""
        return (
            f"{self.path}:{self.start_line}-{self.end_line} "
            f"({self.score:.3f})\n{self.content[:100]}..."
        )


class FileEvent(BaseModel):
    """A filesystem change for a single path."""
    kind: FileEventType
    path: str
    is_directory: bool = False
    timestamp: float = Field(default_factory=time.time)


class IndexStats(BaseModel):
    """Statistics about the index contents."""
    total_files: int = 0
    total_chunks: int = 0
    total_symbols: int = 0
    total_relationships: int = 0
    total_size_bytes: int = 0
    fallback_chunks: int = 0
    languages: dict[str, int] = Field(default_factory=dict)
    last_indexed: Optional[float] = None
    database_path: Optional[str] = None

    def __str__(self) -> str:
        """Format stats for display."""
        lines = [
            f"Total files: {self.total_files}",
            f"Total chunks: {self.total_chunks}",
            f"Total symbols: {self.total_symbols}",
            f"Indexed size: {self.total_size_bytes / 1024 / 1024:.2f} MB",
        ]
        if self.fallback_chunks:
            lines.append(f"Chunks without embeddings: {self.fallback_chunks}")
        if self.languages:
            lines.append("Languages:")
            for lang, count in sorted(self.languages.items(), key=lambda x: -x[1]):
                lines.append(f"  {lang}: {count}")
        if self.last_indexed:
            import datetime
            dt = datetime.datetime.fromtimestamp(self.last_indexed)
            lines.append(f"Last indexed: {dt.strftime('%Y-%m-%d %H:%M:%S')}")
        if self.database_path:
            lines.append(f"Database: {self.database_path}")
        return "\n".join(lines)


class RepositoryIndexResult(BaseModel):
    """Outcome of a full repository scan."""
    total_files: int = 0
    indexed_files: int = 0
    failed_files: int = 0
    skipped_files: int = 0
    removed_files: int = 0
    duration_ms: int = 0
    cancelled: bool = False

    def __str__(self) -> str:
        lines = [
            f"Files scanned: {self.total_files}",
            f"Indexed: {self.indexed_files}",
            f"Skipped: {self.skipped_files}",
            f"Failed: {self.failed_files}",
        ]
        if self.removed_files:
            lines.append(f"Removed: {self.removed_files}")
        lines.append(f"Duration: {self.duration_ms} ms")
        if self.cancelled:
            lines.append("Scan was cancelled before completion")
        return "\n".join(lines)
