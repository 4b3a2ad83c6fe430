"""
repodex - Semantic search index for a local code repository.

This package provides:
- Incremental indexing with content-hash change detection
- Line-based chunking and pluggable embedding providers (Ollama, sentence-transformers)
- SQLite storage with cosine similarity search
- File watching that keeps the index current
"""

__version__ = "0.1.0"

from .models import (
    ChunkRecord,
    EmbeddingResult,
    EmbeddingState,
    FileEvent,
    FileEventType,
    FileRecord,
    IndexStats,
    RelationshipRecord,
    RepositoryIndexResult,
    SearchResult,
    SymbolRecord,
    TextChunk,
)
from .config import Config
from .exceptions import (
    EmbeddingProviderError,
    FileReadError,
    IndexClosedError,
    RepodexError,
    StoreError,
    WatcherError,
)
from .scanner import DirectoryScanner
from .change_detector import ChangeDetector
from .chunkers import ChunkStrategy, LineChunker
from .embeddings import (
    EmbeddingClient,
    EmbeddingProvider,
    HashingProvider,
    OllamaProvider,
    SentenceTransformerProvider,
)
from .storage import MemoryStorage, SQLiteStorage, Storage
from .search import SearchEngine
from .watcher import IncrementalUpdater, WatchdogWatcher, Watcher
from .engine import RepositoryIndex

__all__ = [
    # Models
    "ChunkRecord",
    "EmbeddingResult",
    "EmbeddingState",
    "FileEvent",
    "FileEventType",
    "FileRecord",
    "IndexStats",
    "RelationshipRecord",
    "RepositoryIndexResult",
    "SearchResult",
    "SymbolRecord",
    "TextChunk",
    # Errors
    "RepodexError",
    "FileReadError",
    "EmbeddingProviderError",
    "StoreError",
    "IndexClosedError",
    "WatcherError",
    # Core components
    "Config",
    "DirectoryScanner",
    "ChangeDetector",
    "EmbeddingClient",
    "EmbeddingProvider",
    "OllamaProvider",
    "SentenceTransformerProvider",
    "HashingProvider",
    "Storage",
    "SQLiteStorage",
    "MemoryStorage",
    "SearchEngine",
    "Watcher",
    "WatchdogWatcher",
    "IncrementalUpdater",
    "RepositoryIndex",
    # Chunkers
    "ChunkStrategy",
    "LineChunker",
]
