"""
The repository index engine.

RepositoryIndex owns one storage connection and wires the pipeline
together: scanner -> change detector -> chunker -> embedding client ->
storage. Full scans and watcher-driven updates go through the same
per-file path, and writes for one path are serialized by a per-path lock.
"""

import functools
import logging
import os
import threading
import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from .change_detector import ChangeDetector
from .chunkers import ChunkStrategy, LineChunker
from .config import Config
from .embeddings import EmbeddingClient
from .exceptions import FileReadError, IndexClosedError, WatcherError
from .models import (
    ChunkRecord,
    FileEvent,
    FileEventType,
    FileRecord,
    IndexStats,
    RepositoryIndexResult,
    SearchResult,
)
from .progress import ProgressEvent, ProgressReporter
from .scanner import DirectoryScanner
from .search import SearchEngine
from .storage import SQLiteStorage, Storage
from .utils import detect_language
from .watcher import IncrementalUpdater, WatchdogWatcher, Watcher

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class IndexOutcome(str, Enum):
    INDEXED = "indexed"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"
    OVERSIZE = "oversize"
    FAILED = "failed"


class RepositoryIndex:
    """
    Searchable semantic index of a codebase.

    Every collaborator can be injected, so tests can run several isolated
    instances against in-memory storage and fake watchers.

    Example:
        with RepositoryIndex(Config(project_root)) as index:
            index.index_repository(project_root)
            results = index.search_similar("parse config file", top_k=5)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        storage: Optional[Storage] = None,
        embedder: Optional[EmbeddingClient] = None,
        scanner: Optional[DirectoryScanner] = None,
        chunker: Optional[ChunkStrategy] = None,
        watcher_factory: Optional[Callable[[], Watcher]] = None,
    ):
        """
        Args:
            config: Configuration (defaults to the current directory's config)
            storage: Storage backend (defaults to SQLiteStorage at config store.path)
            embedder: Embedding client (defaults to the configured provider)
            scanner: Directory scanner (defaults to the [indexer] rules)
            chunker: Chunk strategy (defaults to LineChunker with max_chunk_size)
            watcher_factory: Creates the Watcher used by start_file_watching
        """
        self.config = config or Config()
        self._owns_embedder = embedder is None
        self._embedder_closed = False
        self.embedder = embedder or EmbeddingClient.from_config(self.config)
        self.storage = storage
        self.scanner = scanner or DirectoryScanner.from_config(self.config)
        self.chunker = chunker or LineChunker(
            max_chunk_size=self.config.get("indexer", "max_chunk_size", default=1000)
        )
        self.watcher_factory = watcher_factory or (lambda: WatchdogWatcher(self.scanner))

        # Last root given to index_repository; index_file matches ignore rules against it
        self.root: Optional[Path] = None
        self._change_detector: Optional[ChangeDetector] = None
        self._search_engine: Optional[SearchEngine] = None
        # path -> [lock, holders]; entries are dropped when the last holder leaves
        self._path_locks: dict[str, list] = {}
        self._path_locks_guard = threading.Lock()
        self._watcher: Optional[Watcher] = None
        self._updater: Optional[IncrementalUpdater] = None

    # Lifecycle

    def open(self) -> "RepositoryIndex":
        """Open the storage and prepare the pipeline. A closed index can be reopened."""
        if self._embedder_closed:
            self.embedder = EmbeddingClient.from_config(self.config)
            self._embedder_closed = False
        # Fixes the vector size up front so fallback vectors never need the provider
        dimension = self.embedder.dimension
        if self.storage is None:
            self.storage = SQLiteStorage(self.config.store_path, dimension=dimension)
        self.storage.open()
        self._change_detector = ChangeDetector(self.storage)
        self._search_engine = SearchEngine(self.storage, self.embedder)
        return self

    def close(self) -> None:
        """Stop watching and close the storage."""
        self.stop_file_watching()
        if self.storage is not None:
            self.storage.close()
        if self._owns_embedder and not self._embedder_closed:
            self.embedder.close()
            self._embedder_closed = True

    @property
    def is_open(self) -> bool:
        return self.storage is not None and self.storage.is_open

    def __enter__(self) -> "RepositoryIndex":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self) -> Storage:
        if not self.is_open:
            raise IndexClosedError("Repository index is not open")
        return self.storage

    # Indexing

    def index_file(self, path: PathLike, content: Optional[str] = None, force: bool = False) -> bool:
        """
        Index a single file if its content changed.

        Args:
            path: File to index
            content: Already-read file text; read from disk when None
            force: Re-index even if the content hash matches

        Returns:
            True if the file is indexed or already up to date, False if it is
            not an indexable file or could not be read

        Raises:
            StoreError: If writing to the store fails (prior state is kept)
        """
        outcome = self._index_path(Path(path), content=content, force=force)
        return outcome in (IndexOutcome.INDEXED, IndexOutcome.UNCHANGED)

    def index_repository(
        self,
        root: PathLike,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> RepositoryIndexResult:
        """
        Index every candidate file under root.

        Failures are isolated per file and counted in failed_files.
        Cancellation is checked between files. The scan is collected up
        front so total_files is known before the first file is indexed.

        Args:
            root: Repository root directory
            force: Re-index files even when unchanged
            cancel_event: Set it to stop the scan after the current file
            progress_callback: Optional callback(ProgressEvent) per file

        Returns:
            RepositoryIndexResult with per-outcome counts
        """
        self._ensure_open()
        root = Path(root).resolve()
        if not root.is_dir():
            raise ValueError(f"Path is not a directory: {root}")
        self.root = root

        start_time = time.monotonic()
        logger.info(f"Starting indexing of: {root}")

        files = list(self.scanner.scan(root))
        result = RepositoryIndexResult(total_files=len(files))
        reporter = ProgressReporter(len(files), callback=progress_callback) if progress_callback else None

        for file_path in files:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Indexing cancelled")
                result.cancelled = True
                break

            try:
                outcome = self._index_path(file_path, force=force, root=root)
            except Exception as e:
                logger.error(f"Failed to index {file_path}: {e}")
                outcome = IndexOutcome.FAILED

            if outcome == IndexOutcome.INDEXED:
                result.indexed_files += 1
            elif outcome == IndexOutcome.FAILED:
                result.failed_files += 1
            else:
                result.skipped_files += 1

            if reporter:
                reporter.update(str(file_path), outcome.value)

        if not result.cancelled and self.config.get("indexer", "cleanup_deleted", default=True):
            result.removed_files = self._cleanup_deleted_files(root, files)

        result.duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            f"Indexing complete: {result.indexed_files} indexed, {result.skipped_files} skipped, "
            f"{result.failed_files} failed, {result.removed_files} removed ({result.duration_ms} ms)"
        )
        return result

    def remove_file(self, path: PathLike) -> bool:
        """
        Delete a file's record and, by cascade, its chunks and symbols.

        Returns:
            True if the file was indexed
        """
        storage = self._ensure_open()
        key = self._key(path)
        with self._path_lock(key):
            deleted = storage.delete_file(key)
        if deleted:
            logger.info(f"Removed from index: {key}")
        return deleted

    def _index_path(
        self,
        path: Path,
        content: Optional[str] = None,
        force: bool = False,
        root: Optional[Path] = None,
    ) -> IndexOutcome:
        storage = self._ensure_open()
        path = path.resolve()
        key = str(path)

        if not self.scanner.is_candidate(path, root or self.root):
            logger.debug(f"Not an indexable file: {key}")
            return IndexOutcome.IGNORED
        if content is None and self.scanner.exceeds_size_limit(path):
            return IndexOutcome.OVERSIZE

        with self._path_lock(key):
            try:
                data, text = self._read(path, content)
                mtime, size = self._stat(path, content, data)
            except FileReadError as e:
                logger.warning(str(e))
                return IndexOutcome.FAILED

            decision = self._change_detector.check(key, data, force=force)
            if not decision.should_reindex:
                return IndexOutcome.UNCHANGED

            chunks = self.chunker.chunk(text, key)
            embeddings = self.embedder.embed_batch([chunk.content for chunk in chunks])

            records = [
                ChunkRecord(
                    chunk_index=i,
                    content=chunk.content,
                    start_line=chunk.start_line,
                    end_line=chunk.end_line,
                    embedding=embedding.vector,
                    embedding_state=embedding.state,
                )
                for i, (chunk, embedding) in enumerate(zip(chunks, embeddings))
            ]
            record = FileRecord(
                path=key,
                content_hash=decision.content_hash,
                last_modified=mtime,
                file_size=size,
                language=detect_language(key),
            )
            storage.replace_file(record, records)

        fallbacks = sum(1 for e in embeddings if e.is_fallback)
        if fallbacks:
            logger.warning(f"Indexed: {key} ({len(records)} chunks, {fallbacks} without embeddings)")
        else:
            logger.info(f"Indexed: {key} ({len(records)} chunks)")
        return IndexOutcome.INDEXED

    @staticmethod
    def _read(path: Path, content: Optional[str]) -> tuple[bytes, str]:
        if content is not None:
            return content.encode("utf-8"), content
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileReadError(str(path), e.strerror or str(e)) from e
        return data, data.decode("utf-8", errors="replace")

    @staticmethod
    def _stat(path: Path, content: Optional[str], data: bytes) -> tuple[float, int]:
        try:
            stat = path.stat()
        except OSError as e:
            if content is None:
                raise FileReadError(str(path), e.strerror or str(e)) from e
            return time.time(), len(data)
        return stat.st_mtime, stat.st_size if content is None else len(data)

    def _cleanup_deleted_files(self, root: Path, current_files: list[Path]) -> int:
        """Remove records under root for files the scan no longer found."""
        prefix = str(root) + os.sep
        current = {str(f) for f in current_files}
        removed = 0
        for record in self.storage.list_files():
            if record.path.startswith(prefix) and record.path not in current:
                if self.remove_file(record.path):
                    removed += 1
        if removed:
            logger.info(f"Cleaned up {removed} deleted files")
        return removed

    @contextmanager
    def _path_lock(self, key: str) -> Iterator[None]:
        with self._path_locks_guard:
            entry = self._path_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._path_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._path_locks[key]

    @staticmethod
    def _key(path: PathLike) -> str:
        return str(Path(path).resolve())

    # Search and lookups

    def search_similar(self, query: str, top_k: Optional[int] = None) -> list[SearchResult]:
        """
        Rank all stored chunks by cosine similarity to query.

        Args:
            query: Query text
            top_k: Maximum number of results (defaults to search.default_limit)

        Returns:
            Results sorted by descending score
        """
        self._ensure_open()
        if top_k is None:
            top_k = self.config.get("search", "default_limit", default=5)
        return self._search_engine.search_similar(query, top_k)

    def get_file_info(self, path: PathLike) -> Optional[FileRecord]:
        return self._ensure_open().get_file(self._key(path))

    def list_indexed_files(self) -> list[FileRecord]:
        return self._ensure_open().list_files()

    def get_file_chunks(self, path: PathLike) -> list[ChunkRecord]:
        return self._ensure_open().get_chunks(self._key(path))

    # Watching

    def start_file_watching(
        self,
        root: PathLike,
        on_change: Optional[Callable[[FileEvent], None]] = None,
    ) -> None:
        """
        Keep the index current with filesystem changes under root.

        Any previous watch is stopped first.

        Args:
            root: Directory to watch
            on_change: Optional callback invoked after each applied event

        Raises:
            WatcherError: If the subscription cannot be established
        """
        self._ensure_open()
        if self._watcher is not None:
            self.stop_file_watching()

        root = Path(root).resolve()

        updater = IncrementalUpdater(
            functools.partial(self._apply_file_event, root=root),
            debounce_seconds=self.config.get("watcher", "debounce_seconds", default=0.5),
            on_change=on_change,
        )
        updater.start()

        watcher = self.watcher_factory()
        try:
            watcher.start(root, updater.submit)
        except WatcherError as e:
            logger.error(f"Could not start file watching: {e}")
            updater.stop()
            raise

        self._watcher = watcher
        self._updater = updater
        logger.info(f"Started watching: {root}")

    def stop_file_watching(self) -> None:
        """Stop the watcher and apply the events it already queued."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._updater is not None:
            self._updater.stop()
            self._updater = None
            logger.info("Stopped file watching")

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.is_running

    def wait_for_pending_events(self) -> None:
        """Block until the watcher's queued events have been applied."""
        if self._updater is not None:
            self._updater.wait_idle()

    def _apply_file_event(self, event: FileEvent, root: Path) -> None:
        path = Path(event.path)

        if event.is_directory:
            if event.kind == FileEventType.REMOVED:
                self._remove_directory(path)
            elif event.kind == FileEventType.ADDED and path.is_dir():
                for file_path in self.scanner.scan(path):
                    self._index_path(file_path, root=root)
            return

        if event.kind == FileEventType.REMOVED or not path.exists():
            self.remove_file(path)
        else:
            self._index_path(path, root=root)

    def _remove_directory(self, path: Path) -> None:
        prefix = self._key(path) + os.sep
        for record in self.storage.list_files():
            if record.path.startswith(prefix):
                self.remove_file(record.path)

    # Maintenance

    def get_index_stats(self) -> IndexStats:
        return self._ensure_open().stats()

    def clear_index(self) -> None:
        """Delete every file, chunk, symbol and relationship."""
        self._ensure_open().clear()

    def vacuum_index(self) -> None:
        """Reclaim storage freed by deletions."""
        self._ensure_open().vacuum()

    def __repr__(self) -> str:
        return f"RepositoryIndex(storage={self.storage!r}, embedder={self.embedder!r})"
