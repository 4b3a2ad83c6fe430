"""
SQLite storage backend for repodex.

Persists files, chunks, symbols and relationships in a single database
file. Embeddings are stored as raw float32 byte buffers and reinterpreted
with the store's dimension when read.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union
import numpy as np

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


SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT UNIQUE NOT NULL,
    content_hash TEXT NOT NULL,
    last_modified REAL NOT NULL,
    file_size INTEGER NOT NULL,
    language TEXT,
    indexed_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    start_line INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    embedding BLOB,
    embedding_state TEXT NOT NULL DEFAULT 'embedded',
    UNIQUE(file_id, chunk_index)
);

CREATE TABLE IF NOT EXISTS symbols (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    type TEXT NOT NULL,                 -- function, class, variable, import, export
    line_start INTEGER NOT NULL,
    line_end INTEGER,
    signature TEXT,
    documentation TEXT
);

CREATE TABLE IF NOT EXISTS relationships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_symbol_id INTEGER NOT NULL REFERENCES symbols(id) ON DELETE CASCADE,
    target_symbol_id INTEGER REFERENCES symbols(id) ON DELETE SET NULL,
    target_file_path TEXT,
    relationship_type TEXT NOT NULL,    -- calls, imports, extends, implements, references
    line_number INTEGER
);

CREATE TABLE IF NOT EXISTS index_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_path ON files(path);
CREATE INDEX IF NOT EXISTS idx_chunks_file_id ON chunks(file_id);
CREATE INDEX IF NOT EXISTS idx_symbols_file_id ON symbols(file_id);
CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols(name);
CREATE INDEX IF NOT EXISTS idx_relationships_source ON relationships(source_symbol_id);
"""


def vector_to_blob(vector: list[float]) -> bytes:
    """Encode a vector as a raw float32 byte buffer."""
    return np.asarray(vector, dtype=np.float32).tobytes()


def blob_to_vector(blob: Optional[bytes], dimension: int) -> Optional[list[float]]:
    """
    Decode a raw float32 byte buffer.

    Returns:
        The vector, or None when the buffer does not hold exactly dimension floats
    """
    if blob is None or len(blob) != dimension * 4:
        return None
    return np.frombuffer(blob, dtype=np.float32).tolist()


class SQLiteStorage(Storage):
    """
    Single-file SQLite store.

    One connection is shared by all threads and every statement runs under
    a re-entrant lock, so writes are serialized. The database runs in WAL
    mode with foreign keys enabled for cascading deletes.
    """

    def __init__(self, db_path: Union[str, Path], dimension: int):
        """
        Args:
            db_path: Database file path, or ":memory:"
            dimension: Length of every stored embedding vector
        """
        super().__init__(dimension)
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def location(self) -> Optional[str]:
        return str(self.db_path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            try:
                if isinstance(self.db_path, Path):
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                if isinstance(self.db_path, Path):
                    conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA foreign_keys = ON")
                conn.executescript(SCHEMA)
            except (sqlite3.Error, OSError) as e:
                raise StoreError(f"Failed to open index at {self.db_path}: {e}") from e

            self._conn = conn
            self._check_stored_dimension()
            logger.info(f"Opened index database at {self.db_path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed index database at {self.db_path}")

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements as one transaction under the write lock."""
        with self._lock:
            conn = self._connection()
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"Transaction failed: {e}") from e
            except BaseException:
                conn.rollback()
                raise

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise IndexClosedError("Index database is not open")
        return self._conn

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._connection().execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Query failed: {e}") from e

    def _check_stored_dimension(self) -> None:
        rows = self._query("SELECT value FROM index_meta WHERE key = 'embedding_dimension'")
        if rows and int(rows[0]["value"]) != self.dimension:
            logger.warning(
                f"Index was built with {rows[0]['value']}-dim embeddings but the provider "
                f"produces {self.dimension}; existing chunks will not match until re-indexed "
                f"(run clear to start over)"
            )
            return
        if not rows:
            self._set_stored_dimension()

    def _set_stored_dimension(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO index_meta (key, value) VALUES ('embedding_dimension', ?)",
                (str(self.dimension),),
            )

    def get_file(self, path: str) -> Optional[FileRecord]:
        rows = self._query("SELECT * FROM files WHERE path = ?", (path,))
        return self._file_from_row(rows[0]) if rows else None

    def list_files(self) -> list[FileRecord]:
        return [self._file_from_row(row) for row in self._query("SELECT * FROM files ORDER BY path")]

    def replace_file(self, record: FileRecord, chunks: list[ChunkRecord]) -> FileRecord:
        self._check_dimensions(chunks)

        with self._transaction() as conn:
            conn.execute("DELETE FROM files WHERE path = ?", (record.path,))
            cursor = conn.execute(
                """
                INSERT INTO files (path, content_hash, last_modified, file_size, language, indexed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.path,
                    record.content_hash,
                    record.last_modified,
                    record.file_size,
                    record.language,
                    record.indexed_at,
                ),
            )
            file_id = cursor.lastrowid
            conn.executemany(
                """
                INSERT INTO chunks (file_id, chunk_index, content, start_line, end_line,
                                    embedding, embedding_state)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        file_id,
                        chunk.chunk_index,
                        chunk.content,
                        chunk.start_line,
                        chunk.end_line,
                        vector_to_blob(chunk.embedding),
                        EmbeddingState(chunk.embedding_state).value,
                    )
                    for chunk in chunks
                ],
            )

        logger.debug(f"Stored {record.path} with {len(chunks)} chunks")
        return record.model_copy(update={"id": file_id})

    def delete_file(self, path: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM files WHERE path = ?", (path,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted {path} from index")
        return deleted

    def get_chunks(self, path: str) -> list[ChunkRecord]:
        rows = self._query(
            """
            SELECT c.* FROM chunks c
            JOIN files f ON c.file_id = f.id
            WHERE f.path = ?
            ORDER BY c.chunk_index
            """,
            (path,),
        )
        return [self._chunk_from_row(row) for row in rows]

    def iter_chunks(self) -> Iterator[tuple[str, ChunkRecord]]:
        # Rows are fetched under the lock and yielded after it is released
        rows = self._query(
            """
            SELECT c.*, f.path AS path FROM chunks c
            JOIN files f ON c.file_id = f.id
            ORDER BY f.path, c.chunk_index
            """
        )
        for row in rows:
            yield row["path"], self._chunk_from_row(row)

    def add_symbols(self, path: str, symbols: list[SymbolRecord]) -> list[SymbolRecord]:
        stored = []
        with self._transaction() as conn:
            row = conn.execute("SELECT id FROM files WHERE path = ?", (path,)).fetchone()
            if row is None:
                raise StoreError(f"File is not indexed: {path}")
            for symbol in symbols:
                cursor = conn.execute(
                    """
                    INSERT INTO symbols (file_id, name, type, line_start, line_end, signature, documentation)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        row["id"],
                        symbol.name,
                        symbol.kind,
                        symbol.line_start,
                        symbol.line_end,
                        symbol.signature,
                        symbol.documentation,
                    ),
                )
                stored.append(symbol.model_copy(update={"id": cursor.lastrowid, "file_id": row["id"]}))
        return stored

    def get_symbols(self, path: str) -> list[SymbolRecord]:
        rows = self._query(
            """
            SELECT s.* FROM symbols s
            JOIN files f ON s.file_id = f.id
            WHERE f.path = ?
            ORDER BY s.line_start, s.id
            """,
            (path,),
        )
        return [self._symbol_from_row(row) for row in rows]

    def add_relationships(self, relationships: list[RelationshipRecord]) -> list[RelationshipRecord]:
        stored = []
        with self._transaction() as conn:
            for rel in relationships:
                cursor = conn.execute(
                    """
                    INSERT INTO relationships (source_symbol_id, target_symbol_id, target_file_path,
                                               relationship_type, line_number)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        rel.source_symbol_id,
                        rel.target_symbol_id,
                        rel.target_file_path,
                        rel.relationship_type,
                        rel.line_number,
                    ),
                )
                stored.append(rel.model_copy(update={"id": cursor.lastrowid}))
        return stored

    def list_relationships(self) -> list[RelationshipRecord]:
        rows = self._query("SELECT * FROM relationships ORDER BY id")
        return [
            RelationshipRecord(
                id=row["id"],
                source_symbol_id=row["source_symbol_id"],
                target_symbol_id=row["target_symbol_id"],
                target_file_path=row["target_file_path"],
                relationship_type=row["relationship_type"],
                line_number=row["line_number"],
            )
            for row in rows
        ]

    def stats(self) -> IndexStats:
        with self._lock:
            def scalar(sql: str):
                return self._query(sql)[0][0]

            languages = {
                row["language"]: row["count"]
                for row in self._query(
                    "SELECT language, COUNT(*) AS count FROM files "
                    "WHERE language IS NOT NULL GROUP BY language"
                )
            }
            return IndexStats(
                total_files=scalar("SELECT COUNT(*) FROM files"),
                total_chunks=scalar("SELECT COUNT(*) FROM chunks"),
                total_symbols=scalar("SELECT COUNT(*) FROM symbols"),
                total_relationships=scalar("SELECT COUNT(*) FROM relationships"),
                total_size_bytes=scalar("SELECT COALESCE(SUM(file_size), 0) FROM files"),
                fallback_chunks=scalar("SELECT COUNT(*) FROM chunks WHERE embedding_state = 'fallback'"),
                languages=languages,
                last_indexed=scalar("SELECT MAX(indexed_at) FROM files"),
                database_path=self.location,
            )

    def clear(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM relationships")
            conn.execute("DELETE FROM symbols")
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM files")
            conn.execute(
                "INSERT OR REPLACE INTO index_meta (key, value) VALUES ('embedding_dimension', ?)",
                (str(self.dimension),),
            )
        logger.info("Index cleared")

    def vacuum(self) -> None:
        with self._lock:
            try:
                self._connection().execute("VACUUM")
            except sqlite3.Error as e:
                raise StoreError(f"VACUUM failed: {e}") from e
        logger.info("Database vacuumed")

    @staticmethod
    def _file_from_row(row: sqlite3.Row) -> FileRecord:
        return FileRecord(
            id=row["id"],
            path=row["path"],
            content_hash=row["content_hash"],
            last_modified=row["last_modified"],
            file_size=row["file_size"],
            language=row["language"],
            indexed_at=row["indexed_at"],
        )

    def _chunk_from_row(self, row: sqlite3.Row) -> ChunkRecord:
        vector = blob_to_vector(row["embedding"], self.dimension)
        state = EmbeddingState(row["embedding_state"])
        if vector is None:
            # Written with a different dimension; unusable for ranking
            vector = []
            state = EmbeddingState.FALLBACK
        return ChunkRecord(
            id=row["id"],
            file_id=row["file_id"],
            chunk_index=row["chunk_index"],
            content=row["content"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            embedding=vector,
            embedding_state=state,
        )

    @staticmethod
    def _symbol_from_row(row: sqlite3.Row) -> SymbolRecord:
        return SymbolRecord(
            id=row["id"],
            file_id=row["file_id"],
            name=row["name"],
            kind=row["type"],
            line_start=row["line_start"],
            line_end=row["line_end"],
            signature=row["signature"],
            documentation=row["documentation"],
        )

    def __repr__(self) -> str:
        return f"SQLiteStorage(db_path={self.db_path})"
