"""SQLite implementation of the storage, index and cache interfaces.

One database file holds three layers:

* **structured data** — ``docs`` and ``chunks`` tables;
* **lexical index** — an FTS5 table over chunk header/content, kept in sync
  with ``chunks`` by triggers;
* **semantic index** — a sqlite-vec ``vec0`` table of chunk embeddings
  (cosine distance).

The query-embedding cache lives in the same file.  Every public method runs
under one re-entrant lock, so the store can be shared between the event loop
and worker threads (``asyncio.to_thread``).
"""

from __future__ import annotations

import logging
import sqlite3
import struct
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import sqlite_vec

from knowledge_mind.base import DocumentStore, EmbeddingCacheStore, LexicalIndex, VectorIndex
from knowledge_mind.errors import EmbeddingDimensionError, ProviderUnavailableError
from knowledge_mind.models import Chunk, Document, IndexStats, SearchResult, SourceType

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS docs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_owner TEXT NOT NULL,
    repo_name TEXT NOT NULL,
    path TEXT NOT NULL,
    content_hash TEXT,
    content TEXT,
    indexed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    source_type TEXT CHECK(source_type IN ('github', 'local')) DEFAULT 'github',
    UNIQUE(repo_owner, repo_name, path)
);

CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    doc_id INTEGER NOT NULL,
    header TEXT,
    content TEXT,
    word_count INTEGER,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(doc_id) REFERENCES docs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_chunks_doc ON chunks(doc_id);

CREATE TABLE IF NOT EXISTS query_embeddings_cache (
    query_hash TEXT PRIMARY KEY,
    query_text TEXT,
    model TEXT,
    embedding BLOB,
    last_accessed REAL NOT NULL,
    access_count INTEGER DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_cache_accessed ON query_embeddings_cache(last_accessed);
CREATE INDEX IF NOT EXISTS idx_cache_model ON query_embeddings_cache(model);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    header,
    content,
    content='chunks',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks BEGIN
    INSERT INTO chunks_fts(rowid, header, content) VALUES (new.id, new.header, new.content);
END;
CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks BEGIN
    INSERT INTO chunks_fts(chunks_fts, rowid, header, content)
    VALUES ('delete', old.id, old.header, old.content);
END;
CREATE TRIGGER IF NOT EXISTS chunks_au AFTER UPDATE ON chunks BEGIN
    INSERT INTO chunks_fts(chunks_fts, rowid, header, content)
    VALUES ('delete', old.id, old.header, old.content);
    INSERT INTO chunks_fts(rowid, header, content) VALUES (new.id, new.header, new.content);
END;
"""

_VECTOR_TABLE = """
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_embeddings USING vec0(
    chunk_id INTEGER PRIMARY KEY,
    embedding float[{dimension}] distance_metric=cosine
);
"""


def pack_vector(vector: Sequence[float]) -> bytes:
    """Pack floats as a float64 blob, so cached query vectors round-trip exactly."""
    return struct.pack(f"{len(vector)}d", *vector)


def unpack_vector(blob: bytes) -> list[float]:
    return list(struct.unpack(f"{len(blob) // 8}d", blob))


def fts_phrase(query: str) -> str:
    """Quote *query* as a single FTS5 phrase so operators are matched literally."""
    return '"' + query.replace('"', '""') + '"'


class SqliteStore(DocumentStore, LexicalIndex, VectorIndex, EmbeddingCacheStore):
    """SQLite + FTS5 + sqlite-vec backend.

    Parameters
    ----------
    db_path:
        Database file (parent directories are created) or ``":memory:"``.
    dimension:
        Embedding dimension of the ``vec0`` table.  Re-opening a database
        with a different dimension raises :class:`EmbeddingDimensionError`.
    clock:
        Source of cache access timestamps (seconds).
    """

    def __init__(
        self,
        db_path: str | Path,
        dimension: int = 768,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = str(db_path)
        self.dimension = dimension
        self._clock = clock
        self._lock = threading.RLock()

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._load_vector_extension()
        self._init_schema()
        logger.info("SQLite store initialized: %s (dim=%d)", self.db_path, dimension)

    def _load_vector_extension(self) -> None:
        try:
            self._conn.enable_load_extension(True)
            sqlite_vec.load(self._conn)
            self._conn.enable_load_extension(False)
        except (AttributeError, sqlite3.OperationalError) as exc:
            self._conn.close()
            raise ProviderUnavailableError(f"Could not load the sqlite-vec extension: {exc}") from exc

    def _init_schema(self) -> None:
        with self._lock:
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)
            self._conn.executescript(_VECTOR_TABLE.format(dimension=self.dimension))

            with self._conn:
                row = self._conn.execute(
                    "SELECT value FROM meta WHERE key = 'embedding_dimension'"
                ).fetchone()
                if row is None:
                    self._conn.execute(
                        "INSERT INTO meta (key, value) VALUES ('embedding_dimension', ?)",
                        (str(self.dimension),),
                    )
            stored = int(row["value"]) if row is not None else self.dimension
            if stored != self.dimension:
                self._conn.close()
                raise EmbeddingDimensionError(self.dimension, stored, where=f"database {self.db_path}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()
            logger.info("SQLite connection closed")

    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- DocumentStore --------------------------------------------------------

    def upsert_document(self, document: Document) -> int:
        with self._lock, self._conn:
            return self._upsert_document(document)

    def replace_chunks(self, document_id: int, chunks: Sequence[Chunk]) -> None:
        self._check_chunk_dimensions(chunks)
        with self._lock, self._conn:
            self._replace_chunks(document_id, chunks)

    def save_document(self, document: Document, chunks: Sequence[Chunk]) -> int:
        self._check_chunk_dimensions(chunks)
        with self._lock, self._conn:
            document_id = self._upsert_document(document)
            self._replace_chunks(document_id, chunks)
        return document_id

    def get_content_hash(self, repo_owner: str, repo_name: str, path: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT content_hash FROM docs WHERE repo_owner = ? AND repo_name = ? AND path = ?",
                (repo_owner, repo_name, path),
            ).fetchone()
        return row["content_hash"] if row else None

    def fetch_chunks(self, chunk_ids: Sequence[int]) -> list[SearchResult]:
        if not chunk_ids:
            return []
        placeholders = ",".join("?" for _ in chunk_ids)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT c.id, c.header, c.content, d.path, d.repo_owner, d.repo_name, d.source_type
                FROM chunks c
                JOIN docs d ON c.doc_id = d.id
                WHERE c.id IN ({placeholders})
                """,
                [int(chunk_id) for chunk_id in chunk_ids],
            ).fetchall()
        return [
            SearchResult(
                id=row["id"],
                header=row["header"] or "",
                content=row["content"] or "",
                path=row["path"],
                repo_owner=row["repo_owner"],
                repo_name=row["repo_name"],
                source_type=SourceType(row["source_type"]),
            )
            for row in rows
        ]

    def stats(self) -> IndexStats:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT
                  (SELECT COUNT(*) FROM docs) AS total_docs,
                  (SELECT COUNT(*) FROM docs WHERE source_type = 'github') AS github_docs,
                  (SELECT COUNT(*) FROM docs WHERE source_type = 'local') AS local_docs,
                  (SELECT COUNT(*) FROM chunks) AS total_chunks,
                  (SELECT COUNT(*) FROM query_embeddings_cache) AS cache_entries
                """
            ).fetchone()
        return IndexStats(**dict(row))

    def count_chunks(self, document_id: int) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE doc_id = ?", (document_id,)
            ).fetchone()
        return row[0]

    # -- LexicalIndex / VectorIndex -------------------------------------------

    def search_lexical(self, query: str, limit: int) -> list[tuple[int, float]]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT rowid, bm25(chunks_fts) AS bm25_score
                    FROM chunks_fts
                    WHERE chunks_fts MATCH ?
                    ORDER BY bm25_score ASC
                    LIMIT ?
                    """,
                    (fts_phrase(query), limit),
                ).fetchall()
        except sqlite3.OperationalError as exc:
            raise ProviderUnavailableError(f"Lexical search failed: {exc}") from exc
        return [(int(row["rowid"]), float(row["bm25_score"])) for row in rows]

    def search_vector(self, vector: Sequence[float], limit: int) -> list[tuple[int, float]]:
        if len(vector) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(vector), where="query embedding")
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT chunk_id, distance
                    FROM chunks_embeddings
                    WHERE embedding MATCH ? AND k = ?
                    ORDER BY distance
                    """,
                    (sqlite_vec.serialize_float32(list(vector)), limit),
                ).fetchall()
        except sqlite3.OperationalError as exc:
            raise ProviderUnavailableError(f"Vector search failed: {exc}") from exc
        return [(int(row["chunk_id"]), float(row["distance"])) for row in rows]

    # -- EmbeddingCacheStore --------------------------------------------------

    def get_cached_embedding(self, query_hash: str) -> list[float] | None:
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT embedding FROM query_embeddings_cache WHERE query_hash = ?",
                (query_hash,),
            ).fetchone()
            if row is None:
                return None
            self._conn.execute(
                """
                UPDATE query_embeddings_cache
                SET last_accessed = ?, access_count = access_count + 1
                WHERE query_hash = ?
                """,
                (self._clock(), query_hash),
            )
        return unpack_vector(row["embedding"])

    def cache_embedding(self, query_hash: str, text: str, model: str, vector: Sequence[float]) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO query_embeddings_cache
                    (query_hash, query_text, model, embedding, last_accessed)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(query_hash) DO UPDATE SET
                    last_accessed = excluded.last_accessed,
                    access_count = access_count + 1
                """,
                (query_hash, text, model, pack_vector(vector), self._clock()),
            )

    def prune_cache(self, max_entries: int) -> int:
        with self._lock, self._conn:
            total = self._conn.execute("SELECT COUNT(*) FROM query_embeddings_cache").fetchone()[0]
            overflow = total - max_entries
            if overflow <= 0:
                return 0
            cursor = self._conn.execute(
                """
                DELETE FROM query_embeddings_cache
                WHERE query_hash IN (
                    SELECT query_hash FROM query_embeddings_cache
                    ORDER BY last_accessed ASC, rowid ASC
                    LIMIT ?
                )
                """,
                (overflow,),
            )
            return cursor.rowcount

    def access_count(self, query_hash: str) -> int | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT access_count FROM query_embeddings_cache WHERE query_hash = ?",
                (query_hash,),
            ).fetchone()
        return row[0] if row else None

    # -- internals ------------------------------------------------------------

    def _check_chunk_dimensions(self, chunks: Sequence[Chunk]) -> None:
        for chunk in chunks:
            if chunk.embedding is not None and len(chunk.embedding) != self.dimension:
                raise EmbeddingDimensionError(self.dimension, len(chunk.embedding), where="chunk embedding")

    def _upsert_document(self, document: Document) -> int:
        row = self._conn.execute(
            """
            INSERT INTO docs (repo_owner, repo_name, path, content_hash, content, source_type)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(repo_owner, repo_name, path) DO UPDATE SET
                content_hash = excluded.content_hash,
                content = excluded.content,
                source_type = excluded.source_type,
                indexed_at = CURRENT_TIMESTAMP
            RETURNING id
            """,
            (
                document.repo_owner,
                document.repo_name,
                document.path,
                document.content_hash,
                document.content,
                document.source_type.value,
            ),
        ).fetchone()
        return int(row["id"])

    def _replace_chunks(self, document_id: int, chunks: Sequence[Chunk]) -> None:
        self._conn.execute(
            "DELETE FROM chunks_embeddings WHERE chunk_id IN (SELECT id FROM chunks WHERE doc_id = ?)",
            (document_id,),
        )
        self._conn.execute("DELETE FROM chunks WHERE doc_id = ?", (document_id,))
        for chunk in chunks:
            row = self._conn.execute(
                "INSERT INTO chunks (doc_id, header, content, word_count) VALUES (?, ?, ?, ?) RETURNING id",
                (document_id, chunk.header, chunk.content, chunk.word_count),
            ).fetchone()
            if chunk.embedding is not None:
                self._conn.execute(
                    "INSERT INTO chunks_embeddings (chunk_id, embedding) VALUES (?, ?)",
                    (int(row["id"]), sqlite_vec.serialize_float32(chunk.embedding)),
                )
