"""Abstract interfaces for the collaborators the core depends on.

Adding a new backend (another vector database, a remote cache ...) only
requires subclassing the relevant base class and implementing its abstract
methods.  Ingestion and retrieval never import a concrete backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from knowledge_mind.models import Chunk, Document, IndexStats, SearchResult, SourceItem


class TextSource(ABC):
    """Enumerates and fetches document files under one root."""

    @abstractmethod
    def list_items(self) -> list[SourceItem]:
        """Return every recognised document file (``.md``, ``.mdx``, ``.pdf``)."""
        ...

    @abstractmethod
    async def fetch(self, item: SourceItem) -> str:
        """Return the extracted text of *item*."""
        ...


class EmbeddingProvider(ABC):
    """Turns text into fixed-dimension float vectors.

    ``model_name`` is part of the query-cache key, ``dimension`` must match
    the vector index.
    """

    model_name: str
    dimension: int

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding of *text* (length == ``dimension``)."""
        ...


class LexicalIndex(ABC):
    """Full-text index over chunk headers and content."""

    @abstractmethod
    def search_lexical(self, query: str, limit: int) -> list[tuple[int, float]]:
        """Return ``(chunk_id, score)`` pairs best-first.

        Scores follow the BM25 sign convention: lower is a better match.
        """
        ...


class VectorIndex(ABC):
    """Nearest-neighbour index over chunk embeddings."""

    @abstractmethod
    def search_vector(self, vector: Sequence[float], limit: int) -> list[tuple[int, float]]:
        """Return ``(chunk_id, distance)`` pairs best-first (lower = closer)."""
        ...


class DocumentStore(ABC):
    """Persistence for documents and their chunk sets."""

    @abstractmethod
    def upsert_document(self, document: Document) -> int:
        """Insert or update by natural key and return the surrogate id."""
        ...

    @abstractmethod
    def replace_chunks(self, document_id: int, chunks: Sequence[Chunk]) -> None:
        """Atomically replace every chunk (and embedding) of *document_id*."""
        ...

    @abstractmethod
    def get_content_hash(self, repo_owner: str, repo_name: str, path: str) -> str | None:
        """Return the stored content hash for a document, or ``None``."""
        ...

    @abstractmethod
    def fetch_chunks(self, chunk_ids: Sequence[int]) -> list[SearchResult]:
        """Hydrate chunk ids into result rows (order not guaranteed)."""
        ...

    @abstractmethod
    def stats(self) -> IndexStats:
        """Return document / chunk / cache row counts."""
        ...

    # -- optional overrides ---------------------------------------------------

    def save_document(self, document: Document, chunks: Sequence[Chunk]) -> int:
        """Upsert *document* and replace its chunk set; return its id.

        Backends that can do both in one transaction should override this so
        a failed chunk write also rolls back the new content hash.
        """
        document_id = self.upsert_document(document)
        self.replace_chunks(document_id, chunks)
        return document_id

    def close(self) -> None:
        """Release connections or file handles; the default holds none."""


class EmbeddingCacheStore(ABC):
    """Key-value rows backing :class:`~knowledge_mind.retrieval.cache.EmbeddingCache`."""

    @abstractmethod
    def get_cached_embedding(self, query_hash: str) -> list[float] | None:
        """Return the vector and refresh its bookkeeping, or ``None`` on a miss."""
        ...

    @abstractmethod
    def cache_embedding(self, query_hash: str, text: str, model: str, vector: Sequence[float]) -> None:
        """Insert; on conflict refresh bookkeeping only."""
        ...

    @abstractmethod
    def prune_cache(self, max_entries: int) -> int:
        """Keep the *max_entries* most recently accessed rows; return rows removed."""
        ...
