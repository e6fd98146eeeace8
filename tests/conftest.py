"""Shared pytest configuration, fakes and fixtures."""

from __future__ import annotations

import itertools
from collections.abc import Sequence
from pathlib import Path

import pytest

from knowledge_mind.base import (
    DocumentStore,
    EmbeddingCacheStore,
    EmbeddingProvider,
    LexicalIndex,
    VectorIndex,
)
from knowledge_mind.config import Settings
from knowledge_mind.errors import ProviderUnavailableError
from knowledge_mind.models import Chunk, Document, IndexStats, SearchResult, SourceType


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")
    config.addinivalue_line("markers", "sqlite: marks tests needing the sqlite-vec extension")


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeEmbedder(EmbeddingProvider):
    """Deterministic embedder; raises for any text containing a ``fail_on`` marker."""

    def __init__(
        self,
        dimension: int = 4,
        model_name: str = "fake-model",
        fail_on: Sequence[str] = (),
    ) -> None:
        self.dimension = dimension
        self.model_name = model_name
        self.fail_on = tuple(fail_on)
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        for marker in self.fail_on:
            if marker in text:
                raise RuntimeError(f"embedding failed for {marker!r}")
        seed = sum(ord(ch) for ch in text)
        return [1.0] + [((seed + i) % 7) / 7.0 for i in range(self.dimension - 1)]


class InMemoryStore(DocumentStore, LexicalIndex, VectorIndex, EmbeddingCacheStore):
    """Dict-backed store with canned lexical / vector hits."""

    def __init__(
        self,
        lexical_hits: list[tuple[int, float]] | None = None,
        vector_hits: list[tuple[int, float]] | None = None,
    ) -> None:
        self.documents: dict[tuple[str, str, str], Document] = {}
        self.chunks: dict[int, list[Chunk]] = {}
        self._doc_ids = itertools.count(1)
        self._chunk_ids = itertools.count(1)

        self.lexical_hits = lexical_hits or []
        self.vector_hits = vector_hits or []
        self.lexical_calls: list[tuple[str, int]] = []
        self.vector_calls: list[tuple[list[float], int]] = []
        self.unavailable = False
        self.closed = False

        self.cache_rows: dict[str, dict] = {}
        self._ticks = itertools.count(1)

    # -- DocumentStore

    def upsert_document(self, document: Document) -> int:
        key = (document.repo_owner, document.repo_name, document.path)
        existing = self.documents.get(key)
        doc_id = existing.id if existing is not None else next(self._doc_ids)
        self.documents[key] = document.model_copy(update={"id": doc_id})
        return doc_id

    def replace_chunks(self, document_id: int, chunks: Sequence[Chunk]) -> None:
        self.chunks[document_id] = [
            chunk.model_copy(update={"id": next(self._chunk_ids), "document_id": document_id})
            for chunk in chunks
        ]

    def get_content_hash(self, repo_owner: str, repo_name: str, path: str) -> str | None:
        doc = self.documents.get((repo_owner, repo_name, path))
        return doc.content_hash if doc else None

    def fetch_chunks(self, chunk_ids: Sequence[int]) -> list[SearchResult]:
        wanted = set(chunk_ids)
        rows = []
        for doc in self.documents.values():
            for chunk in self.chunks.get(doc.id, []):
                if chunk.id in wanted:
                    rows.append(
                        SearchResult(
                            id=chunk.id,
                            header=chunk.header,
                            content=chunk.content,
                            path=doc.path,
                            repo_owner=doc.repo_owner,
                            repo_name=doc.repo_name,
                            source_type=doc.source_type,
                        )
                    )
        return rows

    def stats(self) -> IndexStats:
        docs = list(self.documents.values())
        return IndexStats(
            total_docs=len(docs),
            github_docs=sum(d.source_type is SourceType.GITHUB for d in docs),
            local_docs=sum(d.source_type is SourceType.LOCAL for d in docs),
            total_chunks=sum(len(c) for c in self.chunks.values()),
            cache_entries=len(self.cache_rows),
        )

    def close(self) -> None:
        self.closed = True

    def chunks_for(self, path: str) -> list[Chunk]:
        for (_, _, doc_path), doc in self.documents.items():
            if doc_path == path:
                return self.chunks.get(doc.id, [])
        return []

    # -- indexes

    def search_lexical(self, query: str, limit: int) -> list[tuple[int, float]]:
        if self.unavailable:
            raise ProviderUnavailableError("lexical index is down")
        self.lexical_calls.append((query, limit))
        return self.lexical_hits[:limit]

    def search_vector(self, vector: Sequence[float], limit: int) -> list[tuple[int, float]]:
        self.vector_calls.append((list(vector), limit))
        return self.vector_hits[:limit]

    # -- EmbeddingCacheStore

    def get_cached_embedding(self, query_hash: str) -> list[float] | None:
        row = self.cache_rows.get(query_hash)
        if row is None:
            return None
        row["last_accessed"] = next(self._ticks)
        row["access_count"] += 1
        return list(row["embedding"])

    def cache_embedding(self, query_hash: str, text: str, model: str, vector: Sequence[float]) -> None:
        row = self.cache_rows.get(query_hash)
        if row is not None:
            row["last_accessed"] = next(self._ticks)
            row["access_count"] += 1
            return
        self.cache_rows[query_hash] = {
            "text": text,
            "model": model,
            "embedding": list(vector),
            "last_accessed": next(self._ticks),
            "access_count": 1,
        }

    def prune_cache(self, max_entries: int) -> int:
        overflow = len(self.cache_rows) - max_entries
        if overflow <= 0:
            return 0
        oldest = sorted(self.cache_rows, key=lambda h: self.cache_rows[h]["last_accessed"])
        for query_hash in oldest[:overflow]:
            del self.cache_rows[query_hash]
        return overflow

    def access_count(self, query_hash: str) -> int | None:
        row = self.cache_rows.get(query_hash)
        return row["access_count"] if row else None


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "data", embedding_dimension=4)


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def service(settings: Settings, memory_store: InMemoryStore, embedder: FakeEmbedder):
    """KnowledgeService wired to the in-memory fakes."""
    from knowledge_mind.ingestion.pipeline import IngestionPipeline
    from knowledge_mind.retrieval.cache import EmbeddingCache
    from knowledge_mind.retrieval.retriever import HybridRetriever
    from knowledge_mind.service import KnowledgeService

    cache = EmbeddingCache(memory_store, dimension=embedder.dimension, max_entries=2)
    retriever = HybridRetriever(embedder, cache, memory_store, memory_store, memory_store)
    pipeline = IngestionPipeline(memory_store, embedder, progress=lambda done, total: None)
    return KnowledgeService(settings, memory_store, pipeline, retriever, cache)


@pytest.fixture()
def docs_tree(tmp_path: Path) -> Path:
    """A small local documentation folder: two Markdown files and a stray text file."""
    root = tmp_path / "handbook"
    (root / "guides").mkdir(parents=True)
    (root / "intro.md").write_text(
        "# Intro\n\nKnowledge Mind indexes Markdown and PDF files for hybrid search.\n"
    )
    (root / "guides" / "setup.md").write_text(
        "## Setup\n\nInstall the package, then learn a folder before asking any questions.\n"
    )
    (root / "todo.txt").write_text("not indexed")
    return root


@pytest.fixture()
def sqlite_store(tmp_path: Path):
    """Real SQLite store (dim=4) with a deterministic access clock."""
    from knowledge_mind.storage.sqlite_store import SqliteStore

    ticks = itertools.count(1)
    try:
        store = SqliteStore(tmp_path / "docs.db", dimension=4, clock=lambda: float(next(ticks)))
    except ProviderUnavailableError as exc:
        pytest.skip(f"sqlite-vec not loadable in this environment: {exc}")
    yield store
    store.close()
