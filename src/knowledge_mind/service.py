"""Knowledge service — the use cases exposed to callers.

:class:`KnowledgeService` ties together a text source, the ingestion
pipeline, the retriever and the store.  :func:`build_service` is the only
place where concrete backends are chosen.
"""

from __future__ import annotations

import asyncio
import logging

from knowledge_mind.base import DocumentStore, TextSource
from knowledge_mind.config import Settings
from knowledge_mind.errors import ValidationError
from knowledge_mind.ingestion.pipeline import IngestionPipeline
from knowledge_mind.ingestion.sources import FileSystemSource, GithubSource
from knowledge_mind.models import IndexStats, IngestionReport, SearchResult
from knowledge_mind.retrieval.cache import EmbeddingCache
from knowledge_mind.retrieval.retriever import HybridRetriever

logger = logging.getLogger(__name__)


class KnowledgeService:
    """Learn documents and answer queries against them.

    Parameters
    ----------
    settings:
        Application settings (GitHub token, timeouts, limits).
    store:
        Document store; also reports statistics.
    pipeline:
        Ingestion pipeline shared by every source.
    retriever:
        Hybrid retriever used by :meth:`ask`.
    cache:
        Query-embedding cache, pruned by :meth:`cleanup_cache`.
    """

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        pipeline: IngestionPipeline,
        retriever: HybridRetriever,
        cache: EmbeddingCache,
    ) -> None:
        self.settings = settings
        self._store = store
        self._pipeline = pipeline
        self._retriever = retriever
        self._cache = cache

    async def learn_repository(
        self,
        owner: str,
        repo: str,
        branch: str = "main",
        *,
        force: bool = False,
    ) -> IngestionReport:
        """Index the Markdown/PDF files of a GitHub repository branch."""
        if not owner or not repo:
            raise ValidationError("owner and repo are required")
        logger.info("Starting GitHub repository indexing: %s/%s@%s", owner, repo, branch)
        source = GithubSource(
            owner,
            repo,
            branch,
            token=self.settings.github_token,
            api_url=self.settings.github_api_url,
            timeout=self.settings.request_timeout,
        )
        return await self._learn(source, force)

    async def learn_filesystem(
        self,
        directory_path: str,
        max_depth: int = 10,
        *,
        force: bool = False,
    ) -> IngestionReport:
        """Index the Markdown/PDF files under a local directory."""
        if not directory_path:
            raise ValidationError("directory_path is required")
        logger.info("Starting local filesystem indexing: %s", directory_path)
        return await self._learn(FileSystemSource(directory_path, max_depth), force)

    async def ask(self, query: str, limit: int | None = None) -> list[SearchResult]:
        """Hybrid search over everything indexed so far."""
        return await self._retriever.search(query, limit)

    def status(self) -> IndexStats:
        return self._store.stats()

    def cleanup_cache(self) -> int:
        return self._cache.cleanup()

    def close(self) -> None:
        self._store.close()

    async def _learn(self, source: TextSource, force: bool) -> IngestionReport:
        items = await asyncio.to_thread(source.list_items)
        logger.info("Found %d files to index (.md, .mdx, .pdf)", len(items))
        skip = False if force else None
        return await self._pipeline.ingest(items, source.fetch, skip_unchanged=skip)


def build_service(settings: Settings | None = None) -> KnowledgeService:
    """Wire the SQLite store, the probed embedding provider and the use cases.

    The query cache is pruned once here rather than on every write.
    """
    from knowledge_mind.embeddings import select_embedding_provider
    from knowledge_mind.storage.sqlite_store import SqliteStore

    settings = settings or Settings()
    store = SqliteStore(settings.db_path, settings.embedding_dimension)
    embedder = select_embedding_provider(settings)
    cache = EmbeddingCache(
        store,
        dimension=settings.embedding_dimension,
        max_entries=settings.cache_max_entries,
    )
    retriever = HybridRetriever(
        embedder,
        cache,
        store,
        store,
        store,
        default_limit=settings.default_search_limit,
    )
    pipeline = IngestionPipeline.from_settings(settings, store, embedder)

    cache.cleanup()
    logger.info("Knowledge service ready (embeddings: %r)", embedder)
    return KnowledgeService(settings, store, pipeline, retriever, cache)
