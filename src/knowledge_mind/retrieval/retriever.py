"""Hybrid retriever — lexical and vector candidates fused by RRF.

This module is the **primary public interface** for retrieval.

Usage::

    from knowledge_mind.retrieval.retriever import HybridRetriever

    retriever = HybridRetriever(embedder, cache, store, store, store)
    results = await retriever.search("How do I configure batching?", limit=5)
    for r in results:
        print(r.source_ref(), r.header, r.score)
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

from knowledge_mind.base import DocumentStore, EmbeddingProvider, LexicalIndex, VectorIndex
from knowledge_mind.errors import ValidationError
from knowledge_mind.models import SearchResult
from knowledge_mind.retrieval.cache import EmbeddingCache

logger = logging.getLogger(__name__)

RRF_K = 60


def lexical_weight(rank: int, score: float, k: int = RRF_K) -> float:
    """RRF contribution of a lexical hit at zero-based *rank*.

    BM25 scores are negative for good matches; the log term dampens
    outlier magnitudes so rank stays the dominant signal.
    """
    return 1.0 / (k + rank + 1) * (1.0 + math.log(1.0 + max(0.0, -score)))


def vector_weight(rank: int, distance: float, k: int = RRF_K) -> float:
    """RRF contribution of a vector hit, with ``1 - distance`` as similarity."""
    return 1.0 / (k + rank + 1) * (1.0 - distance)


def reciprocal_rank_fusion(
    lexical_hits: Sequence[tuple[int, float]],
    vector_hits: Sequence[tuple[int, float]],
    *,
    k: int = RRF_K,
) -> list[tuple[int, float]]:
    """Fuse two best-first candidate lists into ``(id, score)`` pairs.

    A candidate's score is the sum of its contributions from the lists it
    appears in.  Results are ordered by score descending, then id ascending.
    """
    scores: dict[int, float] = {}
    for rank, (chunk_id, score) in enumerate(lexical_hits):
        scores[chunk_id] = scores.get(chunk_id, 0.0) + lexical_weight(rank, score, k)
    for rank, (chunk_id, distance) in enumerate(vector_hits):
        scores[chunk_id] = scores.get(chunk_id, 0.0) + vector_weight(rank, distance, k)
    return sorted(scores.items(), key=lambda item: (-item[1], item[0]))


class HybridRetriever:
    """Answers queries from a lexical and a vector index.

    Parameters
    ----------
    embedder:
        Embeds queries that miss the cache.
    cache:
        Query-embedding cache.
    lexical:
        Full-text index (BM25-style scores, lower is better).
    vectors:
        Nearest-neighbour index (distances, lower is better).
    store:
        Hydrates fused chunk ids into result rows.
    default_limit:
        Result count used when :meth:`search` gets no ``limit``.
    k:
        RRF damping constant.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        cache: EmbeddingCache,
        lexical: LexicalIndex,
        vectors: VectorIndex,
        store: DocumentStore,
        *,
        default_limit: int = 10,
        k: int = RRF_K,
    ) -> None:
        self._embedder = embedder
        self._cache = cache
        self._lexical = lexical
        self._vectors = vectors
        self._store = store
        self.default_limit = default_limit
        self.k = k

    # -- public API -----------------------------------------------------------

    async def search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        """Run a hybrid search.

        Parameters
        ----------
        query:
            Natural-language query; must not be blank.
        limit:
            Maximum number of results (defaults to ``self.default_limit``).

        Returns
        -------
        list[SearchResult]
            Hydrated rows in fused order, each carrying its fused score.
        """
        if not query or not query.strip():
            raise ValidationError("query is required")
        if limit is None:
            limit = self.default_limit
        if limit < 1:
            raise ValidationError(f"limit must be a positive integer, got {limit}")

        vector = await self._query_embedding(query)
        candidates = limit * 2
        lexical_hits, vector_hits = await asyncio.gather(
            asyncio.to_thread(self._lexical.search_lexical, query, candidates),
            asyncio.to_thread(self._vectors.search_vector, vector, candidates),
        )
        fused = reciprocal_rank_fusion(lexical_hits, vector_hits, k=self.k)[:limit]
        logger.debug(
            "Query %r: %d lexical, %d vector, %d fused",
            query[:80],
            len(lexical_hits),
            len(vector_hits),
            len(fused),
        )
        if not fused:
            return []

        rows = await asyncio.to_thread(self._store.fetch_chunks, [chunk_id for chunk_id, _ in fused])
        by_id = {row.id: row for row in rows}
        # Chunks deleted by a concurrent re-ingestion simply drop out.
        return [
            by_id[chunk_id].model_copy(update={"score": score})
            for chunk_id, score in fused
            if chunk_id in by_id
        ]

    # -- internals ------------------------------------------------------------

    async def _query_embedding(self, query: str) -> list[float]:
        model = self._embedder.model_name
        query_hash = EmbeddingCache.key(model, query)

        cached = await asyncio.to_thread(self._cache.get, query_hash)
        if cached is not None:
            logger.debug("Query embedding cache hit for %s", query_hash[:12])
            return cached

        vector = await self._embedder.embed(query)
        await asyncio.to_thread(self._cache.put, query_hash, query, model, vector)
        return vector
