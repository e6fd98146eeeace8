"""Query-embedding cache.

Keys hash the model identifier together with the query text: vectors from
different models have different dimensions and semantics, so an entry is
never shared across models.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

from knowledge_mind.base import EmbeddingCacheStore
from knowledge_mind.errors import CacheInconsistencyError

logger = logging.getLogger(__name__)

TEXT_SNAPSHOT_CHARS = 500


class EmbeddingCache:
    """Memoizes query embeddings in an :class:`EmbeddingCacheStore`.

    Parameters
    ----------
    store:
        Row storage for cache entries.
    dimension:
        Dimension of the active model.  Entries of any other size are
        rejected on write and reported as corrupt on read.
    max_entries:
        How many rows :meth:`cleanup` keeps.
    """

    def __init__(
        self,
        store: EmbeddingCacheStore,
        *,
        dimension: int = 768,
        max_entries: int = 1000,
    ) -> None:
        self._store = store
        self.dimension = dimension
        self.max_entries = max_entries

    @staticmethod
    def key(model: str, text: str) -> str:
        """Cache key for *text* embedded by *model*."""
        return hashlib.sha256(f"{model}:{text}".encode("utf-8")).hexdigest()

    def get(self, query_hash: str) -> list[float] | None:
        """Return the cached vector or ``None``; a hit refreshes its bookkeeping."""
        vector = self._store.get_cached_embedding(query_hash)
        if vector is None:
            return None
        if len(vector) != self.dimension:
            raise CacheInconsistencyError(self.dimension, len(vector))
        return vector

    def put(self, query_hash: str, text: str, model: str, vector: Sequence[float]) -> None:
        """Store *vector*; an existing entry keeps its vector and text."""
        if len(vector) != self.dimension:
            raise CacheInconsistencyError(self.dimension, len(vector))
        self._store.cache_embedding(query_hash, text[:TEXT_SNAPSHOT_CHARS], model, vector)

    def cleanup(self) -> int:
        """Evict all but the ``max_entries`` most recently accessed entries."""
        removed = self._store.prune_cache(self.max_entries)
        if removed:
            logger.info("Evicted %d query embeddings (keeping %d)", removed, self.max_entries)
        return removed
