"""
Retrieval — hybrid (lexical + vector) search with a query-embedding cache.

Public surface
--------------
- :class:`HybridRetriever` — main entry point for search.
- :class:`EmbeddingCache` — memoizes query embeddings per model.
- :func:`reciprocal_rank_fusion` — the rank-fusion scoring used by the retriever.
"""

from knowledge_mind.retrieval.cache import EmbeddingCache
from knowledge_mind.retrieval.retriever import HybridRetriever, reciprocal_rank_fusion

__all__ = [
    "EmbeddingCache",
    "HybridRetriever",
    "reciprocal_rank_fusion",
]
