"""
knowledge_mind — hybrid retrieval and ingestion for documentation.

Documents (Markdown / MDX / PDF from GitHub repositories or local folders)
are split into header-scoped chunks, embedded, and indexed both lexically
(FTS5 / BM25) and semantically (sqlite-vec).  Queries are answered by fusing
the two candidate lists with Reciprocal Rank Fusion.
"""

__version__ = "0.1.0"
