"""
Storage — persistence for documents, chunks, both search indexes and the
query-embedding cache.
"""

from knowledge_mind.storage.sqlite_store import SqliteStore

__all__ = ["SqliteStore"]
