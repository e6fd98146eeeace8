"""
Ingestion — listing, chunking, embedding and persisting documents.

Files from GitHub repositories or local folders are split into
header-scoped chunks, embedded, and written to the document store in
concurrency-bounded batches.
"""
