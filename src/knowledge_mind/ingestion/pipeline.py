"""Batch ingestion: fetch → hash → chunk → embed → persist.

One pipeline serves every source (GitHub repositories, local folders).
Sources only differ in how they list items and fetch raw text; both are
passed in by the caller.

Usage::

    pipeline = IngestionPipeline(store, embedder)
    source = FileSystemSource("/path/to/docs")
    report = await pipeline.ingest(source.list_items(), source.fetch)
    print(report.processed_count, report.total_count, report.chunk_count)
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from knowledge_mind.base import DocumentStore, EmbeddingProvider
from knowledge_mind.config import Settings
from knowledge_mind.errors import ItemProcessingError
from knowledge_mind.ingestion.batching import (
    ProgressSink,
    log_progress,
    optimal_batch_size,
    run_in_batches,
)
from knowledge_mind.ingestion.chunker import smart_chunk
from knowledge_mind.models import Chunk, Document, IngestionReport, ItemFailure, SourceItem

logger = logging.getLogger(__name__)

FetchFn = Callable[[SourceItem], Awaitable[str]]


def content_hash(text: str) -> str:
    """Hex sha256 of the UTF-8 encoded text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class _Outcome:
    chunk_count: int = 0
    skipped: bool = False
    failure: ItemProcessingError | None = None


class IngestionPipeline:
    """Concurrency-bounded ingester for document files.

    Parameters
    ----------
    store:
        Where documents and chunk sets are persisted.
    embedder:
        Embedding backend used for every chunk.
    max_chunk_words:
        Soft word limit forwarded to :func:`smart_chunk`.
    skip_unchanged:
        When ``True``, a document whose stored content hash equals the
        freshly computed one is not re-chunked or re-embedded.
    progress:
        Called with ``(processed, total)`` after each batch.  Defaults to an
        INFO log line.
    min_batch / max_batch:
        Bounds for :func:`optimal_batch_size`.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingProvider,
        *,
        max_chunk_words: int = 1000,
        skip_unchanged: bool = True,
        progress: ProgressSink | None = None,
        min_batch: int = 5,
        max_batch: int = 20,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.max_chunk_words = max_chunk_words
        self.skip_unchanged = skip_unchanged
        self._progress = progress or log_progress
        self.min_batch = min_batch
        self.max_batch = max_batch

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: DocumentStore,
        embedder: EmbeddingProvider,
        *,
        progress: ProgressSink | None = None,
    ) -> IngestionPipeline:
        return cls(
            store,
            embedder,
            max_chunk_words=settings.max_chunk_words,
            skip_unchanged=settings.skip_unchanged,
            progress=progress,
            min_batch=settings.min_batch_size,
            max_batch=settings.max_batch_size,
        )

    # -- public API -----------------------------------------------------------

    async def ingest(
        self,
        items: Sequence[SourceItem],
        fetch: FetchFn,
        *,
        skip_unchanged: bool | None = None,
    ) -> IngestionReport:
        """Ingest *items*, fetching each one's text with *fetch*.

        A failing item is logged and left out of ``processed_count``; it
        never aborts its batch or later batches.
        """
        skip = self.skip_unchanged if skip_unchanged is None else skip_unchanged
        batch_size = optimal_batch_size(len(items), self.min_batch, self.max_batch)
        logger.info("Ingesting %d files with batch size %d", len(items), batch_size)

        async def worker(item: SourceItem) -> _Outcome:
            return await self._process_item(item, fetch, skip)

        outcomes = await run_in_batches(items, batch_size, worker, self._progress)

        report = IngestionReport(total_count=len(items))
        for outcome in outcomes:
            if outcome.failure is not None:
                report.failures.append(
                    ItemFailure(path=outcome.failure.path, error=str(outcome.failure.cause))
                )
                continue
            report.processed_count += 1
            report.chunk_count += outcome.chunk_count
            if outcome.skipped:
                report.skipped_count += 1

        logger.info(
            "Completed indexing: %d/%d files, %d chunks (%d unchanged, %d failed)",
            report.processed_count,
            report.total_count,
            report.chunk_count,
            report.skipped_count,
            len(report.failures),
        )
        return report

    # -- internals ------------------------------------------------------------

    async def _process_item(self, item: SourceItem, fetch: FetchFn, skip: bool) -> _Outcome:
        try:
            text = await fetch(item)
            digest = content_hash(text)

            if skip:
                stored = await asyncio.to_thread(
                    self._store.get_content_hash, item.repo_owner, item.repo_name, item.path
                )
                if stored == digest:
                    logger.debug("Unchanged, skipping %s", item.path)
                    return _Outcome(skipped=True)

            chunks = await self._embed_chunks(text)
            document = Document(
                repo_owner=item.repo_owner,
                repo_name=item.repo_name,
                path=item.path,
                content_hash=digest,
                content=text,
                source_type=item.source_type,
            )
            # Nothing is written until every chunk is embedded.
            await asyncio.to_thread(self._store.save_document, document, chunks)
            return _Outcome(chunk_count=len(chunks))
        except Exception as exc:
            error = ItemProcessingError(item.path, exc)
            logger.error("Error processing file %s: %s", item.path, exc, exc_info=exc)
            return _Outcome(failure=error)

    async def _embed_chunks(self, text: str) -> list[Chunk]:
        chunks: list[Chunk] = []
        for draft in smart_chunk(text, self.max_chunk_words):
            chunk = Chunk(header=draft.header, content=draft.content, word_count=draft.word_count)
            chunk.embedding = await self._embedder.embed(chunk.embedding_text())
            chunks.append(chunk)
        return chunks
