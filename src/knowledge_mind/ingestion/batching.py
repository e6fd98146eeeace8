"""Concurrency-bounded batch execution.

Items are processed in sequential batches; every item of a batch runs
concurrently and the whole batch completes before the next one starts.
At most ``batch_size`` workers are in flight at any moment.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressSink = Callable[[int, int], None]


def optimal_batch_size(total_items: int, min_batch: int = 5, max_batch: int = 20) -> int:
    """Return ``clamp(ceil(sqrt(total_items)), min_batch, max_batch)``.

    Square-root growth keeps concurrency sublinear in the item count:
    ~10 items run 5 at a time, 100 run 10 at a time, 400+ are capped at 20.
    """
    if total_items <= 0:
        return min_batch
    calculated = math.ceil(math.sqrt(total_items))
    return min(max(calculated, min_batch), max_batch)


def log_progress(processed: int, total: int, item_type: str = "files") -> None:
    """Default progress sink: one INFO line per completed batch."""
    percentage = round(processed / total * 100) if total else 100
    logger.info("Progress: %d/%d %s (%d%%)", processed, total, item_type, percentage)


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T], Awaitable[R]],
    on_batch_complete: ProgressSink | None = None,
) -> list[R]:
    """Run *worker* over *items*, ``batch_size`` at a time.

    Parameters
    ----------
    items:
        Work items, processed in order of their batch.
    batch_size:
        Maximum number of concurrent workers.
    worker:
        Coroutine function applied to each item.  Exceptions propagate;
        callers that need isolation must catch inside the worker.
    on_batch_complete:
        Called with ``(processed_so_far, total)`` after each batch.

    Returns
    -------
    list
        Worker results in item order.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    results: list[R] = []
    total = len(items)
    for start in range(0, total, batch_size):
        batch = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(worker(item) for item in batch)))
        if on_batch_complete is not None:
            on_batch_complete(start + len(batch), total)
    return results
