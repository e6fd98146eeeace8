"""Unit tests for batch sizing and the batch runner."""

from __future__ import annotations

import asyncio

import pytest

from knowledge_mind.ingestion.batching import log_progress, optimal_batch_size, run_in_batches


class TestOptimalBatchSize:
    @pytest.mark.parametrize(
        ("total", "expected"),
        [(0, 5), (-3, 5), (1, 5), (25, 5), (49, 7), (100, 10), (101, 11), (400, 20), (10000, 20)],
    )
    def test_square_root_clamped(self, total: int, expected: int) -> None:
        assert optimal_batch_size(total) == expected

    def test_custom_bounds(self) -> None:
        assert optimal_batch_size(100, min_batch=2, max_batch=4) == 4
        assert optimal_batch_size(1, min_batch=2, max_batch=4) == 2


class TestRunInBatches:
    def test_results_in_item_order(self) -> None:
        async def double(x: int) -> int:
            await asyncio.sleep(0.001 * (5 - x % 5))
            return x * 2

        results = asyncio.run(run_in_batches(list(range(12)), 5, double))
        assert results == [x * 2 for x in range(12)]

    def test_in_flight_never_exceeds_batch_size(self) -> None:
        in_flight = 0
        peak = 0

        async def worker(_: int) -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1

        asyncio.run(run_in_batches(list(range(23)), 4, worker))
        assert peak == 4

    def test_batch_completes_before_next_starts(self) -> None:
        events: list[tuple[str, int]] = []

        async def worker(x: int) -> None:
            events.append(("start", x))
            await asyncio.sleep(0.001 * (3 - x % 3))
            events.append(("end", x))

        asyncio.run(run_in_batches(list(range(6)), 3, worker))

        last_end_of_first = max(i for i, (kind, x) in enumerate(events) if kind == "end" and x < 3)
        first_start_of_second = min(i for i, (kind, x) in enumerate(events) if kind == "start" and x >= 3)
        assert last_end_of_first < first_start_of_second

    def test_progress_reported_after_each_batch(self) -> None:
        seen: list[tuple[int, int]] = []

        async def noop(_: int) -> None:
            return None

        asyncio.run(run_in_batches(list(range(7)), 3, noop, lambda done, total: seen.append((done, total))))
        assert seen == [(3, 7), (6, 7), (7, 7)]

    def test_empty_items(self) -> None:
        async def noop(_: int) -> None:
            return None

        assert asyncio.run(run_in_batches([], 5, noop)) == []

    def test_invalid_batch_size(self) -> None:
        async def noop(_: int) -> None:
            return None

        with pytest.raises(ValueError, match="batch_size"):
            asyncio.run(run_in_batches([1], 0, noop))


def test_log_progress_formats_percentage(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("INFO", logger="knowledge_mind.ingestion.batching"):
        log_progress(10, 40)
    assert "Progress: 10/40 files (25%)" in caplog.text
