"""Unit tests for the bounded async fan-out."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from sources.limited import BatchOutcome, run_limited


class TestRunLimited:
    @pytest.mark.asyncio
    async def test_failure_is_isolated(self) -> None:
        async def worker(n: int) -> int:
            if n == 3:
                raise RuntimeError("boom")
            return n * 10

        outcome = await run_limited([1, 2, 3, 4, 5], worker, limit=2, gap=0)
        assert sorted(outcome.results) == [10, 20, 40, 50]
        assert not outcome.ok
        [failure] = outcome.failures
        assert failure.index == 2
        assert failure.item == 3
        assert failure.reason == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_at_most_limit_in_flight(self) -> None:
        in_flight = 0
        peak = 0

        async def worker(n: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return n

        outcome = await run_limited(list(range(6)), worker, limit=2, gap=0)
        assert peak == 2
        assert sorted(outcome.results) == list(range(6))

    @pytest.mark.asyncio
    async def test_lists_flattened_and_none_dropped(self) -> None:
        async def worker(n: int):
            if n == 0:
                return None
            if n == 1:
                return ["a", "b"]
            return "c"

        outcome = await run_limited([0, 1, 2], worker, limit=1, gap=0)
        assert outcome.results == ["a", "b", "c"]
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_limit_larger_than_input(self) -> None:
        async def worker(n: int) -> int:
            return n

        outcome = await run_limited([7], worker, limit=10, gap=0)
        assert outcome.results == [7]

    @pytest.mark.asyncio
    async def test_empty_input_returns_immediately(self) -> None:
        async def worker(n: int) -> int:
            raise AssertionError("not called")

        outcome = await run_limited([], worker)
        assert outcome == BatchOutcome()

    @pytest.mark.asyncio
    async def test_gap_after_every_item_including_failures(self, monkeypatch) -> None:
        sleeps = []

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)

        monkeypatch.setattr("sources.limited.asyncio.sleep", fake_sleep)

        async def worker(n: int) -> int:
            if n == 2:
                raise ValueError("bad item")
            return n

        outcome = await run_limited([1, 2, 3], worker, limit=2, gap=0.26)
        assert sleeps == [0.26, 0.26, 0.26]
        assert sorted(outcome.results) == [1, 3]
        assert len(outcome.failures) == 1

    @pytest.mark.asyncio
    async def test_zero_gap_never_sleeps(self, monkeypatch) -> None:
        sleep = AsyncMock()
        monkeypatch.setattr("sources.limited.asyncio.sleep", sleep)

        async def worker(n: int) -> int:
            return n

        await run_limited([1, 2], worker, limit=2, gap=0)
        sleep.assert_not_awaited()
