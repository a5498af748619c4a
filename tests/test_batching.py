from unittest.mock import AsyncMock, patch

import pytest

from newsdesk.core.batching import run_in_batches
from newsdesk.models.outcome import Outcome, OutcomeStatus


@pytest.mark.asyncio
async def test_batches_run_in_order_with_delay():
    started = []

    async def worker(n):
        started.append(n)
        return Outcome.success(f"item {n}")

    with patch("newsdesk.core.batching.asyncio.sleep", new=AsyncMock()) as sleep:
        outcomes = await run_in_batches([1, 2, 3, 4, 5], worker, 2, 1.5, label="test")

    assert [o.unit for o in outcomes] == [f"item {n}" for n in range(1, 6)]
    assert sorted(started) == [1, 2, 3, 4, 5]
    assert sleep.await_count == 2
    sleep.assert_awaited_with(1.5)


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failed_outcome():
    async def worker(n):
        if n == 2:
            raise KeyError("boom")
        return Outcome.success(f"item {n}")

    outcomes = await run_in_batches([1, 2, 3], worker, 3, 0, label="scoring")

    assert [o.status for o in outcomes] == [
        OutcomeStatus.SUCCESS,
        OutcomeStatus.FAILED,
        OutcomeStatus.SUCCESS,
    ]
    assert outcomes[1].unit == "scoring #1"


@pytest.mark.asyncio
async def test_empty_input():
    assert await run_in_batches([], AsyncMock(), 3, 1.0) == []
