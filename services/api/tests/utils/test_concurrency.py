import asyncio

import pytest

from services.api.src.lending_api.utils.concurrency import gather_or_cancel, settle_all


async def succeed(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def fail(message, delay=0.0):
    await asyncio.sleep(delay)
    raise ValueError(message)


async def test_results_keep_task_order():
    settled = await settle_all([("slow", succeed(1, 0.02)), ("fast", succeed(2))])

    assert [(s.label, s.value) for s in settled] == [("slow", 1), ("fast", 2)]
    assert all(s.ok for s in settled)


async def test_failure_does_not_cancel_siblings():
    finished = []

    async def slow_success():
        await asyncio.sleep(0.02)
        finished.append("slow")
        return "done"

    settled = await settle_all([("bad", fail("boom")), ("good", slow_success())])

    assert finished == ["slow"]
    assert not settled[0].ok
    assert str(settled[0].error) == "boom"
    assert settled[1].value == "done"


async def test_empty():
    assert await settle_all([]) == []


async def test_cancellation_is_not_swallowed():
    async def cancelled():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await settle_all([("x", cancelled())])


class TestGatherOrCancel:
    async def test_returns_results_in_order(self):
        assert await gather_or_cancel(succeed(1, 0.01), succeed(2)) == [1, 2]

    async def test_first_failure_cancels_siblings(self):
        finished = []

        async def slow_success():
            await asyncio.sleep(0.1)
            finished.append("slow")

        with pytest.raises(ValueError, match="boom"):
            await gather_or_cancel(fail("boom"), slow_success())

        await asyncio.sleep(0.15)
        assert finished == []
