"""
Single-flight request queue.
"""

import asyncio

import pytest

from lingobridge.services.request_queue import QueueItem, RequestOutcome, SingleFlightQueue


def item(n: int) -> QueueItem:
    return QueueItem(id=f"item-{n}", text=f"text {n}", response_target_id="r", translation_target_id="t")


@pytest.mark.asyncio
async def test_at_most_one_request_in_flight_fifo():
    running = 0
    max_running = 0
    order = []
    finished = []

    async def handler(queued, token, report_partial):
        nonlocal running, max_running
        running += 1
        max_running = max(max_running, running)
        order.append(queued.id)
        await asyncio.sleep(0.01)
        running -= 1
        return queued.text.upper()

    queue = SingleFlightQueue(handler, on_finished=finished.append, session_id="t")
    for n in range(4):
        queue.enqueue(item(n))
    assert queue.is_busy
    assert await queue.wait_idle(timeout=2.0)

    assert max_running == 1
    assert order == ["item-0", "item-1", "item-2", "item-3"]
    assert [r.outcome for r in finished] == [RequestOutcome.COMPLETED] * 4
    assert finished[0].value == "TEXT 0"


@pytest.mark.asyncio
async def test_failure_does_not_stall_the_queue():
    finished = []

    async def handler(queued, token, report_partial):
        if queued.id == "item-0":
            raise RuntimeError("provider down")
        return "ok"

    queue = SingleFlightQueue(handler, on_finished=finished.append, session_id="t")
    queue.enqueue(item(0))
    queue.enqueue(item(1))
    assert await queue.wait_idle(timeout=2.0)

    assert finished[0].outcome == RequestOutcome.FAILED
    assert "provider down" in finished[0].error
    assert finished[1].outcome == RequestOutcome.COMPLETED


@pytest.mark.asyncio
async def test_cancel_all_drains_partial_and_discards_rest():
    progress = []
    finished = []
    started = asyncio.Event()

    async def handler(queued, token, report_partial):
        report_partial("half of the")
        started.set()
        while True:
            token.raise_if_cancelled()
            await asyncio.sleep(0.005)

    queue = SingleFlightQueue(
        handler,
        on_progress=lambda queued, partial: progress.append(partial),
        on_finished=finished.append,
        session_id="t",
    )
    queue.enqueue(item(0))
    queue.enqueue(item(1))
    queue.enqueue(item(2))
    await asyncio.wait_for(started.wait(), timeout=1.0)

    discarded = await queue.cancel_all()

    assert [d.id for d in discarded] == ["item-1", "item-2"]
    assert progress == ["half of the"]
    assert len(finished) == 1
    assert finished[0].outcome == RequestOutcome.CANCELLED
    assert finished[0].value == "half of the"
    assert not queue.is_busy

    queue.enqueue(item(3))
    assert not queue.is_busy
    assert queue.pending == []


@pytest.mark.asyncio
async def test_provider_ignoring_token_is_cancelled_after_grace():
    finished = []

    async def handler(queued, token, report_partial):
        report_partial("stuck")
        await asyncio.sleep(10)

    queue = SingleFlightQueue(handler, on_finished=finished.append, cancel_grace_ms=20, session_id="t")
    queue.enqueue(item(0))
    await asyncio.sleep(0.01)
    await asyncio.wait_for(queue.cancel_all(), timeout=1.0)

    assert finished[0].outcome == RequestOutcome.CANCELLED
    assert finished[0].value == "stuck"
