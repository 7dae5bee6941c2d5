"""
Debounced publisher.
"""

import asyncio

import pytest

from lingobridge.services.publisher import DebouncedPublisher


@pytest.mark.asyncio
async def test_burst_is_coalesced_into_latest_state():
    emitted = []
    publisher = DebouncedPublisher(emitted.append, interval_ms=20)
    for n in range(5):
        publisher.publish({"n": n})
    assert emitted == []

    await asyncio.sleep(0.06)
    assert emitted == [{"n": 4}]


@pytest.mark.asyncio
async def test_flush_now_emits_synchronously():
    emitted = []
    publisher = DebouncedPublisher(emitted.append, interval_ms=1000)
    publisher.publish("pending")
    publisher.flush_now()
    assert emitted == ["pending"]
    assert not publisher.has_pending

    # Nothing buffered, nothing emitted
    publisher.flush_now()
    assert emitted == ["pending"]


@pytest.mark.asyncio
async def test_cancel_drops_pending_state():
    emitted = []
    publisher = DebouncedPublisher(emitted.append, interval_ms=20)
    publisher.publish("dropped")
    publisher.cancel()
    await asyncio.sleep(0.05)
    assert emitted == []
