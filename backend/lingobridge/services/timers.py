"""
Timer and cancellation primitives shared by the session pipeline.

Every delayed action (silence, pause, debounce) is a Timer owned by exactly
one component, so teardown can cancel them deterministically.
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class OperationCancelled(Exception):
    """Raised inside a provider call once its token has been cancelled."""


class CancellationToken:
    """Cooperative cancellation flag passed into every slow provider call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


class Timer:
    """One-shot restartable timer on the running event loop.

    The callback runs synchronously on the loop; restarting or cancelling
    drops any pending fire.
    """

    def __init__(self, delay_s: float, callback: Callable[[], None], name: str = "timer"):
        self.delay_s = delay_s
        self._callback = callback
        self._name = name
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """Start the timer unless it is already pending."""
        if self._handle is None:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(self.delay_s, self._fire)

    def restart(self) -> None:
        self.cancel()
        self.start()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception as e:
            logger.error(f"{self._name} callback failed: {e}")
