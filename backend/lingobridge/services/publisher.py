"""
Debounced state publishing.

Partial results can arrive many times per second; the renderer gets at most
one state per interval and always the latest one.
"""

import logging
from typing import Callable, Generic, Optional, TypeVar

from ..config import settings
from .timers import Timer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DebouncedPublisher(Generic[T]):
    """Buffers the newest state and emits it at most once per interval."""

    def __init__(self, sink: Callable[[T], None], interval_ms: Optional[int] = None, session_id: str = "-"):
        self._sink = sink
        interval = interval_ms if interval_ms is not None else settings.publish_interval_ms
        self._timer = Timer(interval / 1000.0, self._flush, name="publish timer")
        self._pending: Optional[T] = None
        self._has_pending = False
        self.session_id = session_id
        self.published = 0

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def publish(self, state: T) -> None:
        """Replace the buffered state; schedule a flush unless one is pending."""
        self._pending = state
        self._has_pending = True
        self._timer.start()

    def flush_now(self) -> None:
        """Emit any buffered state synchronously and drop the scheduled flush."""
        self._timer.cancel()
        self._flush()

    def cancel(self) -> None:
        self._timer.cancel()
        self._pending = None
        self._has_pending = False

    def _flush(self) -> None:
        if not self._has_pending:
            return
        state = self._pending
        self._pending = None
        self._has_pending = False
        self.published += 1
        self._sink(state)
