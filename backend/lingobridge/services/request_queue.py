"""
Single-flight request queue for slow provider calls.

At most one request runs at a time; the rest wait in FIFO order. Cancelling
is cooperative: the in-flight request sees its token flip at the next partial
and ends with whatever it produced so far.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, List, Optional

from ..config import settings
from .timers import CancellationToken, OperationCancelled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueItem:
    """One slow request. Never mutated after creation."""

    id: str
    text: str
    response_target_id: str
    translation_target_id: str
    source_text: str = ""
    created_at: float = field(default_factory=time.monotonic)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class RequestOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RequestResult:
    item: QueueItem
    outcome: RequestOutcome
    value: Any = None  # final value, or the last partial when cancelled
    error: Optional[str] = None
    latency_ms: float = 0.0


Handler = Callable[[QueueItem, CancellationToken, Callable[[Any], None]], Awaitable[Any]]


class SingleFlightQueue:
    """Runs queued items one at a time through ``handler``.

    ``handler(item, token, report_partial)`` performs the request. Partials go
    to ``on_progress(item, partial)``; every item that starts ends with exactly
    one ``on_finished(RequestResult)``.
    """

    def __init__(
        self,
        handler: Handler,
        on_progress: Optional[Callable[[QueueItem, Any], None]] = None,
        on_finished: Optional[Callable[[RequestResult], None]] = None,
        cancel_grace_ms: Optional[int] = None,
        session_id: str = "-",
    ):
        self._handler = handler
        self._on_progress = on_progress
        self._on_finished = on_finished
        grace_ms = cancel_grace_ms if cancel_grace_ms is not None else settings.cancel_grace_ms
        self._cancel_grace_s = grace_ms / 1000.0
        self.session_id = session_id

        self._pending: Deque[QueueItem] = deque()
        self._current: Optional[QueueItem] = None
        self._current_task: Optional[asyncio.Task] = None
        self._current_token: Optional[CancellationToken] = None
        self._closed = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_busy(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Optional[QueueItem]:
        return self._current

    @property
    def pending(self) -> List[QueueItem]:
        return list(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, item: QueueItem) -> None:
        if self._closed:
            logger.debug(f"[{self.session_id}] Queue closed, dropping {item.id}")
            return
        self._pending.append(item)
        logger.debug(f"[{self.session_id}] Enqueued {item.id} ({item.word_count} words, {len(self._pending)} waiting)")
        if not self.is_busy:
            self._start_next()

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until nothing is running or waiting. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def cancel_all(self) -> List[QueueItem]:
        """Stop accepting work, discard waiting items and cancel the running one.

        Returns the discarded items. The running item still reports its last
        partial through ``on_finished`` before this returns.
        """
        self._closed = True
        discarded = list(self._pending)
        self._pending.clear()
        if discarded:
            logger.info(f"[{self.session_id}] Discarded {len(discarded)} queued request(s)")

        task = self._current_task
        if self._current_token is not None:
            self._current_token.cancel("session stopped")
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=self._cancel_grace_s)
            if not done:
                logger.warning(f"[{self.session_id}] Provider ignored cancellation, cancelling task")
                task.cancel()
                await asyncio.wait({task})
        return discarded

    def _start_next(self) -> None:
        if self._closed or self.is_busy or not self._pending:
            if not self.is_busy and not self._pending:
                self._idle.set()
            return
        item = self._pending.popleft()
        token = CancellationToken()
        self._current = item
        self._current_token = token
        self._idle.clear()
        self._current_task = asyncio.create_task(self._run(item, token))

    async def _run(self, item: QueueItem, token: CancellationToken) -> None:
        last_partial: Any = None

        def report_partial(partial: Any) -> None:
            nonlocal last_partial
            last_partial = partial
            if self._on_progress and not token.cancelled:
                self._on_progress(item, partial)

        start = time.perf_counter()
        result = RequestResult(item, RequestOutcome.CANCELLED)
        try:
            value = await self._handler(item, token, report_partial)
            if token.cancelled:
                result = RequestResult(item, RequestOutcome.CANCELLED, value=last_partial)
            else:
                result = RequestResult(item, RequestOutcome.COMPLETED, value=value)
        except OperationCancelled:
            result = RequestResult(item, RequestOutcome.CANCELLED, value=last_partial)
        except asyncio.CancelledError:
            result = RequestResult(item, RequestOutcome.CANCELLED, value=last_partial)
            if not token.cancelled:
                raise
        except Exception as e:
            logger.warning(f"[{self.session_id}] Request {item.id} failed: {e}")
            result = RequestResult(item, RequestOutcome.FAILED, value=last_partial, error=str(e))
        finally:
            result.latency_ms = (time.perf_counter() - start) * 1000
            logger.info(
                f"[{self.session_id}] Request {item.id} {result.outcome.value} "
                f"in {result.latency_ms:.0f}ms"
            )
            self._current = None
            self._current_task = None
            self._current_token = None
            if self._on_finished:
                try:
                    self._on_finished(result)
                except Exception as e:
                    logger.error(f"[{self.session_id}] on_finished failed for {item.id}: {e}")
            self._start_next()
