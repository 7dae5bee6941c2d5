"""
Slow translation accumulator.

Gathers closed blocks into a larger context window before the slow provider
is asked, since it translates much better with more context.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import settings
from .request_queue import QueueItem
from .segmenter import UtteranceBlock
from .timers import Timer

logger = logging.getLogger(__name__)


@dataclass
class AccumulatorBuffer:
    text: str = ""
    word_count: int = 0
    target_id: str = ""
    response_target_id: str = ""
    last_activity_time: Optional[float] = None


class SlowAccumulator:
    """Word-count and pause gated buffer in front of the request queue.

    Flush triggers:
    - word count reached the ceiling
    - word count reached the floor and the writer paused (checked when the
      next block arrives and by the pause timer)
    - explicit :meth:`flush`

    Below the floor nothing flushes on time alone.
    """

    def __init__(
        self,
        on_pause: Optional[Callable[[], None]] = None,
        source_text_for: Optional[Callable[[str], str]] = None,
        min_words: Optional[int] = None,
        max_words: Optional[int] = None,
        pause_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        session_id: str = "-",
    ):
        self.min_words = min_words if min_words is not None else settings.llm_min_words
        self.max_words = max_words if max_words is not None else settings.llm_max_words
        pause = pause_ms if pause_ms is not None else settings.llm_pause_ms
        self.pause_s = pause / 1000.0
        self._source_text_for = source_text_for
        self._clock = clock
        self.session_id = session_id

        self.buffer = AccumulatorBuffer()
        self._pause_timer = Timer(self.pause_s, on_pause or self._flush_on_pause_unowned, name="pause timer")
        self._sequence = 0

    @property
    def target_id(self) -> str:
        return self.buffer.target_id

    def retarget(self, target_id: str, response_target_id: str = "") -> Optional[QueueItem]:
        """Point the buffer at a new display slot, flushing words meant for the old one."""
        if target_id == self.buffer.target_id:
            return None
        item = self.flush() if self.buffer.word_count else None
        self.buffer.target_id = target_id
        self.buffer.response_target_id = response_target_id or target_id
        return item

    def add(self, block: UtteranceBlock) -> Optional[QueueItem]:
        """Add a closed block; returns the QueueItem if this addition flushed."""
        if block.word_count <= 0:
            return None

        now = self._clock()
        buf = self.buffer
        paused = (
            buf.word_count > 0
            and buf.last_activity_time is not None
            and now - buf.last_activity_time >= self.pause_s
        )

        buf.text = f"{buf.text} {block.text}".strip()
        buf.word_count += block.word_count
        buf.last_activity_time = now

        if buf.word_count >= self.max_words:
            return self._flush("ceiling")
        if paused and buf.word_count >= self.min_words:
            return self._flush("pause")

        self._pause_timer.restart()
        return None

    def flush_if_paused(self) -> Optional[QueueItem]:
        """Pause timer fired: flush if the floor is reached."""
        if self.buffer.word_count >= self.min_words:
            return self._flush("pause")
        if self.buffer.word_count:
            logger.debug(
                f"[{self.session_id}] Pause with {self.buffer.word_count} words, "
                f"waiting for {self.min_words}"
            )
        return None

    def flush(self) -> Optional[QueueItem]:
        """Forced flush. An empty buffer is a no-op."""
        if not self.buffer.word_count:
            return None
        return self._flush("forced")

    def cancel(self) -> None:
        self._pause_timer.cancel()

    def reset(self) -> None:
        self.cancel()
        self.buffer = AccumulatorBuffer()

    def _flush(self, trigger: str) -> QueueItem:
        self._pause_timer.cancel()
        buf = self.buffer
        self._sequence += 1
        item = QueueItem(
            id=f"{self.session_id}-{self._sequence}-{uuid.uuid4().hex[:6]}",
            text=buf.text,
            response_target_id=buf.response_target_id or buf.target_id,
            translation_target_id=buf.target_id,
            source_text=self._source_text_for(buf.target_id) if self._source_text_for else buf.text,
            created_at=self._clock(),
        )
        logger.info(f"[{self.session_id}] Accumulator flush ({trigger}): {buf.word_count} words -> {item.id}")
        self.buffer = AccumulatorBuffer(
            target_id=buf.target_id,
            response_target_id=buf.response_target_id,
        )
        return item

    def _flush_on_pause_unowned(self) -> None:
        logger.debug(f"[{self.session_id}] Pause timer fired without an owner")
