"""
Utterance segmentation.

Collects uncommitted words into a block and decides when the block is closed
and handed to the translation paths.
"""

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..config import settings
from .delta_extractor import Delta
from .timers import Timer

logger = logging.getLogger(__name__)

SENTENCE_END_REGEX = re.compile(r"[.!?…。！？]+[\"'»”)\]]*$")


class CloseReason(str, Enum):
    MAX_WORDS = "max_words"
    SENTENCE_END = "sentence_end"
    SILENCE = "silence"
    OVERFLOW = "overflow"
    FORCED = "forced"


@dataclass(frozen=True)
class UtteranceBlock:
    """A closed, immutable span of transcript words."""

    text: str
    word_count: int
    created_at: float
    reason: CloseReason
    speaker: Optional[str] = None


class UtteranceSegmenter:
    """Decides when pending transcript words form a closed block.

    Close conditions, in order:
    (a) new final words and the pending count reached the hard maximum
    (b) new final words, sentence floor reached and sentence-terminal punctuation
    (c) the silence timer fired (handled by the owner via :meth:`flush`)
    (d) overflow ceiling reached, even with tentative words only

    A block never holds more than ``max_words`` words; a longer pending run is
    split and the remainder evaluated again.
    """

    def __init__(
        self,
        on_silence: Optional[Callable[[], None]] = None,
        silence_timeout_ms: Optional[int] = None,
        max_words: Optional[int] = None,
        min_words_for_sentence: Optional[int] = None,
        overflow_words: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        session_id: str = "-",
    ):
        timeout_ms = silence_timeout_ms if silence_timeout_ms is not None else settings.block_silence_timeout_ms
        self.max_words = max_words if max_words is not None else settings.block_max_words
        self.min_words_for_sentence = (
            min_words_for_sentence if min_words_for_sentence is not None
            else settings.block_min_words_for_sentence
        )
        self.overflow_words = overflow_words if overflow_words is not None else settings.block_overflow_words
        self._clock = clock
        self.session_id = session_id

        self._pending: List[str] = []
        self._pending_final = 0  # leading pending words that are finalized
        self._silence_timer = Timer(timeout_ms / 1000.0, on_silence or self._ignore_silence, name="silence timer")

    @property
    def pending_words(self) -> List[str]:
        return list(self._pending)

    def should_close(self, words: List[str], has_final: bool) -> Optional[CloseReason]:
        """Evaluate the size and punctuation close conditions for ``words``."""
        count = len(words)
        if count == 0:
            return None
        if has_final and count >= self.max_words:
            return CloseReason.MAX_WORDS
        if has_final and count >= self.min_words_for_sentence and SENTENCE_END_REGEX.search(words[-1]):
            return CloseReason.SENTENCE_END
        if count >= self.overflow_words:
            return CloseReason.OVERFLOW
        return None

    def evaluate(self, delta: Delta) -> List[UtteranceBlock]:
        """Replace the pending words with ``delta`` and close any ready blocks."""
        words = delta.words
        if words != self._pending and len(words) > 0:
            self._silence_timer.restart()
        self._pending = words
        self._pending_final = len(delta.new_final_words)

        blocks = []
        while True:
            reason = self.should_close(self._pending, self._pending_final > 0)
            if reason is None:
                break
            blocks.append(self._take_block(reason))
        return blocks

    def flush(self, reason: CloseReason = CloseReason.SILENCE) -> List[UtteranceBlock]:
        """Close everything pending, in blocks of at most ``max_words``."""
        blocks = []
        while self._pending:
            blocks.append(self._take_block(reason))
        return blocks

    def cancel(self) -> None:
        self._silence_timer.cancel()

    def reset(self) -> None:
        self.cancel()
        self._pending = []
        self._pending_final = 0

    def _take_block(self, reason: CloseReason) -> UtteranceBlock:
        taken = self._pending[:self.max_words]
        self._pending = self._pending[len(taken):]
        self._pending_final = max(0, self._pending_final - len(taken))

        if self._pending:
            self._silence_timer.restart()
        else:
            self._silence_timer.cancel()

        block = UtteranceBlock(
            text=" ".join(taken),
            word_count=len(taken),
            created_at=self._clock(),
            reason=reason,
        )
        logger.debug(f"[{self.session_id}] Block closed ({reason.value}, {block.word_count} words)")
        return block

    def _ignore_silence(self) -> None:
        logger.debug(f"[{self.session_id}] Silence timer fired without an owner")
