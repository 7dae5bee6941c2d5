"""
Delta extraction from a cumulative transcript.

The recognizer restates the entire text heard so far on every event, so the
new words are found by slicing off the words already committed downstream.
"""

import logging
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)


def split_words(text: str) -> List[str]:
    return text.split() if text else []


@dataclass
class TranscriptState:
    """Per-session transcript bookkeeping."""

    committed_word_count: int = 0
    last_full_text: str = ""
    epoch: int = 0
    epoch_base: int = 0  # committed count when the current source epoch began


@dataclass
class Delta:
    """Words not yet committed, split into finalized and tentative parts."""

    new_final_words: List[str] = field(default_factory=list)
    new_tentative_words: List[str] = field(default_factory=list)
    total_word_count: int = 0
    duplicate: bool = False
    stale: bool = False  # shorter than what is already committed

    @property
    def words(self) -> List[str]:
        return self.new_final_words + self.new_tentative_words

    @property
    def word_count(self) -> int:
        return len(self.new_final_words) + len(self.new_tentative_words)

    @property
    def has_final(self) -> bool:
        return bool(self.new_final_words)

    @property
    def text(self) -> str:
        return " ".join(self.words)


class DeltaExtractor:
    """Turns cumulative transcript events into incremental word deltas.

    ``committed_word_count`` only advances through :meth:`commit`, which the
    session calls when a block is closed. Events that skip ahead simply yield
    a larger delta.
    """

    def __init__(self, session_id: str = "-"):
        self.session_id = session_id
        self.state = TranscriptState()

    @property
    def committed_word_count(self) -> int:
        return self.state.committed_word_count

    def reset(self) -> None:
        self.state = TranscriptState()

    def is_new_epoch(self, epoch: int) -> bool:
        """True when an event with ``epoch`` would restart the source offsets."""
        return epoch != self.state.epoch

    def extract(self, final_text: str, tentative_text: str = "", epoch: int = 0) -> Delta:
        """Compute the uncommitted words of a cumulative event.

        Args:
            final_text: Entire finalized text since the source (re)started
            tentative_text: Current tentative tail, may be empty
            epoch: Source restart counter; a new epoch starts counting from zero

        Returns:
            Delta with the uncommitted final and tentative words
        """
        state = self.state
        if epoch != state.epoch:
            logger.info(
                f"[{self.session_id}] Transcript source restarted "
                f"(epoch {state.epoch} -> {epoch}, committed={state.committed_word_count})"
            )
            state.epoch = epoch
            state.epoch_base = state.committed_word_count
            state.last_full_text = ""

        final_words = split_words(final_text)
        tentative_words = split_words(tentative_text)
        full_text = " ".join(final_words + tentative_words)
        total = len(final_words) + len(tentative_words)

        if full_text == state.last_full_text:
            return Delta(total_word_count=total, duplicate=True)

        offset = state.committed_word_count - state.epoch_base
        if total < offset:
            # Late restatement; the last full text stays the reference
            logger.debug(f"[{self.session_id}] Stale transcript event ({total} < {offset} committed words)")
            return Delta(total_word_count=total, stale=True)
        state.last_full_text = full_text

        new_final = final_words[offset:]
        tentative_offset = max(0, offset - len(final_words))
        new_tentative = tentative_words[tentative_offset:]
        return Delta(
            new_final_words=new_final,
            new_tentative_words=new_tentative,
            total_word_count=total,
        )

    def commit(self, word_count: int) -> None:
        """Advance the committed counter by the words of a closed block."""
        if word_count <= 0:
            return
        self.state.committed_word_count += word_count
