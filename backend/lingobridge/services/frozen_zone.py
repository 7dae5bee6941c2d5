"""
Frozen-zone merging of slow translations.

The slow provider re-translates the whole slot every time and may reword
text the reader has already seen. Everything except the newest
``active_window`` words is frozen: appended once, never rewritten.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class FrozenUpdate:
    frozen_text: str
    active_text: str
    newly_frozen: str = ""


class FrozenZoneMerger:
    """Per-slot frozen prefix bookkeeping."""

    def __init__(
        self,
        active_window: Optional[int] = None,
        separator: Optional[str] = None,
        session_id: str = "-",
    ):
        self.active_window = active_window if active_window is not None else settings.frozen_active_window_words
        self.separator = separator if separator is not None else settings.frozen_separator
        self.session_id = session_id

        self.frozen_text = ""
        self.frozen_word_count = 0  # original words covered by the frozen text
        self.frozen_translation_word_count = 0

    def active_tail(self, translation: str) -> str:
        """Translation words not covered by the frozen prefix."""
        return " ".join(translation.split()[self.frozen_translation_word_count:])

    def merge(
        self,
        new_full_translation: str,
        original_word_count: int,
        active_window: Optional[int] = None,
    ) -> FrozenUpdate:
        """Freeze the stable part of ``new_full_translation``.

        Args:
            new_full_translation: Slow translation of the slot's whole original text
            original_word_count: Word count of the original it translates
            active_window: Optional override of the revisable tail size

        Returns:
            The frozen prefix, the active tail and what was frozen by this call
        """
        window = self.active_window if active_window is None else active_window
        translation_words = new_full_translation.split()
        boundary = max(0, original_word_count - window)

        newly_frozen = ""
        if boundary > self.frozen_word_count:
            translation_boundary = max(0, len(translation_words) - window)
            if translation_boundary > self.frozen_translation_word_count:
                newly_frozen = " ".join(
                    translation_words[self.frozen_translation_word_count:translation_boundary]
                )
                if self.frozen_text:
                    self.frozen_text = f"{self.frozen_text}{self.separator}{newly_frozen}"
                else:
                    self.frozen_text = newly_frozen
                self.frozen_translation_word_count = translation_boundary
            self.frozen_word_count = boundary
            logger.debug(
                f"[{self.session_id}] Frozen zone at {self.frozen_word_count} original / "
                f"{self.frozen_translation_word_count} translated words"
            )

        return FrozenUpdate(
            frozen_text=self.frozen_text,
            active_text=" ".join(translation_words[self.frozen_translation_word_count:]),
            newly_frozen=newly_frozen,
        )
