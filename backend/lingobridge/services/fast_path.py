"""
Fast ("ghost") translation path.

Every closed block is translated right away by the fast translator and
appended to the slot's ghost text. The ghost text is append-only: repeated
deliveries are skipped and earlier text is never replaced.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from ..config import settings

logger = logging.getLogger(__name__)

QUESTION_WORDS = {
    # Norwegian
    "hva", "hvem", "hvor", "hvorfor", "hvordan", "når", "hvilken", "hvilke", "hvilket",
    "kan", "kunne", "vil", "ville", "skal", "skulle", "er", "har", "hadde", "gjør", "må",
    # English
    "what", "who", "where", "why", "how", "when", "which", "whose",
    "can", "could", "would", "will", "shall", "should", "is", "are", "do", "does", "did", "have", "has",
}

TERMINAL_PUNCTUATION = re.compile(r"[.?!…。！？]$")
MIN_SUFFIX_CHECK_CHARS = 10
RECENT_CONTEXT_CHARS = 300


class FastTranslator(Protocol):
    async def translate(self, words: str, source_lang: Optional[str], target_lang: str) -> str:
        ...


def punctuation_mark(sentence: str, question_detected: bool = False) -> str:
    """Pick the mark that ends a sentence before a paragraph break.

    Returns '' for fragments shorter than three words.
    """
    words = sentence.split()
    if len(words) < 3:
        return ""
    if sentence.rstrip().endswith("?") or question_detected:
        return "?"
    first = words[0].lower().strip(",.!?;:\"'")
    if first in QUESTION_WORDS:
        return "?"
    return "."


@dataclass(frozen=True)
class GhostRequest:
    slot_id: str
    text: str
    paragraph_break: bool
    mark: str
    requested_at: float


@dataclass(frozen=True)
class GhostResult:
    request: GhostRequest
    translation: str
    failed: bool = False
    latency_ms: float = 0.0


class GhostTranslator:
    """Schedules fast translations for closed blocks, strictly in arrival order."""

    def __init__(
        self,
        translator: FastTranslator,
        source_lang: Optional[str],
        target_lang: str,
        paragraph_pause_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        session_id: str = "-",
    ):
        self.translator = translator
        self.source_lang = source_lang
        self.target_lang = target_lang
        pause_ms = paragraph_pause_ms if paragraph_pause_ms is not None else settings.paragraph_pause_ms
        self.paragraph_pause_s = pause_ms / 1000.0
        self._clock = clock
        self.session_id = session_id

        self._lock = asyncio.Lock()  # FIFO, keeps appends in arrival order
        self._last_input = ""
        self._recent_inputs = ""
        self._last_word_time: Optional[float] = None
        self._sentence: List[str] = []
        self.question_detected = False

    def reset(self) -> None:
        self._last_input = ""
        self._recent_inputs = ""
        self._last_word_time = None
        self._sentence = []
        self.question_detected = False

    def prepare(self, slot_id: str, new_words: str) -> Optional[GhostRequest]:
        """Check idempotence and decide the separator for ``new_words``.

        Returns None when the words were already translated.
        """
        text = new_words.strip()
        if not text:
            return None
        if text == self._last_input:
            logger.debug(f"[{self.session_id}] Ghost skip (repeat): {text[:30]}")
            return None
        if len(text) > MIN_SUFFIX_CHECK_CHARS and self._recent_inputs.endswith(text):
            logger.debug(f"[{self.session_id}] Ghost skip (already in context): {text[:30]}")
            return None

        now = self._clock()
        paragraph_break = (
            self._last_word_time is not None
            and now - self._last_word_time >= self.paragraph_pause_s
        )
        mark = ""
        if paragraph_break:
            mark = punctuation_mark(" ".join(self._sentence), self.question_detected)
            self._sentence = []
            self.question_detected = False

        self._last_input = text
        self._recent_inputs = (self._recent_inputs + " " + text).strip()[-RECENT_CONTEXT_CHARS:]
        self._last_word_time = now
        self._sentence.extend(text.split())
        return GhostRequest(slot_id, text, paragraph_break, mark, now)

    def end_sentence_mark(self) -> str:
        """Closing mark for the sentence still open at session stop."""
        mark = punctuation_mark(" ".join(self._sentence), self.question_detected)
        self._sentence = []
        return mark

    async def run(self, request: GhostRequest) -> GhostResult:
        """Translate one request. Failures become a result, not an exception."""
        async with self._lock:
            start = time.perf_counter()
            try:
                translation = await self.translator.translate(request.text, self.source_lang, self.target_lang)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[{self.session_id}] Ghost translation failed: {e}")
                return GhostResult(request, "", failed=True)
            latency_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"[{self.session_id}] Ghost {latency_ms:.0f}ms: {request.text[:30]} -> {translation[:30]}")
            return GhostResult(request, translation.strip(), latency_ms=latency_ms)


def append_ghost(ghost_text: str, result: GhostResult, unavailable_marker: str) -> str:
    """Append a fast result to existing ghost text without touching what is there."""
    addition = unavailable_marker if result.failed else result.translation
    if not addition:
        return ghost_text
    if ghost_text.endswith(addition):
        return ghost_text
    if not ghost_text:
        return addition

    request = result.request
    if request.paragraph_break:
        mark = "" if TERMINAL_PUNCTUATION.search(ghost_text.rstrip()) else request.mark
        return f"{ghost_text.rstrip()}{mark}\n\n{addition}"
    return f"{ghost_text} {addition}"


# ==============================================================================
# Interim preview
# ==============================================================================


class InterimPreview:
    """Live translation of tentative words.

    The last ``hold_words`` tentative words are hidden because they change the
    most. A newer tentative text supersedes any preview still in flight.
    """

    def __init__(
        self,
        translator: FastTranslator,
        source_lang: Optional[str],
        target_lang: str,
        hold_words: Optional[int] = None,
        translate_last_n: Optional[int] = None,
        debounce_ms: Optional[int] = None,
        session_id: str = "-",
    ):
        self.translator = translator
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.hold_words = hold_words if hold_words is not None else settings.interim_hold_words
        self.translate_last_n = translate_last_n if translate_last_n is not None else settings.interim_translate_last_n
        debounce = debounce_ms if debounce_ms is not None else settings.interim_debounce_ms
        self.debounce_s = debounce / 1000.0
        self.session_id = session_id

        self._prefix_source = ""
        self._prefix_translation = ""
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def visible_text(self, text: str) -> str:
        words = text.split()
        if len(words) <= self.hold_words:
            return ""
        return " ".join(words[:len(words) - self.hold_words])

    async def translate(self, visible: str) -> str:
        """Translate ``visible``, reusing the cached prefix translation when possible."""
        words = visible.split()
        if not words:
            return ""
        if len(words) <= self.translate_last_n * 2:
            return await self.translator.translate(visible, self.source_lang, self.target_lang)

        prefix = " ".join(words[:-self.translate_last_n])
        tail = " ".join(words[-self.translate_last_n:])
        if prefix != self._prefix_source:
            self._prefix_translation = await self.translator.translate(prefix, self.source_lang, self.target_lang)
            self._prefix_source = prefix
        tail_translation = await self.translator.translate(tail, self.source_lang, self.target_lang)
        return f"{self._prefix_translation} {tail_translation}".strip()

    def schedule(self, text: str, on_result: Callable[[str, str], None]) -> None:
        """Debounced, latest-wins preview of ``text``; ``on_result(visible, translation)``."""
        self.cancel()
        visible = self.visible_text(text)
        if not visible:
            on_result("", "")
            return
        self._task = asyncio.create_task(self._run(visible, on_result))

    async def _run(self, visible: str, on_result: Callable[[str, str], None]) -> None:
        try:
            await asyncio.sleep(self.debounce_s)
            translation = await self.translate(visible)
        except asyncio.CancelledError:
            logger.debug(f"[{self.session_id}] Interim preview superseded")
            return
        except Exception as e:
            logger.warning(f"[{self.session_id}] Interim translation failed: {e}")
            return
        on_result(visible, translation)

    def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    def reset(self) -> None:
        self.cancel()
        self._prefix_source = ""
        self._prefix_translation = ""
