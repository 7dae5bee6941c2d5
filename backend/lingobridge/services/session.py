"""
Live interpretation session.

One Session owns every piece of per-conversation state. Inputs (transcript
events, audio energy ticks, timer fires, provider results) are posted to a
mailbox and applied by a single runner task in arrival order; provider calls
run as separate tasks and report back through the same mailbox.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..config import settings
from .delta_extractor import DeltaExtractor
from .fast_path import FastTranslator, GhostResult, GhostTranslator, InterimPreview, TERMINAL_PUNCTUATION, append_ghost
from .frozen_zone import FrozenZoneMerger
from .llm_service import Prompt, SlowProvider, SlowResult, build_prompt, parse_slow_output
from .metrics import SessionMetrics
from .publisher import DebouncedPublisher
from .request_queue import QueueItem, RequestOutcome, RequestResult, SingleFlightQueue
from .segmenter import CloseReason, UtteranceBlock, UtteranceSegmenter
from .slow_accumulator import SlowAccumulator
from .speaker_classifier import Speaker, SpeakerClassifier
from .timers import CancellationToken, Timer

logger = logging.getLogger(__name__)


# ==============================================================================
# Mailbox events
# ==============================================================================


@dataclass(frozen=True)
class TranscriptEvent:
    final_text: str
    tentative_text: str = ""
    epoch: int = 0


@dataclass(frozen=True)
class WordsEvent:
    text: str


@dataclass(frozen=True)
class TentativeEvent:
    text: str


@dataclass(frozen=True)
class EnergyEvent:
    left: float
    right: float


@dataclass(frozen=True)
class LocalSpeakingEvent:
    speaking: bool


@dataclass(frozen=True)
class SourceFailureEvent:
    source: str
    message: str = ""


@dataclass(frozen=True)
class LanguageEvent:
    source_lang: Optional[str]
    target_lang: str


@dataclass(frozen=True)
class ForceFlushEvent:
    pass


@dataclass(frozen=True)
class _SilenceElapsed:
    pass


@dataclass(frozen=True)
class _PauseElapsed:
    pass


@dataclass(frozen=True)
class _Tick:
    pass


@dataclass(frozen=True)
class _GhostDone:
    result: GhostResult


@dataclass(frozen=True)
class _InterimDone:
    visible: str
    translation: str


@dataclass(frozen=True)
class _SlowProgress:
    item: QueueItem
    raw: str


@dataclass(frozen=True)
class _SlowFinished:
    result: RequestResult


@dataclass(frozen=True)
class _Stopping:
    finalize: bool


@dataclass(frozen=True)
class _Teardown:
    pass


# ==============================================================================
# Display state
# ==============================================================================


@dataclass
class AssistRecord:
    """Answer suggestions produced alongside a slow translation."""

    analysis: str = ""
    strategy: str = ""
    answer: str = ""
    answer_translation: str = ""


@dataclass
class TranslationRecord:
    """One display slot: a contiguous turn of a single speaker."""

    slot_id: str
    speaker: str
    original: str = ""
    ghost_text: str = ""
    llm_text: str = ""
    frozen_text: str = ""
    frozen_word_count: int = 0
    active_text: str = ""
    interim_text: str = ""
    interim_ghost: str = ""
    status: str = "idle"  # idle|queued|translating|done|cancelled|unavailable
    error: Optional[str] = None
    assist: AssistRecord = field(default_factory=AssistRecord)


def is_duplicate_words(existing: str, new_text: str) -> bool:
    """Heuristics for words a recognizer re-sends after a restart."""
    if not existing:
        return False
    if existing.endswith(new_text):
        return True
    new_words = new_text.lower().split()
    if len(new_words) >= 3:
        probe = " ".join(new_words[:3])
        recent = " ".join(existing.lower().split()[-30:])
        if probe in recent:
            return True
    return len(new_text) <= 50 and new_text.lower() in existing[-100:].lower()


class Session:
    """Streaming transcript accumulation and dual-path translation for one conversation."""

    def __init__(
        self,
        fast_translator: FastTranslator,
        slow_provider: SlowProvider,
        source_lang: Optional[str] = None,
        target_lang: Optional[str] = None,
        view_mode: Optional[str] = None,
        on_state: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        facts: Optional[List[str]] = None,
        classifier: Optional[SpeakerClassifier] = None,
        clock: Callable[[], float] = time.monotonic,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())[:8]
        self.fast_translator = fast_translator
        self.slow_provider = slow_provider
        self.source_lang = source_lang or settings.source_lang
        self.target_lang = target_lang or settings.target_lang
        self.view_mode = view_mode or settings.view_mode
        self._on_state = on_state
        self._on_warning = on_warning
        self._clock = clock
        self.facts: List[str] = list(facts or [])
        self.classifier = classifier or SpeakerClassifier(session_id=self.session_id)

        self.is_active = False
        self.start_time: Optional[float] = None
        self.stop_time: Optional[float] = None
        self._accepting = False
        self._mailbox: Optional[asyncio.Queue] = None
        self._runner: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._reset_state()

    def _reset_state(self) -> None:
        sid = self.session_id
        self.extractor = DeltaExtractor(session_id=sid)
        self.segmenter = UtteranceSegmenter(
            on_silence=lambda: self._post(_SilenceElapsed()),
            clock=self._clock,
            session_id=sid,
        )
        self.accumulator = SlowAccumulator(
            on_pause=lambda: self._post(_PauseElapsed()),
            source_text_for=lambda slot_id: self._records[slot_id].original,
            clock=self._clock,
            session_id=sid,
        )
        self.queue = SingleFlightQueue(
            self._handle_slow,
            on_progress=lambda item, raw: self._post(_SlowProgress(item, raw)),
            on_finished=lambda result: self._post(_SlowFinished(result)),
            session_id=sid,
        )
        self.ghost = GhostTranslator(self.fast_translator, self.source_lang, self.target_lang, clock=self._clock, session_id=sid)
        self.interim = InterimPreview(self.fast_translator, self.source_lang, self.target_lang, session_id=sid)
        self.publisher: DebouncedPublisher[Dict[str, Any]] = DebouncedPublisher(self._emit_state, session_id=sid)
        self._tick_timer = Timer(1.0, lambda: self._post(_Tick()), name="duration timer")
        self.metrics = SessionMetrics()

        self._records: Dict[str, TranslationRecord] = {}
        self._order: List[str] = []
        self._mergers: Dict[str, FrozenZoneMerger] = {}
        self._prompts: Dict[str, Prompt] = {}
        self._current_slot: Optional[str] = None
        self._speaker = Speaker.REMOTE
        self._manual_text = ""
        self._interim_visible = ""
        self._slot_sequence = 0

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start_session(self) -> None:
        """Begin a listening period. Facts from earlier sessions are kept."""
        if self.is_active:
            logger.debug(f"[{self.session_id}] start_session ignored, already active")
            return
        self._reset_state()
        self.classifier.reset()
        self._mailbox = asyncio.Queue()
        self._runner = asyncio.create_task(self._run())
        self.start_time = self._clock()
        self.stop_time = None
        self.is_active = True
        self._accepting = True
        self._tick_timer.start()
        logger.info(
            f"[{self.session_id}] Session started ({self.source_lang} -> {self.target_lang}, "
            f"mode={self.view_mode}, facts={len(self.facts)})"
        )
        self._publish()

    async def stop_session(self, finalize: bool = False) -> Dict[str, Any]:
        """End the session and return the final snapshot.

        Pending words are closed and sent down the fast path. With ``finalize``
        the remaining slow buffer is translated (bounded by the final flush
        timeout) before in-flight work is cancelled.
        """
        if not self.is_active:
            return self.snapshot()
        self._accepting = False
        self._post(_Stopping(finalize))
        await self._mailbox.join()

        await self._drain_tasks(settings.translation_timeout_ms / 1000.0)
        if finalize:
            if not await self.queue.wait_idle(timeout=settings.final_flush_timeout_ms / 1000.0):
                logger.warning(f"[{self.session_id}] Final slow translation did not finish in time")
        discarded = await self.queue.cancel_all()
        self.metrics.slow_discarded += len(discarded)
        for item in discarded:
            self._prompts.pop(item.id, None)
        await self._mailbox.join()

        self._post(_Teardown())
        await self._mailbox.join()

        if self._runner:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None

        summary = self.metrics.get_summary()
        duration = (self.stop_time or 0.0) - (self.start_time or 0.0)
        logger.info(
            f"[{self.session_id}] Session ended: {duration:.1f}s, {summary['words_received']} words, "
            f"{summary['words_translated']} translated, {len(self._order)} slots"
        )
        logger.info(
            f"[{self.session_id}] Ghost latency: p50={summary['ghost']['p50_ms']}ms, "
            f"p95={summary['ghost']['p95_ms']}ms; slow latency: p50={summary['slow']['p50_ms']}ms, "
            f"p95={summary['slow']['p95_ms']}ms"
        )
        return self.snapshot()

    async def wait_idle(self, timeout: float = 5.0) -> None:
        """Wait until every posted event and started provider call has settled."""

        async def _settle() -> None:
            while True:
                await self._mailbox.join()
                tasks = [t for t in self._tasks if not t.done()]
                interim_task = self.interim.task
                if interim_task is not None and not interim_task.done():
                    tasks.append(interim_task)
                if tasks:
                    await asyncio.wait(tasks)
                    continue
                if self.queue.is_busy or self.queue.pending:
                    await self.queue.wait_idle()
                    continue
                if self._mailbox.empty():
                    return

        await asyncio.wait_for(_settle(), timeout=timeout)

    def reset_facts(self) -> None:
        self.facts = []

    # ==========================================================================
    # Inputs
    # ==========================================================================

    def submit_transcript(self, final_text: str, tentative_text: str = "", epoch: int = 0) -> None:
        """Cumulative recognizer event: the entire text heard since the source started."""
        self._post_input(TranscriptEvent(final_text, tentative_text, epoch))

    def add_words(self, text: str) -> None:
        """Incremental finalized words, for sources that do not restate the full text."""
        self._post_input(WordsEvent(text))

    def set_tentative_text(self, text: str) -> None:
        self._post_input(TentativeEvent(text))

    def add_energy_sample(self, left: float, right: float) -> None:
        self._post_input(EnergyEvent(left, right))

    def set_local_speaking(self, speaking: bool) -> None:
        self._post_input(LocalSpeakingEvent(speaking))

    def report_source_failure(self, source: str, message: str = "") -> None:
        self._post_input(SourceFailureEvent(source, message))

    def set_languages(self, source_lang: Optional[str], target_lang: str) -> None:
        self._post_input(LanguageEvent(source_lang, target_lang))

    def force_flush(self) -> None:
        """Close pending words and send the slow buffer now."""
        self._post_input(ForceFlushEvent())

    def _post_input(self, event: Any) -> None:
        if not self._accepting:
            logger.debug(f"[{self.session_id}] Session not active, ignoring {type(event).__name__}")
            return
        self._post(event)

    def _post(self, event: Any) -> None:
        if self._mailbox is not None:
            self._mailbox.put_nowait(event)

    # ==========================================================================
    # Runner
    # ==========================================================================

    async def _run(self) -> None:
        while True:
            event = await self._mailbox.get()
            try:
                if self._dispatch(event):
                    self._publish()
            except Exception as e:
                logger.error(f"[{self.session_id}] Failed to handle {type(event).__name__}: {e}", exc_info=True)
            finally:
                self._mailbox.task_done()

    def _dispatch(self, event: Any) -> bool:
        """Apply one event. Returns True when the visible state may have changed."""
        if isinstance(event, TranscriptEvent):
            return self._on_transcript(event.final_text, event.tentative_text, event.epoch)
        if isinstance(event, WordsEvent):
            return self._on_words(event.text)
        if isinstance(event, TentativeEvent):
            self._update_interim(event.text)
            return True
        if isinstance(event, EnergyEvent):
            self.classifier.add_sample(event.left, event.right)
            return self._refresh_speaker()
        if isinstance(event, LocalSpeakingEvent):
            self.classifier.set_local_speaking(event.speaking)
            return self._refresh_speaker()
        if isinstance(event, SourceFailureEvent):
            return self._on_source_failure(event)
        if isinstance(event, LanguageEvent):
            return self._on_languages(event)
        if isinstance(event, ForceFlushEvent):
            self._close_blocks(self.segmenter.flush(CloseReason.FORCED))
            self._enqueue(self.accumulator.flush())
            return True
        if isinstance(event, _SilenceElapsed):
            blocks = self.segmenter.flush(CloseReason.SILENCE)
            self._close_blocks(blocks)
            return bool(blocks)
        if isinstance(event, _PauseElapsed):
            item = self.accumulator.flush_if_paused()
            self._enqueue(item)
            return item is not None
        if isinstance(event, _Tick):
            if self.is_active:
                self._tick_timer.start()
            return True
        if isinstance(event, _GhostDone):
            return self._on_ghost_done(event.result)
        if isinstance(event, _InterimDone):
            return self._on_interim_done(event.visible, event.translation)
        if isinstance(event, _SlowProgress):
            return self._on_slow_progress(event.item, event.raw)
        if isinstance(event, _SlowFinished):
            return self._on_slow_finished(event.result)
        if isinstance(event, _Stopping):
            self._on_stopping(event.finalize)
            return True
        if isinstance(event, _Teardown):
            self._on_teardown()
            return False
        logger.warning(f"[{self.session_id}] Unknown event {type(event).__name__}")
        return False

    # ==========================================================================
    # Transcript -> blocks
    # ==========================================================================

    def _on_transcript(self, final_text: str, tentative_text: str, epoch: int) -> bool:
        if self.extractor.is_new_epoch(epoch):
            # Words of the old epoch must be committed before the offsets rebase
            self._close_blocks(self.segmenter.flush(CloseReason.FORCED))
        delta = self.extractor.extract(final_text, tentative_text, epoch)
        if delta.duplicate:
            self.metrics.duplicate_events += 1
            return False
        if delta.stale:
            self.metrics.stale_events += 1
            return False
        self._close_blocks(self.segmenter.evaluate(delta))
        self._update_interim(" ".join(self.segmenter.pending_words))
        return True

    def _on_words(self, text: str) -> bool:
        text = text.strip()
        if not text:
            return False
        if is_duplicate_words(self._manual_text, text):
            logger.debug(f"[{self.session_id}] Duplicate words skipped: {text[:40]}")
            self.metrics.duplicate_events += 1
            return False
        self._manual_text = f"{self._manual_text} {text}".strip()
        return self._on_transcript(self._manual_text, "", 0)

    def _close_blocks(self, blocks: List[UtteranceBlock]) -> None:
        for block in blocks:
            self._handle_block(block)

    def _handle_block(self, block: UtteranceBlock) -> None:
        self.extractor.commit(block.word_count)
        self.metrics.blocks_closed += 1
        self.metrics.words_received += block.word_count

        speaker = self.classifier.classify()
        record = self._slot_for(speaker)
        record.original = f"{record.original} {block.text}".strip()

        request = self.ghost.prepare(record.slot_id, block.text)
        if request is None:
            self.metrics.ghost_skipped += 1
        else:
            self.metrics.ghost_requests += 1
            self._spawn(self._ghost_task(request))

        if speaker == Speaker.REMOTE:
            self._enqueue(self.accumulator.add(block))

    def _slot_for(self, speaker: Speaker) -> TranslationRecord:
        current = self._records.get(self._current_slot) if self._current_slot else None
        if current is not None and current.speaker == speaker.value:
            return current

        self._slot_sequence += 1
        slot_id = f"{self.session_id}-s{self._slot_sequence}"
        record = TranslationRecord(slot_id=slot_id, speaker=speaker.value)
        self._records[slot_id] = record
        self._order.append(slot_id)
        self._mergers[slot_id] = FrozenZoneMerger(session_id=self.session_id)
        self._current_slot = slot_id
        if current is not None:
            current.interim_text = ""
            current.interim_ghost = ""
        logger.info(f"[{self.session_id}] New slot {slot_id} (speaker {speaker.value})")

        # A turn change ends the previous remote turn's context window
        self._enqueue(self.accumulator.flush())
        if speaker == Speaker.REMOTE:
            self.accumulator.retarget(slot_id, f"{slot_id}/assist")
        return record

    def _refresh_speaker(self) -> bool:
        speaker = self.classifier.classify()
        if speaker == self._speaker:
            return False
        self._speaker = speaker
        return True

    def _on_source_failure(self, event: SourceFailureEvent) -> bool:
        message = f"{event.source} source failed" + (f": {event.message}" if event.message else "")
        logger.warning(f"[{self.session_id}] {message}")
        if event.source == "audio":
            self.classifier.mark_degraded(event.message)
            self._refresh_speaker()
        if self._on_warning:
            self._on_warning(message)
        return True

    def _on_languages(self, event: LanguageEvent) -> bool:
        if (event.source_lang, event.target_lang) == (self.source_lang, self.target_lang):
            return False
        self.source_lang = event.source_lang
        self.target_lang = event.target_lang
        for path in (self.ghost, self.interim):
            path.source_lang = event.source_lang
            path.target_lang = event.target_lang
        self.interim.reset()
        clear_cache = getattr(self.fast_translator, "clear_cache", None)
        if clear_cache:
            clear_cache()
        logger.info(f"[{self.session_id}] Languages changed to {self.source_lang} -> {self.target_lang}")
        return True

    # ==========================================================================
    # Fast path
    # ==========================================================================

    async def _ghost_task(self, request) -> None:
        result = await self.ghost.run(request)
        self._post(_GhostDone(result))

    def _on_ghost_done(self, result: GhostResult) -> bool:
        record = self._records.get(result.request.slot_id)
        if record is None:
            return False
        self.metrics.record_ghost(result.latency_ms, len(result.request.text.split()), failed=result.failed)
        before = record.ghost_text
        record.ghost_text = append_ghost(record.ghost_text, result, settings.unavailable_marker)
        return record.ghost_text != before

    def _update_interim(self, text: str) -> None:
        self._interim_visible = self.interim.visible_text(text)
        record = self._records.get(self._current_slot) if self._current_slot else None
        if record is not None:
            record.interim_text = self._interim_visible
        self.interim.schedule(text, lambda visible, translation: self._post(_InterimDone(visible, translation)))

    def _on_interim_done(self, visible: str, translation: str) -> bool:
        if visible != self._interim_visible:
            return False  # superseded
        record = self._records.get(self._current_slot) if self._current_slot else None
        if record is None:
            return False
        record.interim_text = visible
        record.interim_ghost = translation
        return True

    # ==========================================================================
    # Slow path
    # ==========================================================================

    def _enqueue(self, item: Optional[QueueItem]) -> None:
        if item is None:
            return
        record = self._records[item.translation_target_id]
        self._prompts[item.id] = build_prompt(
            item.source_text,
            self._display_translation(record),
            self.source_lang,
            self.target_lang,
            view_mode=self.view_mode,
            facts=self.facts,
        )
        record.status = "queued" if self.queue.is_busy else "translating"
        record.error = None
        self.metrics.slow_requests += 1
        self.queue.enqueue(item)

    async def _handle_slow(self, item: QueueItem, token: CancellationToken, report_partial) -> str:
        prompt = self._prompts[item.id]
        return await self.slow_provider.generate(prompt, report_partial, token)

    @staticmethod
    def _display_translation(record: TranslationRecord) -> str:
        return f"{record.frozen_text} {record.active_text}".strip()

    def _on_slow_progress(self, item: QueueItem, raw: str) -> bool:
        record = self._records.get(item.translation_target_id)
        if record is None or not self.queue.current or self.queue.current.id != item.id:
            return False
        result = parse_slow_output(raw)
        record.status = "translating"
        if result.input_translation:
            record.llm_text = result.input_translation
            record.active_text = self._mergers[record.slot_id].active_tail(record.llm_text)
        self._apply_assist(item, result)
        return True

    def _on_slow_finished(self, outcome: RequestResult) -> bool:
        item = outcome.item
        self._prompts.pop(item.id, None)
        self.metrics.record_slow(outcome.latency_ms, outcome.outcome.value)
        record = self._records.get(item.translation_target_id)
        if record is None:
            return False
        merger = self._mergers[record.slot_id]
        still_queued = any(p.translation_target_id == record.slot_id for p in self.queue.pending)

        if outcome.outcome == RequestOutcome.COMPLETED:
            result = parse_slow_output(outcome.value or "")
            if result.input_translation:
                record.llm_text = result.input_translation
                update = merger.merge(record.llm_text, len(item.source_text.split()))
                record.frozen_text = update.frozen_text
                record.frozen_word_count = merger.frozen_word_count
                record.active_text = update.active_text
            self._apply_assist(item, result)
            self._apply_intent(result)
            record.status = "queued" if still_queued else "done"
            record.error = None
            return True

        if outcome.outcome == RequestOutcome.CANCELLED:
            if outcome.value:
                result = parse_slow_output(outcome.value)
                if result.input_translation:
                    record.llm_text = result.input_translation
                    record.active_text = merger.active_tail(record.llm_text)
                self._apply_assist(item, result)
            record.active_text = f"{record.active_text} {settings.cancelled_marker}".strip()
            record.status = "cancelled"
            return True

        record.status = "unavailable"
        record.error = settings.unavailable_marker
        return True

    def _apply_assist(self, item: QueueItem, result: SlowResult) -> None:
        record = self._records.get(item.translation_target_id)
        if record is None:
            return
        assist = record.assist
        assist.analysis = result.analysis or assist.analysis
        assist.strategy = result.strategy or assist.strategy
        assist.answer = result.answer or assist.answer
        assist.answer_translation = result.answer_translation or assist.answer_translation

    def _apply_intent(self, result: SlowResult) -> None:
        if result.is_question:
            self.ghost.question_detected = True
        if result.speech_type == "INFO" and result.input_translation:
            fact = result.input_translation.strip()
            if fact not in self.facts:
                self.facts.append(fact)
                logger.info(f"[{self.session_id}] Fact stored ({len(self.facts)} total): {fact[:60]}")

    # ==========================================================================
    # Teardown
    # ==========================================================================

    def _on_stopping(self, finalize: bool) -> None:
        self._tick_timer.cancel()
        self.interim.cancel()
        self._close_blocks(self.segmenter.flush(CloseReason.FORCED))
        self.segmenter.cancel()
        if finalize:
            self._enqueue(self.accumulator.flush())
        self.accumulator.cancel()
        for record in self._records.values():
            record.interim_text = ""
            record.interim_ghost = ""

    def _on_teardown(self) -> None:
        record = self._records.get(self._current_slot) if self._current_slot else None
        if record is not None and self._needs_closing_mark(record.ghost_text):
            record.ghost_text = record.ghost_text.rstrip() + self.ghost.end_sentence_mark()
        self.is_active = False
        self.stop_time = self._clock()
        self.publisher.publish(self.snapshot())
        self.publisher.flush_now()

    @staticmethod
    def _needs_closing_mark(ghost_text: str) -> bool:
        text = ghost_text.rstrip()
        if not text or TERMINAL_PUNCTUATION.search(text):
            return False
        return not text.endswith((settings.unavailable_marker, settings.cancelled_marker))

    async def _drain_tasks(self, timeout: float) -> None:
        tasks = [t for t in self._tasks if not t.done()]
        if not tasks:
            await self._mailbox.join()
            return
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"[{self.session_id}] Cancelled {len(still_running)} fast translation(s) at stop")
            await asyncio.wait(still_running)
        await self._mailbox.join()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ==========================================================================
    # State
    # ==========================================================================

    def _publish(self) -> None:
        self.publisher.publish(self.snapshot())

    def _emit_state(self, state: Dict[str, Any]) -> None:
        if self._on_state:
            self._on_state(state)

    def _is_busy(self, slot_id: str) -> bool:
        current = self.queue.current
        if current is not None and current.translation_target_id == slot_id:
            return True
        return any(p.translation_target_id == slot_id for p in self.queue.pending)

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view of the session for the presentation layer."""
        slots = []
        for slot_id in self._order:
            record = self._records[slot_id]
            slots.append({
                "slot_id": slot_id,
                "speaker": record.speaker,
                "original": record.original,
                "ghost_translation": record.ghost_text,
                "frozen_translation": record.frozen_text,
                "active_translation": record.active_text,
                "frozen_word_count": record.frozen_word_count,
                "interim_text": record.interim_text,
                "interim_translation": record.interim_ghost,
                "is_busy": self.is_active and self._is_busy(slot_id),
                "status": record.status,
                "error": record.error,
                "assist": {
                    "analysis": record.assist.analysis,
                    "strategy": record.assist.strategy,
                    "answer": record.assist.answer,
                    "answer_translation": record.assist.answer_translation,
                },
            })
        duration = 0.0
        if self.start_time is not None:
            end = self.stop_time if self.stop_time is not None else self._clock()
            duration = end - self.start_time
        return {
            "session_id": self.session_id,
            "is_active": self.is_active,
            "word_count": self.extractor.committed_word_count,
            "duration": round(duration, 1),
            "speaker": self._speaker.value,
            "diarization_degraded": self.classifier.degraded,
            "facts": list(self.facts),
            "slots": slots,
            "stats": self.metrics.get_summary(),
        }
