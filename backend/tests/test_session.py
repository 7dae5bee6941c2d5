"""
End-to-end session flow with fake providers.
"""

import pytest

from conftest import FakeSlowProvider, FakeTranslator, wait_for
from lingobridge.config import settings
from lingobridge.services.llm_service import ProviderError
from lingobridge.services.session import Session, is_duplicate_words


def make_session(translator, slow_provider, clock, **kwargs) -> Session:
    params = dict(source_lang="nb", target_lang="en", clock=clock, session_id="test")
    params.update(kwargs)
    return Session(translator, slow_provider, **params)


def slot(state, index=0):
    return state["slots"][index]


@pytest.mark.asyncio
async def test_sentence_end_goes_down_fast_path(translator, slow_provider, clock):
    """Test a finished sentence is translated by the fast path only."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("hei alle sammen, hvordan går det?")
    await session.wait_idle()

    state = session.snapshot()
    assert state["word_count"] == 6
    assert slot(state)["original"] == "hei alle sammen, hvordan går det?"
    assert slot(state)["ghost_translation"] == "<hei alle sammen, hvordan går det?>"
    assert slot(state)["speaker"] == "B"
    # Below the slow floor, nothing sent yet
    assert slow_provider.prompts == []
    await session.stop_session()


@pytest.mark.asyncio
async def test_duplicate_event_is_ignored(translator, slow_provider, clock):
    """Test a repeated transcript event causes no extra translation."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("en to tre fire fem.")
    session.submit_transcript("en to tre fire fem.")
    await session.wait_idle()

    assert translator.calls == ["en to tre fire fem."]
    assert session.snapshot()["stats"]["duplicate_events"] == 1
    await session.stop_session()


@pytest.mark.asyncio
async def test_forced_flush_closes_block_and_translates_slowly(translator, slow_provider, clock):
    """Test a forced flush closes pending words and runs the slow path."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("hello")
    session.submit_transcript("hello world how are you")
    await session.wait_idle()
    assert session.snapshot()["slots"] == []

    session.force_flush()
    await session.wait_idle()

    state = session.snapshot()
    assert slot(state)["original"] == "hello world how are you"
    assert slot(state)["ghost_translation"] == "<hello world how are you>"
    assert slot(state)["active_translation"] == "translated text"
    assert slot(state)["frozen_translation"] == ""
    assert slot(state)["status"] == "done"
    assert "Input:\nhello world how are you" in slow_provider.prompts[0].user
    await session.stop_session()


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_request_keeping_partial(translator, clock):
    """Test stopping keeps the partial slow text with a cancelled marker."""
    provider = FakeSlowProvider(hold=True)
    session = make_session(translator, provider, clock)
    await session.start_session()

    session.submit_transcript("en to tre fire fem seks")
    session.force_flush()
    await wait_for(lambda: session.snapshot()["slots"] and slot(session.snapshot())["active_translation"] == "translated text")

    state = await session.stop_session()

    assert not state["is_active"]
    assert slot(state)["active_translation"] == "translated text [cancelled]"
    assert slot(state)["status"] == "cancelled"
    assert state["stats"]["slow"]["cancelled"] == 1
    assert provider.in_flight == 0


@pytest.mark.asyncio
async def test_stop_without_finalize_drops_slow_buffer(translator, slow_provider, clock):
    """Test a plain stop translates pending words fast but not slowly."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("en to tre fire fem")
    state = await session.stop_session()

    # Pending words still reach the fast path, the slow buffer is discarded
    assert slot(state)["ghost_translation"] == "<en to tre fire fem>."
    assert slow_provider.prompts == []


@pytest.mark.asyncio
async def test_finalize_translates_remaining_buffer(translator, slow_provider, clock):
    """Test a finalizing stop sends the slow buffer before shutting down."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("en to tre fire fem")
    state = await session.stop_session(finalize=True)

    assert len(slow_provider.prompts) == 1
    assert slot(state)["active_translation"] == "translated text"
    assert slot(state)["status"] == "done"


@pytest.mark.asyncio
async def test_inputs_after_stop_are_ignored(translator, slow_provider, clock):
    """Test events after stop change nothing."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()
    await session.stop_session()

    session.submit_transcript("for sent.")
    session.force_flush()
    assert session.snapshot()["slots"] == []
    assert translator.calls == []


@pytest.mark.asyncio
async def test_at_most_one_slow_request_in_flight(translator, slow_provider, clock):
    """Test slow requests run one at a time."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("a b c")
    session.force_flush()
    session.submit_transcript("a b c d e f")
    session.force_flush()
    session.submit_transcript("a b c d e f g h i")
    session.force_flush()
    await session.wait_idle()

    assert len(slow_provider.prompts) == 3
    assert slow_provider.max_in_flight == 1
    assert slot(session.snapshot())["status"] == "done"
    await session.stop_session()


@pytest.mark.asyncio
async def test_facts_survive_restart(translator, clock):
    """Test facts from one session reach the next session's prompts."""
    provider = FakeSlowProvider(responses=["[INPUT_TRANSLATION] My name is Ola [INTENT] INFO"])
    session = make_session(translator, provider, clock)

    await session.start_session()
    session.submit_transcript("jeg heter Ola")
    session.force_flush()
    await session.wait_idle()
    await session.stop_session()
    assert session.facts == ["My name is Ola"]

    await session.start_session()
    session.submit_transcript("hva heter du")
    session.force_flush()
    await session.wait_idle()

    assert "- My name is Ola" in provider.prompts[1].user
    assert session.snapshot()["facts"] == ["My name is Ola"]
    await session.stop_session()

    session.reset_facts()
    assert session.facts == []


@pytest.mark.asyncio
async def test_local_speaker_gets_no_slow_translation(translator, slow_provider, clock):
    """Test local speech opens its own slot without slow translation."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.set_local_speaking(True)
    session.submit_transcript("jeg heter Ola og bor her.")
    session.force_flush()
    await session.wait_idle()
    assert slow_provider.prompts == []

    session.set_local_speaking(False)
    session.submit_transcript("jeg heter Ola og bor her. Hvor bor du egentlig nå?")
    session.force_flush()
    await session.wait_idle()

    state = session.snapshot()
    assert [s["speaker"] for s in state["slots"]] == ["A", "B"]
    assert slot(state, 0)["status"] == "idle"
    assert slot(state, 1)["original"] == "Hvor bor du egentlig nå?"
    assert len(slow_provider.prompts) == 1
    await session.stop_session()


@pytest.mark.asyncio
async def test_audio_failure_degrades_diarization(translator, slow_provider, clock):
    """Test an audio failure warns and falls back to the remote speaker."""
    warnings = []
    session = make_session(translator, slow_provider, clock, on_warning=warnings.append)
    await session.start_session()

    session.report_source_failure("audio", "device lost")
    await session.wait_idle()

    assert warnings == ["audio source failed: device lost"]
    assert session.snapshot()["diarization_degraded"]
    assert session.snapshot()["speaker"] == "B"
    await session.stop_session()


@pytest.mark.asyncio
async def test_last_published_state_is_inactive(translator, slow_provider, clock):
    """Test the last published state shows the session stopped."""
    states = []
    session = make_session(translator, slow_provider, clock, on_state=states.append)
    await session.start_session()
    session.submit_transcript("en to tre fire fem.")
    await session.wait_idle()
    await session.stop_session()

    assert states
    assert states[-1]["is_active"] is False
    assert slot(states[-1])["is_busy"] is False


@pytest.mark.asyncio
async def test_add_words_skips_repeated_words(translator, slow_provider, clock):
    """Test incremental words skip restart duplicates."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.add_words("god morgen")
    session.add_words("god morgen")
    session.add_words("alle sammen her.")
    await session.wait_idle()

    state = session.snapshot()
    assert slot(state)["original"] == "god morgen alle sammen her."
    assert state["stats"]["duplicate_events"] == 1
    await session.stop_session()


def test_duplicate_words_heuristics():
    """Test the duplicate heuristics for incremental words."""
    assert not is_duplicate_words("", "hei")
    assert is_duplicate_words("jeg bor i Oslo", "i Oslo")
    assert is_duplicate_words("vi skal ha møte i morgen tidlig", "ha møte i morgen")
    assert not is_duplicate_words("vi skal ha møte", "klokken ti")


class FlakySlowProvider(FakeSlowProvider):
    """Fails the first ``failures`` requests, then streams normally."""

    def __init__(self, failures: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    async def generate(self, prompt, on_partial, token):
        if self.failures:
            self.failures -= 1
            self.prompts.append(prompt)
            raise ProviderError("HTTP 503: upstream unavailable")
        return await super().generate(prompt, on_partial, token)


def numbered(prefix: str, count: int) -> str:
    return " ".join(f"{prefix}{i}" for i in range(1, count + 1))


@pytest.mark.asyncio
async def test_source_restart_keeps_pending_words(translator, slow_provider, clock):
    """Test words pending at a source restart are closed, not dropped."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("a b c", epoch=0)
    session.submit_transcript("d e", epoch=1)
    state = await session.stop_session()

    assert slot(state)["original"] == "a b c d e"
    assert state["word_count"] == 5
    assert slot(state)["ghost_translation"] == "<a b c> <d e>."


@pytest.mark.asyncio
async def test_late_shorter_event_keeps_pending_words(translator, slow_provider, clock):
    """Test an out-of-order shorter event leaves pending words alone."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.submit_transcript("one two three four five.")
    session.submit_transcript("one two three four five. six seven")
    session.submit_transcript("one two three")
    state = await session.stop_session()

    assert slot(state)["original"] == "one two three four five. six seven"
    assert state["word_count"] == 7
    assert state["stats"]["stale_events"] == 1


@pytest.mark.asyncio
async def test_failed_slow_request_marks_slot_unavailable(translator, clock):
    """Test a provider failure shows the unavailable marker on the slot."""
    provider = FlakySlowProvider(failures=1)
    session = make_session(translator, provider, clock)
    await session.start_session()

    session.submit_transcript("en to tre fire fem")
    session.force_flush()
    await session.wait_idle()

    state = session.snapshot()
    assert slot(state)["status"] == "unavailable"
    assert slot(state)["error"] == settings.unavailable_marker
    assert slot(state)["ghost_translation"] == "<en to tre fire fem>"
    assert state["stats"]["slow"]["failures"] == 1
    await session.stop_session()


@pytest.mark.asyncio
async def test_queue_moves_on_after_failed_request(translator, clock):
    """Test the next request for the same slot runs after a failure."""
    provider = FlakySlowProvider(failures=1)
    session = make_session(translator, provider, clock)
    await session.start_session()

    session.submit_transcript("a b c")
    session.force_flush()
    session.submit_transcript("a b c d e f")
    session.force_flush()
    await session.wait_idle()

    state = session.snapshot()
    assert len(provider.prompts) == 2
    assert state["stats"]["slow"]["failures"] == 1
    assert state["stats"]["slow"]["completed"] == 1
    assert slot(state)["status"] == "done"
    assert slot(state)["error"] is None
    assert slot(state)["active_translation"] == "translated text"
    await session.stop_session()


@pytest.mark.asyncio
async def test_reworded_retranslation_keeps_frozen_text(translator, clock):
    """Test a second slow response only appends to the frozen translation."""
    provider = FakeSlowProvider(responses=[
        "[INPUT_TRANSLATION] " + numbered("a", 60),
        "[INPUT_TRANSLATION] " + numbered("b", 70),
    ])
    session = make_session(translator, provider, clock)
    await session.start_session()

    session.submit_transcript(numbered("w", 60))
    await session.wait_idle()
    first = slot(session.snapshot())
    assert first["frozen_translation"] == numbered("a", 40)
    assert first["frozen_word_count"] == 40

    session.submit_transcript(numbered("w", 70))
    session.force_flush()
    await session.wait_idle()

    second = slot(session.snapshot())
    assert second["frozen_translation"] == numbered("a", 40) + " " + " ".join(f"b{i}" for i in range(41, 51))
    assert second["frozen_word_count"] == 50
    assert second["active_translation"] == " ".join(f"b{i}" for i in range(51, 71))
    assert len(provider.prompts) == 2
    await session.stop_session()


@pytest.mark.asyncio
async def test_language_change_reaches_fast_path(translator, slow_provider, clock):
    """Test a language switch applies to later blocks and clears cached translations."""
    session = make_session(translator, slow_provider, clock)
    await session.start_session()

    session.set_languages("sv", "de")
    session.submit_transcript("hej allihopa, hur mår ni?")
    await session.wait_idle()

    assert session.source_lang == "sv"
    assert session.target_lang == "de"
    assert translator.languages[-1] == ("sv", "de")
    assert translator.cache_clears == 1

    session.set_languages("sv", "de")
    await session.wait_idle()
    assert translator.cache_clears == 1
    await session.stop_session()


@pytest.mark.asyncio
async def test_failed_ghost_text_gets_no_closing_mark(clock, slow_provider):
    """Test stop does not punctuate a trailing unavailable marker."""
    session = make_session(FakeTranslator(fail=True), slow_provider, clock)
    await session.start_session()

    session.submit_transcript("en to tre fire fem")
    state = await session.stop_session()

    assert slot(state)["ghost_translation"] == settings.unavailable_marker
