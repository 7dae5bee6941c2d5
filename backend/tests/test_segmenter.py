"""
Utterance segmentation close conditions.
"""

import asyncio

import pytest

from lingobridge.services.delta_extractor import Delta
from lingobridge.services.segmenter import CloseReason, UtteranceSegmenter


def words(n: int, prefix: str = "w") -> list:
    return [f"{prefix}{i}" for i in range(n)]


def make_segmenter(**kwargs) -> UtteranceSegmenter:
    params = dict(silence_timeout_ms=1500, max_words=12, min_words_for_sentence=5, overflow_words=20)
    params.update(kwargs)
    return UtteranceSegmenter(**params)


@pytest.mark.asyncio
async def test_hard_maximum_closes_block():
    """Test new final words close a block at the hard maximum."""
    segmenter = make_segmenter()
    blocks = segmenter.evaluate(Delta(new_final_words=words(12)))
    assert len(blocks) == 1
    assert blocks[0].word_count == 12
    assert blocks[0].reason == CloseReason.MAX_WORDS
    assert segmenter.pending_words == []
    segmenter.cancel()


@pytest.mark.asyncio
async def test_sentence_end_closes_above_floor():
    """Test terminal punctuation closes a block once the floor is reached."""
    segmenter = make_segmenter()
    blocks = segmenter.evaluate(Delta(new_final_words="I will see you tomorrow.".split()))
    assert [b.text for b in blocks] == ["I will see you tomorrow."]
    assert blocks[0].reason == CloseReason.SENTENCE_END
    segmenter.cancel()


@pytest.mark.asyncio
async def test_sentence_end_below_floor_keeps_waiting():
    """Test short sentences stay pending below the floor."""
    segmenter = make_segmenter()
    assert segmenter.evaluate(Delta(new_final_words="Yes, sure.".split())) == []
    assert segmenter.pending_words == ["Yes,", "sure."]
    segmenter.cancel()


@pytest.mark.asyncio
async def test_tentative_text_needs_overflow():
    """Test tentative-only words close only at the overflow ceiling."""
    segmenter = make_segmenter()
    assert segmenter.evaluate(Delta(new_tentative_words=words(15))) == []

    blocks = segmenter.evaluate(Delta(new_tentative_words=words(20)))
    assert len(blocks) == 1
    assert blocks[0].reason == CloseReason.OVERFLOW
    assert blocks[0].word_count == 12
    assert segmenter.pending_words == words(20)[12:]
    segmenter.cancel()


@pytest.mark.asyncio
async def test_blocks_never_exceed_hard_maximum():
    """Test long runs are split into blocks of at most the maximum."""
    segmenter = make_segmenter()
    blocks = segmenter.evaluate(Delta(new_final_words=words(30)))
    assert [b.word_count for b in blocks] == [12, 12]
    assert all(b.word_count <= segmenter.max_words for b in blocks)
    assert len(segmenter.pending_words) == 6

    flushed = segmenter.flush()
    assert [b.word_count for b in flushed] == [6]
    segmenter.cancel()


@pytest.mark.asyncio
async def test_silence_timer_fires_after_quiet_interval():
    """Test the silence timer fires one interval after the last word."""
    fired = asyncio.Event()
    segmenter = make_segmenter(on_silence=fired.set, silence_timeout_ms=30)

    segmenter.evaluate(Delta(new_final_words=["hello", "there"]))
    await asyncio.wait_for(fired.wait(), timeout=1.0)

    blocks = segmenter.flush(CloseReason.SILENCE)
    assert [b.text for b in blocks] == ["hello there"]
    assert blocks[0].reason == CloseReason.SILENCE


@pytest.mark.asyncio
async def test_new_words_restart_silence_timer():
    """Test new words push the silence deadline back."""
    fired = asyncio.Event()
    segmenter = make_segmenter(on_silence=fired.set, silence_timeout_ms=80)

    segmenter.evaluate(Delta(new_final_words=["one"]))
    await asyncio.sleep(0.05)
    segmenter.evaluate(Delta(new_final_words=["one", "two"]))
    await asyncio.sleep(0.05)
    assert not fired.is_set()

    await asyncio.wait_for(fired.wait(), timeout=1.0)


@pytest.mark.asyncio
async def test_closing_everything_stops_silence_timer():
    """Test the silence timer stops once nothing is pending."""
    fired = asyncio.Event()
    segmenter = make_segmenter(on_silence=fired.set, silence_timeout_ms=30)
    segmenter.evaluate(Delta(new_final_words=words(12)))
    await asyncio.sleep(0.08)
    assert not fired.is_set()
