"""
Shared fakes for the session pipeline tests.
"""

import asyncio
from typing import List, Optional

import pytest

from lingobridge.services.timers import CancellationToken


class FakeClock:
    """Controllable monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTranslator:
    """Fast translator that tags its input so tests can see what was translated."""

    def __init__(self, fail: bool = False):
        self.calls: List[str] = []
        self.languages: List[tuple] = []
        self.cache_clears = 0
        self.fail = fail

    async def translate(self, words: str, source_lang: Optional[str], target_lang: str) -> str:
        self.calls.append(words)
        self.languages.append((source_lang, target_lang))
        await asyncio.sleep(0)
        if self.fail:
            raise TimeoutError("fast translator timed out")
        return f"<{words}>"

    def clear_cache(self) -> None:
        self.cache_clears += 1


class FakeSlowProvider:
    """Streams scripted responses in word-sized partials.

    With ``hold=True`` the provider emits its partials and then waits until
    released or cancelled, checking the token like a real stream would.
    """

    def __init__(self, responses: Optional[List[str]] = None, hold: bool = False):
        self.responses = list(responses or [])
        self.hold = hold
        self.released = False
        self.prompts = []
        self.in_flight = 0
        self.max_in_flight = 0

    def release(self) -> None:
        self.released = True

    async def generate(self, prompt, on_partial, token: CancellationToken) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            text = self.responses.pop(0) if self.responses else "[INPUT_TRANSLATION] translated text"
            full = ""
            for piece in text.split(" "):
                token.raise_if_cancelled()
                full = f"{full} {piece}" if full else piece
                on_partial(full)
                await asyncio.sleep(0)
            while self.hold and not self.released:
                token.raise_if_cancelled()
                await asyncio.sleep(0.01)
            return full
        finally:
            self.in_flight -= 1


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds."""

    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def slow_provider():
    return FakeSlowProvider()
