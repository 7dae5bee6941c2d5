"""
Slow, context-aware translation through an OpenAI-compatible chat endpoint.

Works with OpenAI, Groq and Azure deployments: responses are streamed as
server-sent events and every partial is handed to the caller, which may
cancel between partials.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import httpx

from ..config import settings
from .timers import CancellationToken

logger = logging.getLogger(__name__)

TAG_REGEX = re.compile(r"\[(/?)(INPUT_TRANSLATION|ANALYSIS|STRATEGY|TRANSLATION|ANSWER|INTENT)\]")
PARTIAL_TAG_REGEX = re.compile(r"\[/?[A-Z_]*$")
SPEECH_TYPE_REGEX = re.compile(r"\b(QUESTION|INFO|STORY|SMALL_TALK)\b")
CONFIDENCE_REGEX = re.compile(r"\b(\d{1,3})\b")
CONTROL_CHARS_REGEX = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class ProviderError(Exception):
    """Slow provider transport or HTTP failure."""


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str


@dataclass
class SlowResult:
    """Structured view of a (possibly partial) slow provider response."""

    input_translation: str = ""
    analysis: str = ""
    strategy: str = ""
    answer: str = ""
    answer_translation: str = ""
    speech_type: str = "UNKNOWN"
    question_confidence: int = 0
    tagged: bool = False

    @property
    def is_question(self) -> bool:
        return self.speech_type == "QUESTION" and self.question_confidence >= settings.question_confidence_threshold


class SlowProvider(Protocol):
    async def generate(
        self,
        prompt: Prompt,
        on_partial: Callable[[str], None],
        token: CancellationToken,
    ) -> str:
        ...


# ==============================================================================
# Prompt & parsing
# ==============================================================================


def sanitize_prompt_text(text: str) -> str:
    """Strip control characters and collapse whitespace runs."""
    text = CONTROL_CHARS_REGEX.sub("", text)
    return re.sub(r"[ \t]+", " ", text).strip()


def build_prompt(
    source_text: str,
    previous_translation: str,
    source_lang: Optional[str],
    target_lang: str,
    view_mode: str = "simple",
    facts: Optional[list] = None,
) -> Prompt:
    """Build the slow-path prompt for the full accumulated text of a slot."""
    sections = ["[INPUT_TRANSLATION] the full translation of the input", "[INTENT] QUESTION|INFO|STORY|SMALL_TALK and a 0-100 question confidence"]
    if view_mode in ("focus", "full"):
        sections.append("[ANSWER] a short reply the listener could say, in the source language")
        sections.append("[TRANSLATION] the reply translated to the target language")
    if view_mode == "full":
        sections.insert(1, "[ANALYSIS] what the speaker wants")
        sections.insert(2, "[STRATEGY] how to respond")

    system = (
        f"You interpret a live conversation from {source_lang or 'the detected language'} to {target_lang}. "
        "Keep already translated wording stable unless it is clearly wrong. "
        "Answer with these tagged sections only:\n" + "\n".join(sections)
    )
    user_parts = []
    if facts:
        user_parts.append("Known facts:\n" + "\n".join(f"- {sanitize_prompt_text(f)}" for f in facts))
    if previous_translation:
        user_parts.append(f"Previous translation:\n{sanitize_prompt_text(previous_translation)}")
    user_parts.append(f"Input:\n{sanitize_prompt_text(source_text)}")
    return Prompt(system=system, user="\n\n".join(user_parts))


def parse_slow_output(raw: str) -> SlowResult:
    """Split tagged sections out of ``raw``; untagged text is the translation."""
    text = PARTIAL_TAG_REGEX.sub("", raw)
    matches = list(TAG_REGEX.finditer(text))
    if not matches:
        return SlowResult(input_translation=text.strip())

    result = SlowResult(tagged=True)
    sections = {}
    for index, match in enumerate(matches):
        if match.group(1):  # closing tag
            continue
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        sections[match.group(2)] = text[match.end():end].strip()

    result.input_translation = sections.get("INPUT_TRANSLATION", "")
    result.analysis = sections.get("ANALYSIS", "")
    result.strategy = sections.get("STRATEGY", "")
    result.answer = sections.get("ANSWER", "")
    result.answer_translation = sections.get("TRANSLATION", "")

    intent = sections.get("INTENT", "")
    speech_type = SPEECH_TYPE_REGEX.search(intent.upper())
    if speech_type:
        result.speech_type = speech_type.group(1)
    confidence = CONFIDENCE_REGEX.search(intent)
    if confidence:
        result.question_confidence = min(100, int(confidence.group(1)))
    elif result.speech_type == "QUESTION":
        result.question_confidence = 100
    return result


# ==============================================================================
# Provider
# ==============================================================================


class LLMService:
    """Streaming chat-completions client (OpenAI-compatible)."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url or settings.llm_api_url
        self.api_key = api_key if api_key is not None else (settings.llm_api_key or settings.openai_api_key)
        self.model = model or settings.llm_model
        self._client = client or httpx.AsyncClient(timeout=settings.llm_timeout_ms / 1000.0)

    def _headers(self) -> dict:
        if not self.api_key:
            raise ValueError("LLM_API_KEY (or OPENAI_API_KEY) is required.")
        if ".azure.com" in self.api_url:
            return {"api-key": self.api_key, "Content-Type": "application/json"}
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def generate(
        self,
        prompt: Prompt,
        on_partial: Callable[[str], None],
        token: CancellationToken,
    ) -> str:
        """Stream a completion, reporting the accumulated text after each delta.

        Args:
            prompt: System and user content
            on_partial: Called with the full text received so far
            token: Checked before every partial; cancellation raises OperationCancelled

        Returns:
            The complete response text
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
            "stream": True,
        }
        headers = self._headers()
        token.raise_if_cancelled()

        start_time = time.perf_counter()
        full_text = ""
        try:
            async with self._client.stream("POST", self.api_url, headers=headers, json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise ProviderError(f"HTTP {response.status_code}: {body[:200]!r}")

                async for line in response.aiter_lines():
                    token.raise_if_cancelled()
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed stream line: {data[:80]}")
                        continue
                    choices = chunk.get("choices") or [{}]
                    delta = (choices[0].get("delta") or {}).get("content")
                    if delta:
                        full_text += delta
                        on_partial(full_text)
        except httpx.HTTPError as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"LLM response took {duration_ms:.1f}ms ({len(full_text)} chars)")
        return full_text

    async def close(self) -> None:
        await self._client.aclose()


llm_service = LLMService()
