import asyncio
import httpx
import logging
import os
import time
from typing import Optional, List
from datetime import datetime, timedelta
from collections import OrderedDict

from ..config import settings

logger = logging.getLogger(__name__)

# Map language codes to DeepL format
DEEPL_LANG_MAP = {
    "en": "EN-US",
    "en-GB": "EN-GB",
    "pt": "PT-BR",
    "pt-PT": "PT-PT",
    "no": "NB",      # Norwegian recognizers often report "no"
    "nb": "NB",
    "uk": "UK",
    "ru": "RU",
    "de": "DE",
    "fr": "FR",
    "es": "ES",
    "sv": "SV",
    "da": "DA",
    "pl": "PL",
}


class LRUCache:
    """Simple LRU cache with TTL support."""

    def __init__(self, max_size: int, ttl_seconds: int):
        self._cache: OrderedDict = OrderedDict()
        self._max_size = max_size
        self._ttl = timedelta(seconds=ttl_seconds)

    def get(self, key):
        if key not in self._cache:
            return None
        value, timestamp = self._cache[key]
        if datetime.now() - timestamp > self._ttl:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return value

    def put(self, key, value):
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (value, datetime.now())
        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self):
        return len(self._cache)


class TranslationService:
    """Fast phrase translator for the ghost path: DeepL (primary), OpenAI/Google (fallback).

    - Source language hints (no auto-detect overhead)
    - Timeout budgets with bounded retry
    - Whole-text LRU cache with TTL
    - Word-chunk cache so re-sent prefixes return instantly
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        deepl_key: Optional[str] = None,
        provider: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.provider = provider or settings.fast_provider
        self._client = client or httpx.AsyncClient(timeout=10.0)

        # DeepL configuration
        self.deepl_key = deepl_key if deepl_key is not None else settings.deepl_api_key
        self.deepl_endpoint = "https://api-free.deepl.com/v2/translate"  # Free tier keys end with :fx
        if self.deepl_key and not self.deepl_key.endswith(":fx"):
            self.deepl_endpoint = "https://api.deepl.com/v2/translate"
        self.deepl_glossary_id = settings.deepl_glossary_id
        self.deepl_formality = settings.deepl_formality

        self._translation_cache = LRUCache(
            max_size=settings.max_cache_size,
            ttl_seconds=settings.translation_cache_ttl_seconds,
        )
        self._chunk_size = settings.chunk_size_words
        self._chunk_cache = LRUCache(
            max_size=settings.chunk_cache_size,
            ttl_seconds=settings.translation_cache_ttl_seconds,
        )

        # Retry configuration
        self._retry_count = settings.deepl_retry_count
        self._retry_delay_ms = settings.deepl_retry_delay_ms

        # Stats for monitoring
        self._total_requests = 0
        self._cache_hits = 0
        self._chunk_hits = 0
        self._chunk_misses = 0
        self._total_latency_ms = 0.0

    def get_stats(self) -> dict:
        """Get translation service statistics."""
        return {
            "provider": self.provider,
            "total_requests": self._total_requests,
            "cache_hits": self._cache_hits,
            "cache_hit_rate": self._cache_hits / max(1, self._total_requests),
            "cache_size": len(self._translation_cache),
            "chunk_hits": self._chunk_hits,
            "chunk_misses": self._chunk_misses,
            "chunk_cache_size": len(self._chunk_cache),
            "avg_latency_ms": self._total_latency_ms / max(1, self._total_requests - self._cache_hits),
        }

    def clear_cache(self) -> None:
        """Drop cached translations (e.g. after a language switch)."""
        self._translation_cache.clear()
        self._chunk_cache.clear()

    async def translate(self, words: str, source_lang: Optional[str], target_lang: str) -> str:
        """Translate a run of words chunk by chunk.

        Words are grouped into fixed-size chunks; each chunk is cached on its
        own so a growing prefix only pays for its newest chunk.

        Args:
            words: Text to translate
            source_lang: Source language code (None for auto-detect)
            target_lang: Target language code

        Returns:
            Translated text, chunks joined by single spaces
        """
        tokens = words.split()
        if not tokens:
            return ""

        chunks = [" ".join(tokens[i:i + self._chunk_size]) for i in range(0, len(tokens), self._chunk_size)]
        results: List[Optional[str]] = []
        missing = []
        for index, chunk in enumerate(chunks):
            cached = self._chunk_cache.get((chunk.lower(), source_lang, target_lang))
            if cached is not None:
                self._chunk_hits += 1
            else:
                self._chunk_misses += 1
                missing.append(index)
            results.append(cached)

        if missing:
            translated = await asyncio.gather(*(
                self.translate_text(
                    chunks[i],
                    source_lang,
                    target_lang,
                    timeout_ms=settings.translation_timeout_fast_ms,
                )
                for i in missing
            ))
            for i, text in zip(missing, translated):
                results[i] = text
                self._chunk_cache.put((chunks[i].lower(), source_lang, target_lang), text)

        return " ".join(r for r in results if r)

    async def translate_text(
        self,
        text: str,
        source_lang: Optional[str],
        target_lang: str,
        provider: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> str:
        """Translate using selected provider with timeout budget.

        Args:
            text: Text to translate
            source_lang: Source language code (None for auto-detect)
            target_lang: Target language code
            provider: 'deepl', 'openai', or 'google'; defaults to the configured one
            timeout_ms: Optional timeout override in milliseconds

        Returns:
            Translated text
        """
        provider = provider or self.provider
        self._total_requests += 1

        text = text.strip()
        if not text:
            return ""

        cache_key = (text.lower(), source_lang, target_lang, provider, self.deepl_formality)
        if settings.enable_translation_cache:
            cached = self._translation_cache.get(cache_key)
            if cached:
                self._cache_hits += 1
                logger.debug(f"Cache hit ({self._cache_hits}/{self._total_requests}): {text[:30]}...")
                return cached

        timeout_s = (timeout_ms or settings.translation_timeout_ms) / 1000.0
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self._translate_with_retry(text, source_lang, target_lang, provider),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Translation timeout after {timeout_s}s for provider={provider}")
            raise TimeoutError(f"Translation timed out after {timeout_s}s")
        except asyncio.CancelledError:
            logger.debug("Translation cancelled (newer request arrived)")
            raise

        self._total_latency_ms += (time.perf_counter() - start_time) * 1000
        if settings.enable_translation_cache:
            self._translation_cache.put(cache_key, result)
        return result

    async def _translate_with_retry(
        self,
        text: str,
        source_lang: Optional[str],
        target_lang: str,
        provider: str,
    ) -> str:
        """Translate with retry logic."""
        last_error = None

        for attempt in range(self._retry_count + 1):
            try:
                return await self._translate_internal(text, source_lang, target_lang, provider)
            except ValueError:
                # Configuration problems will not fix themselves
                raise
            except Exception as e:
                last_error = e
                if attempt < self._retry_count:
                    delay = (self._retry_delay_ms / 1000.0) * (attempt + 1)
                    logger.warning(f"Translation attempt {attempt + 1} failed, retrying in {delay}s: {e}")
                    await asyncio.sleep(delay)

        raise last_error

    async def _translate_internal(
        self,
        text: str,
        source_lang: Optional[str],
        target_lang: str,
        provider: str,
    ) -> str:
        """Internal translation dispatch."""
        if provider == "google":
            try:
                return await self._translate_google(text, target_lang, source_lang)
            except Exception as e:
                if not self.api_key:
                    raise
                logger.warning(f"Google Cloud error (falling back to OpenAI): {e}")
                return await self._translate_openai(text, target_lang)

        if provider == "deepl" and self.deepl_key:
            try:
                return await self._translate_deepl(text, target_lang, source_lang)
            except Exception as e:
                if not self.api_key:
                    raise
                logger.warning(f"DeepL error (falling back to OpenAI): {e}")
                return await self._translate_openai(text, target_lang)

        return await self._translate_openai(text, target_lang)

    async def _translate_deepl(
        self,
        text: str,
        target_lang: str,
        source_lang: Optional[str] = None,
    ) -> str:
        """Translate using DeepL API with a source hint and single-sentence splitting."""
        start_time = time.perf_counter()

        payload = {
            "text": [text],  # DeepL v2 expects array
            "target_lang": DEEPL_LANG_MAP.get(target_lang, target_lang.upper()),
            "split_sentences": "0",  # Chunks are fragments, never split them further
        }

        if source_lang and source_lang != "auto":
            source = DEEPL_LANG_MAP.get(source_lang, source_lang.upper())
            # DeepL source doesn't need -US/-BR suffix
            payload["source_lang"] = source.split("-")[0]

        if self.deepl_glossary_id:
            payload["glossary_id"] = self.deepl_glossary_id

        if self.deepl_formality and self.deepl_formality != "default":
            payload["formality"] = self.deepl_formality

        headers = {
            "Authorization": f"DeepL-Auth-Key {self.deepl_key}",
            "Content-Type": "application/json",
        }

        response = await self._client.post(self.deepl_endpoint, headers=headers, json=payload)
        response.raise_for_status()
        data = response.json()

        translations = data.get("translations", [])
        if translations:
            result = translations[0].get("text", "").strip()
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(f"DeepL translation took {duration_ms:.1f}ms (source={source_lang})")
            return result

        raise RuntimeError("DeepL returned no translations")

    async def _translate_openai(self, text: str, target_lang: str) -> str:
        """Translate using OpenAI (fallback)."""
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY is required.")

        start_time = time.perf_counter()
        prompt = f"Translate to {target_lang}. Only output the translation, nothing else."

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": text},
            ],
            "temperature": 0,
            "max_tokens": 500,
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        response = await self._client.post(
            "https://api.openai.com/v1/chat/completions",
            headers=headers,
            json=payload,
        )
        response.raise_for_status()
        data = response.json()

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise RuntimeError("Translation provider returned an unexpected response.")

        if not content:
            raise RuntimeError("Translation provider returned no content.")

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"OpenAI translation took {duration_ms:.1f}ms")
        return content.strip()

    async def _translate_google(self, text: str, target_lang: str, source_lang: Optional[str] = None) -> str:
        """Translate using Google Cloud Translation API (optional dependency)."""
        from google.cloud import translate_v2 as translate

        google_credentials = os.getenv("GOOGLE_CLOUD_CREDENTIALS", "")
        if google_credentials:
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = google_credentials

        translate_client = translate.Client()
        # The client library is blocking
        result = await asyncio.to_thread(
            translate_client.translate,
            text,
            target_language=target_lang,
            source_language=source_lang if source_lang and source_lang != "auto" else None,
        )
        return result["translatedText"].strip()

    async def close(self) -> None:
        await self._client.aclose()


translation_service = TranslationService(
    api_key=settings.openai_api_key,
    model=settings.openai_translation_model,
)
