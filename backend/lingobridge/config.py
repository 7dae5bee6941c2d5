from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    backend_port: int = Field(8000, alias="BACKEND_PORT")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Conversation languages (source = remote party, target = listener)
    source_lang: str = Field("nb", alias="SOURCE_LANG")
    target_lang: str = Field("uk", alias="TARGET_LANG")
    view_mode: str = Field("simple", alias="VIEW_MODE")  # simple|focus|full

    # === FAST TRANSLATOR (ghost path) ===

    fast_provider: str = Field("deepl", alias="FAST_PROVIDER")  # deepl|openai|google
    openai_api_key: str = Field("", alias="OPENAI_API_KEY")  # Only needed for the OpenAI path
    openai_translation_model: str = Field("gpt-4o-mini", alias="OPENAI_TRANSLATION_MODEL")
    deepl_api_key: str = Field("", alias="DEEPL_API_KEY")
    deepl_glossary_id: str = Field("", alias="DEEPL_GLOSSARY_ID")
    deepl_formality: str = Field("default", alias="DEEPL_FORMALITY")  # default|more|less|prefer_more|prefer_less
    translation_timeout_ms: int = Field(5000, alias="TRANSLATION_TIMEOUT_MS")
    translation_timeout_fast_ms: int = Field(2000, alias="TRANSLATION_TIMEOUT_FAST_MS")
    deepl_retry_count: int = Field(2, alias="DEEPL_RETRY_COUNT")
    deepl_retry_delay_ms: int = Field(250, alias="DEEPL_RETRY_DELAY_MS")  # 250 -> 500 -> 750ms

    # Caching
    enable_translation_cache: bool = Field(True, alias="ENABLE_TRANSLATION_CACHE")
    translation_cache_ttl_seconds: int = Field(3600, alias="TRANSLATION_CACHE_TTL_SECONDS")
    max_cache_size: int = Field(500, alias="MAX_CACHE_SIZE")
    chunk_size_words: int = Field(4, alias="CHUNK_SIZE_WORDS")  # Ghost chunk granularity
    chunk_cache_size: int = Field(100, alias="CHUNK_CACHE_SIZE")

    # Ghost / interim preview
    paragraph_pause_ms: int = Field(1500, alias="PARAGRAPH_PAUSE_MS")  # Gap that starts a new paragraph
    interim_hold_words: int = Field(2, alias="INTERIM_HOLD_WORDS")  # Hide the N most unstable words
    interim_translate_last_n: int = Field(7, alias="INTERIM_TRANSLATE_LAST_N")
    interim_debounce_ms: int = Field(100, alias="INTERIM_DEBOUNCE_MS")

    # === SLOW PROVIDER (LLM path) ===

    llm_api_url: str = Field("https://api.openai.com/v1/chat/completions", alias="LLM_API_URL")
    llm_api_key: str = Field("", alias="LLM_API_KEY")  # Falls back to OPENAI_API_KEY
    llm_model: str = Field("gpt-4o-mini", alias="LLM_MODEL")
    llm_temperature: float = Field(0.6, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(1024, alias="LLM_MAX_TOKENS")
    llm_timeout_ms: int = Field(30000, alias="LLM_TIMEOUT_MS")
    question_confidence_threshold: int = Field(70, alias="QUESTION_CONFIDENCE_THRESHOLD")

    # === SEGMENTATION ===

    block_silence_timeout_ms: int = Field(1500, alias="BLOCK_SILENCE_TIMEOUT_MS")
    block_max_words: int = Field(12, alias="BLOCK_MAX_WORDS")
    block_min_words_for_sentence: int = Field(5, alias="BLOCK_MIN_WORDS_FOR_SENTENCE")
    block_overflow_words: int = Field(20, alias="BLOCK_OVERFLOW_WORDS")  # Stuck-recognizer safety valve

    # === SLOW ACCUMULATION ===

    llm_min_words: int = Field(20, alias="LLM_MIN_WORDS")
    llm_max_words: int = Field(50, alias="LLM_MAX_WORDS")
    llm_pause_ms: int = Field(2000, alias="LLM_PAUSE_MS")
    frozen_active_window_words: int = Field(20, alias="FROZEN_ACTIVE_WINDOW_WORDS")
    frozen_separator: str = Field(" ", alias="FROZEN_SEPARATOR")

    # Request queue
    cancel_grace_ms: int = Field(1000, alias="CANCEL_GRACE_MS")  # Wait for cooperative cancel before hard cancel
    final_flush_timeout_ms: int = Field(10000, alias="FINAL_FLUSH_TIMEOUT_MS")

    # Publishing
    publish_interval_ms: int = Field(100, alias="PUBLISH_INTERVAL_MS")

    # === DIARIZATION ===

    dual_channel_enabled: bool = Field(False, alias="DUAL_CHANNEL_ENABLED")
    audio_fps: int = Field(60, alias="AUDIO_FPS")  # Energy samples per second
    energy_history_size: int = Field(360, alias="ENERGY_HISTORY_SIZE")  # 6s at 60fps
    stt_delay_ms: int = Field(1000, alias="STT_DELAY_MS")  # Recognizer latency vs audio
    speaker_window_ms: int = Field(2000, alias="SPEAKER_WINDOW_MS")
    speaker_min_history_ms: int = Field(500, alias="SPEAKER_MIN_HISTORY_MS")
    peak_threshold: float = Field(500.0, alias="PEAK_THRESHOLD")
    dominant_peak_count: int = Field(20, alias="DOMINANT_PEAK_COUNT")
    quiet_peak_count: int = Field(10, alias="QUIET_PEAK_COUNT")
    local_mic_boost: float = Field(1.5, alias="LOCAL_MIC_BOOST")  # Local mic is quieter at equal effort

    # Display markers
    cancelled_marker: str = Field("[cancelled]", alias="CANCELLED_MARKER")
    unavailable_marker: str = Field("[translation unavailable]", alias="UNAVAILABLE_MARKER")


settings = Settings()
