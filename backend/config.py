"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    CHAT_MAX_ATTEMPTS_PER_MODEL,
    CHAT_MODEL_HIERARCHY,
    CHAT_RETRY_BASE_DELAY_MS,
    GEMINI_NATIVE_BASE_URL,
    GEMINI_OPENAI_BASE_URL,
    LIVE_MAX_RETRIES,
    LIVE_MODEL,
    LIVE_VOICE,
    LIVE_WS_URL,
    QUOTE_MODEL,
    SPEECH_MODEL,
    SPEECH_VOICE,
)


def _split_models(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not raw:
        return default
    models = tuple(m.strip() for m in raw.split(",") if m.strip())
    return models or default


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed downward to the
    client binding, the live session and the server.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Remote service
    # ------------------------------------------------------------------

    # OpenAI-compatible surface of the Gemini API; LLM_BASE_URL overrides it
    # for a local proxy or recorded-response server in dev.
    llm_base_url: str = GEMINI_OPENAI_BASE_URL
    default_api_key: str | None = None

    # ------------------------------------------------------------------
    # Chat generation
    # ------------------------------------------------------------------

    chat_models: tuple[str, ...] = CHAT_MODEL_HIERARCHY
    max_attempts_per_model: int = CHAT_MAX_ATTEMPTS_PER_MODEL
    retry_base_delay_ms: int = CHAT_RETRY_BASE_DELAY_MS
    quote_model: str = QUOTE_MODEL

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    speech_model: str = SPEECH_MODEL
    speech_voice: str = SPEECH_VOICE
    speech_base_url: str = GEMINI_NATIVE_BASE_URL

    # ------------------------------------------------------------------
    # Live session
    # ------------------------------------------------------------------

    live_model: str = LIVE_MODEL
    live_voice: str = LIVE_VOICE
    live_ws_url: str = LIVE_WS_URL
    live_max_retries: int = LIVE_MAX_RETRIES
    reconnect_on_send_failure: bool = False

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing variables fall back to the defaults in constants.py.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            llm_base_url=os.environ.get("LLM_BASE_URL", GEMINI_OPENAI_BASE_URL),
            default_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY"),

            chat_models=_split_models(os.environ.get("CHAT_MODELS"), CHAT_MODEL_HIERARCHY),
            max_attempts_per_model=int(
                os.environ.get("CHAT_MAX_ATTEMPTS_PER_MODEL", CHAT_MAX_ATTEMPTS_PER_MODEL)
            ),
            retry_base_delay_ms=int(
                os.environ.get("CHAT_RETRY_BASE_DELAY_MS", CHAT_RETRY_BASE_DELAY_MS)
            ),
            quote_model=os.environ.get("QUOTE_MODEL", QUOTE_MODEL),

            speech_model=os.environ.get("SPEECH_MODEL", SPEECH_MODEL),
            speech_voice=os.environ.get("SPEECH_VOICE", SPEECH_VOICE),
            speech_base_url=os.environ.get("SPEECH_BASE_URL", GEMINI_NATIVE_BASE_URL),

            live_model=os.environ.get("LIVE_MODEL", LIVE_MODEL),
            live_voice=os.environ.get("LIVE_VOICE", LIVE_VOICE),
            live_ws_url=os.environ.get("LIVE_WS_URL", LIVE_WS_URL),
            live_max_retries=int(os.environ.get("LIVE_MAX_RETRIES", LIVE_MAX_RETRIES)),
            reconnect_on_send_failure=_flag("LIVE_RECONNECT_ON_SEND_FAILURE", "0"),

            enable_json_logs=_flag("ENABLE_JSON_LOGS", "1"),
        )
