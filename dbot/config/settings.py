"""
D-BOT - Centralized Configuration
==================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``AI_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.
- ``MONGO_URI`` is also ``SecretStr`` — connection strings contain
  credentials and must never leak into logs.

AI Configuration
----------------
The orchestrator never reads provider/model globals directly.  It receives
an ``AIConfig`` built with ``AIConfig.from_settings(settings)``; every field
can be overridden independently for a single engine instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AIBackend = Literal["edenai", "gemini"]


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required** — the app will refuse
    to start until they are provided.

    Attributes
    ----------
    LOG_LEVEL : {"DEBUG", "INFO", "WARNING", "ERROR"} or None
        Overrides the ENV-derived log level when set.
    MONGO_URI : SecretStr
        MongoDB (Atlas) connection string.  **Required.**
    MONGO_DB_NAME : str
        Database holding the ``events`` collection.
    AI_BACKEND : {"edenai", "gemini"}
        ``edenai`` routes chat + embeddings through an Eden-AI-compatible
        HTTP gateway; ``gemini`` calls Google directly through LangChain.
    AI_API_KEY : SecretStr
        Bearer token for the gateway, or the Google API key.  **Required.**
    CHAT_PROVIDER / CHAT_MODEL : str
        Provider and model used for response generation.
    EMBEDDING_PROVIDER / EMBEDDING_MODEL : str
        Provider and model used for query embeddings.
    AI_BASE_URL : str
        Gateway base URL (ignored by the ``gemini`` backend).
    AI_TIMEOUT_SECONDS : float
        Upper bound for every embedding / generation call.
    VECTOR_INDEX_NAME / VECTOR_PATH / VECTOR_NUM_CANDIDATES
        Atlas ``$vectorSearch`` parameters.
    SEARCH_RESULTS_LIMIT : int
        Final number of ranked sources for a fresh query.
    """

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None

    # ── MongoDB (REQUIRED, no default) ─────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "event_database"
    EVENTS_COLLECTION: str = "events"

    # ── AI Services ────────────────────────────────────────────────────
    AI_BACKEND: AIBackend = "edenai"
    AI_API_KEY: SecretStr
    CHAT_PROVIDER: str = "google"
    CHAT_MODEL: str = "gemini-1.5-flash"
    EMBEDDING_PROVIDER: str = "openai"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    AI_BASE_URL: str = "https://api.edenai.run/v2"
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_TOKENS: int = 1500
    AI_TIMEOUT_SECONDS: float = 30.0

    # ── Vector Search ──────────────────────────────────────────────────
    VECTOR_INDEX_NAME: str = "vector_index"
    VECTOR_PATH: str = "embedding"
    VECTOR_NUM_CANDIDATES: int = 100

    # ── Retrieval & Conversation Windows ───────────────────────────────
    SEARCH_RESULTS_LIMIT: int = 20
    LIST_EVENTS_LIMIT: int = 50
    STANDARD_SEARCH_LIMIT: int = 50
    HISTORY_WINDOW: int = 10
    FOLLOW_UP_WINDOW: int = 6
    CONTEXT_TEXT_CHARS: int = 500
    SUMMARY_ITEMS: int = 3

    # ── HTTP Server ────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5000

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("LLM_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"LLM_TEMPERATURE must be 0.0–2.0, got {v}")
        return v


    @field_validator("AI_TIMEOUT_SECONDS")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"AI_TIMEOUT_SECONDS must be > 0, got {v}")
        return v


    @field_validator("SEARCH_RESULTS_LIMIT", "LIST_EVENTS_LIMIT", "STANDARD_SEARCH_LIMIT", "HISTORY_WINDOW", "FOLLOW_UP_WINDOW", "SUMMARY_ITEMS")
    @classmethod
    def _window_range(cls, v: int) -> int:
        if not 1 <= v <= 200:
            raise ValueError(f"Window / limit values must be 1–200, got {v}")
        return v


    @field_validator("VECTOR_NUM_CANDIDATES")
    @classmethod
    def _candidates_range(cls, v: int) -> int:
        if not 1 <= v <= 10_000:
            raise ValueError(f"VECTOR_NUM_CANDIDATES must be 1–10000, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


class AIConfig(BaseModel):
    """
    Explicit AI service configuration handed to the orchestrator.

    Build it from the global settings and override any field per instance::

        config = AIConfig.from_settings(settings, chat_model="gpt-4o-mini")
    """

    model_config = ConfigDict(frozen=True)

    backend: AIBackend = "edenai"
    api_key: SecretStr
    chat_provider: str
    chat_model: str
    embedding_provider: str
    embedding_model: str
    base_url: str
    temperature: float = 0.2
    max_tokens: int = 1500
    timeout_seconds: float = 30.0


    @classmethod
    def from_settings(cls, source: Settings, **overrides: object) -> AIConfig:
        values: dict[str, object] = {
            "backend": source.AI_BACKEND,
            "api_key": source.AI_API_KEY,
            "chat_provider": source.CHAT_PROVIDER,
            "chat_model": source.CHAT_MODEL,
            "embedding_provider": source.EMBEDDING_PROVIDER,
            "embedding_model": source.EMBEDDING_MODEL,
            "base_url": source.AI_BASE_URL.rstrip("/"),
            "temperature": source.LLM_TEMPERATURE,
            "max_tokens": source.LLM_MAX_TOKENS,
            "timeout_seconds": source.AI_TIMEOUT_SECONDS,
        }
        values.update(overrides)
        return cls(**values)


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from dbot.config.settings import settings
settings = Settings()
