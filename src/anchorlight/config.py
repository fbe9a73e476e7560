"""Centralised configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/anchorlight/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class AnchorConfig(BaseModel):
    """Locator and resolver tuning."""

    short_text_threshold: int = 3
    short_text_max_matches: int = 10
    max_matches: int = 5
    min_leaf_length: int = 2
    context_window: int = 50
    max_text_length: int = 1000
    context_chars: int = 200


class CacheConfig(BaseModel):
    """Bounds and lifetimes of the two cache stores."""

    node_max_entries: int = 50
    node_ttl_seconds: float = 30.0
    result_max_entries: int = 20
    result_ttl_seconds: float = 300.0
    sweep_interval_seconds: float = 120.0

    @model_validator(mode="after")
    def bounds_positive(self) -> CacheConfig:
        if self.node_max_entries < 1 or self.result_max_entries < 1:
            msg = "Cache stores must hold at least one entry"
            raise ValueError(msg)
        return self


class SchedulerConfig(BaseModel):
    """Batch re-anchoring."""

    chunk_size: int = 5
    yield_seconds: float = 0.01
    idle_timeout_seconds: float = 0.1


class SelectionConfig(BaseModel):
    """Selection-change throttling."""

    throttle_seconds: float = 0.1
    debounce_seconds: float = 0.15


class DeepLinkConfig(BaseModel):
    """Deep-link restoration."""

    retry_interval_seconds: float = 0.5
    max_attempts: int = 5
    scroll_offset: float = 100.0
    settle_seconds: float = 0.3


class StorageConfig(BaseModel):
    """Fragment store access."""

    save_timeout_seconds: float = 5.0


class LlmConfig(BaseModel):
    """Claude API configuration for highlight summaries."""

    api_key: SecretStr = SecretStr("")
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 150
    temperature: float = 0.8
    timeout_seconds: float = 10.0


class AppConfig(BaseModel):
    """Runtime configuration."""

    log_dir: Path = Path("logs")
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``CACHE__NODE_MAX_ENTRIES``, ``LLM__API_KEY``, ``APP__LOG_DIR``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    anchor: AnchorConfig = AnchorConfig()
    cache: CacheConfig = CacheConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    selection: SelectionConfig = SelectionConfig()
    deeplink: DeepLinkConfig = DeepLinkConfig()
    storage: StorageConfig = StorageConfig()
    llm: LlmConfig = LlmConfig()
    app: AppConfig = AppConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
