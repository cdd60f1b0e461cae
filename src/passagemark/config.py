"""Centralised application configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from passagemark.models import HighlightColor

logger = logging.getLogger(__name__)

# src/passagemark/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class HighlightConfig(BaseModel):
    """Highlighting behaviour."""

    default_color: HighlightColor = HighlightColor.YELLOW


class StorageConfig(BaseModel):
    """Where session highlight state is persisted.

    ``file`` and ``memory`` are shared by the web app and the
    ``manage-highlights`` CLI (``memory`` only within one process); ``user``
    keeps each browser's highlights in NiceGUI's ``app.storage.user``.
    """

    backend: Literal["file", "memory", "user"] = "file"
    directory: Path = Path("data/highlights")
    key_prefix: str = "passagemark-highlights"

    @field_validator("key_prefix")
    @classmethod
    def prefix_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "STORAGE__KEY_PREFIX must not be blank"
            raise ValueError(msg)
        return value.strip()


class AppConfig(BaseModel):
    """Application runtime configuration."""

    port: int = 8080
    storage_secret: SecretStr = SecretStr("dev-secret-change-me")
    log_dir: Path = Path("logs")


class DevConfig(BaseModel):
    """Development and testing toggles."""

    enable_demo_pages: bool = True


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``HIGHLIGHT__DEFAULT_COLOR``, ``STORAGE__BACKEND``, ``APP__PORT``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    highlight: HighlightConfig = HighlightConfig()
    storage: StorageConfig = StorageConfig()
    app: AppConfig = AppConfig()
    dev: DevConfig = DevConfig()


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
