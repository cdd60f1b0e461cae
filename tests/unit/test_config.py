"""Tests for pydantic-settings configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from passagemark.config import Settings, StorageConfig, get_settings
from passagemark.models import HighlightColor

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    """Clear env vars that would override defaults."""
    for key in list(os.environ):
        if key.startswith(("HIGHLIGHT__", "STORAGE__", "APP__", "DEV__")):
            monkeypatch.delenv(key, raising=False)
    yield monkeypatch


class TestDefaults:
    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.highlight.default_color is HighlightColor.YELLOW
        assert s.storage.backend == "file"
        assert s.storage.directory == Path("data/highlights")
        assert s.storage.key_prefix == "passagemark-highlights"
        assert s.app.port == 8080
        assert s.dev.enable_demo_pages is True

    def test_secret_is_masked(self, clean_env: pytest.MonkeyPatch) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert "dev-secret" not in repr(s.app.storage_secret)


class TestEnvironmentOverrides:
    """Nested values use the ``__`` delimiter."""

    def test_default_colour(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("HIGHLIGHT__DEFAULT_COLOR", "green")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.highlight.default_color is HighlightColor.GREEN

    def test_storage_backend(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("STORAGE__BACKEND", "memory")
        clean_env.setenv("STORAGE__KEY_PREFIX", "ielts-text-highlights")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.storage.backend == "memory"
        assert s.storage.key_prefix == "ielts-text-highlights"

    def test_invalid_colour_rejected(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("HIGHLIGHT__DEFAULT_COLOR", "red")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_user_backend(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("STORAGE__BACKEND", "user")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.storage.backend == "user"

    def test_invalid_backend_rejected(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("STORAGE__BACKEND", "redis")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]


class TestStorageConfig:
    def test_blank_prefix_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not be blank"):
            StorageConfig(key_prefix="   ")

    def test_prefix_is_stripped(self) -> None:
        assert StorageConfig(key_prefix=" exam ").key_prefix == "exam"


class TestGetSettings:
    def test_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_cache_clear_rebuilds(self) -> None:
        first = get_settings()
        get_settings.cache_clear()
        assert get_settings() is not first
