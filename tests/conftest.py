"""Shared pytest fixtures for passagemark tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from dotenv import load_dotenv

from passagemark.config import get_settings

if TYPE_CHECKING:
    from collections.abc import Iterator

load_dotenv()


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Iterator[None]:
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
