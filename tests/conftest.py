"""Shared pytest fixtures for anchorlight tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from dotenv import load_dotenv

from anchorlight.config import Settings, get_settings
from tests.helpers.pages import FakeClock

if TYPE_CHECKING:
    from collections.abc import Generator

load_dotenv()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from .env files."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None]:
    """Each test starts without a cached Settings instance."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and only yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
