"""Shared test configuration and fixtures."""

from collections.abc import AsyncGenerator

import pytest

from chord_catalog.cache.store import LocalCacheStore
from chord_catalog.db.session import DatabaseManager
from chord_catalog.settings import get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    """Settings are lru_cached; tests that patch the environment need a fresh instance."""
    get_settings.cache_clear()


@pytest.fixture
async def db_manager() -> AsyncGenerator[DatabaseManager]:
    db = DatabaseManager.from_url("sqlite+aiosqlite://")
    await db.create_schema()
    yield db
    await db.dispose()


@pytest.fixture
def cache_store(db_manager: DatabaseManager) -> LocalCacheStore:
    return LocalCacheStore(db_manager)
