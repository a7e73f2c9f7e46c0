"""Catalog configuration loaded from environment variables."""

import functools

from pydantic_settings import BaseSettings

from chord_catalog.constants import (
    DEFAULT_CACHE_KEY,
    DEFAULT_DATABASE_URL,
    DEFAULT_ELEVATED_SESSION_TTL_SECONDS,
    DEFAULT_INDEX_NAME,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TASK_POLL_ATTEMPTS,
    DEFAULT_TASK_POLL_INTERVAL,
)


class DatabaseSettings(BaseSettings):
    """Local cache database connection settings."""

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    use_null_pool: bool = True

    model_config = {"env_prefix": ""}


class CatalogSettings(BaseSettings):
    """Remote index, cache and logging configuration."""

    # Remote index (read-only credential only; the admin key is never configured)
    ALGOLIA_APP_ID: str = ""
    ALGOLIA_SEARCH_API_KEY: str = ""
    ALGOLIA_INDEX_NAME: str = DEFAULT_INDEX_NAME
    ALGOLIA_BASE_URL: str = ""  # Overrides both read and write hosts when set

    ALGOLIA_MAX_RETRIES: int = DEFAULT_MAX_RETRIES
    ALGOLIA_RETRY_BASE_DELAY: float = DEFAULT_RETRY_BASE_DELAY
    ALGOLIA_REQUEST_TIMEOUT: float = DEFAULT_REQUEST_TIMEOUT
    ALGOLIA_TASK_POLL_ATTEMPTS: int = DEFAULT_TASK_POLL_ATTEMPTS
    ALGOLIA_TASK_POLL_INTERVAL: float = DEFAULT_TASK_POLL_INTERVAL

    ELEVATED_SESSION_TTL_SECONDS: int = DEFAULT_ELEVATED_SESSION_TTL_SECONDS

    # Local cache
    DATABASE_URL: str = DEFAULT_DATABASE_URL
    CACHE_KEY: str = DEFAULT_CACHE_KEY
    CACHE_MAX_BYTES: int = 0  # Storage quota for the snapshot; 0 disables the check

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    def database_settings(self) -> DatabaseSettings:
        """Build the cache database settings from this configuration."""
        return DatabaseSettings(database_url=self.DATABASE_URL)


@functools.lru_cache(maxsize=1)
def get_settings() -> CatalogSettings:
    """Return cached catalog settings singleton."""
    return CatalogSettings()
