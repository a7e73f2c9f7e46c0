"""Centralized constants for the chord catalog."""

import enum


class ServiceName(enum.StrEnum):
    """Service names used for logging and identification."""

    CATALOG = "catalog"
    MIGRATION = "migration"


# --- Remote index (Algolia-shaped REST API) ---

ALGOLIA_READ_HOST_TEMPLATE = "https://{app_id}-dsn.algolia.net"
ALGOLIA_WRITE_HOST_TEMPLATE = "https://{app_id}.algolia.net"
ALGOLIA_API_PREFIX = "/1/indexes"

APP_ID_HEADER = "X-Algolia-Application-Id"
API_KEY_HEADER = "X-Algolia-API-Key"

DEFAULT_INDEX_NAME = "irish_music_songs"
DEFAULT_HITS_PER_PAGE = 100
MAX_HITS_PER_PAGE = 1000  # page size ceiling; an empty query returns at most this many
BATCH_CHUNK_SIZE = 1000
TASK_PUBLISHED = "published"

# Retry defaults. Failures are surfaced to the caller unless retries are configured.
DEFAULT_MAX_RETRIES = 0
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds
DEFAULT_REQUEST_TIMEOUT = 15.0  # seconds
DEFAULT_TASK_POLL_ATTEMPTS = 20
DEFAULT_TASK_POLL_INTERVAL = 0.5  # seconds

# Elevated (admin) credential lifetime
DEFAULT_ELEVATED_SESSION_TTL_SECONDS = 300

# --- Local cache ---

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///chord_catalog.db"
DEFAULT_CACHE_KEY = "irish_songs_cache"

# --- Catalog record ---

ID_MAX_LENGTH = 50
DEFAULT_KEY = "Unknown"
DEFAULT_TIME_SIGNATURE = "4/4"
DEFAULT_STYLE_TYPE = "Traditional"

# Number of leading characters shown when logging configuration secrets
MASKED_PREFIX_LENGTH = 6
