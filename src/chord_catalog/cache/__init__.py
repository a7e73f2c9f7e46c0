"""Local cache store."""

from chord_catalog.cache.store import LocalCacheStore

__all__ = ["LocalCacheStore"]
