"""Local cache store -- durable snapshot of the catalog under one well-known key."""

import json
import logging
from collections.abc import Callable, Iterable

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chord_catalog.constants import DEFAULT_CACHE_KEY
from chord_catalog.db.models import CacheEntry
from chord_catalog.db.session import DatabaseManager
from chord_catalog.exceptions import CacheReadFailed, CacheWriteFailed
from chord_catalog.records import CatalogRecord

logger = logging.getLogger(__name__)

_SNAPSHOT = TypeAdapter(list[CatalogRecord])


class LocalCacheStore:
    """Persists the full catalog snapshot as one JSON value in ``cache_entries``.

    - Every read returns freshly parsed records, so callers never alias the
      persisted snapshot.
    - Every mutation is a read-modify-write inside a single transaction.
    - Storage failures raise :class:`CacheWriteFailed`; callers decide whether
      they are fatal (the sync service treats them as durability warnings).
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        *,
        cache_key: str = DEFAULT_CACHE_KEY,
        max_bytes: int = 0,
    ) -> None:
        self._db = db_manager
        self._cache_key = cache_key
        self._max_bytes = max_bytes

    @property
    def cache_key(self) -> str:
        return self._cache_key

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_all(self) -> list[CatalogRecord]:
        """Return every cached record; an empty list if nothing was persisted yet."""
        try:
            async with self._db.session() as session:
                row = await self._get_row(session)
        except SQLAlchemyError as exc:
            raise CacheReadFailed(f"Could not read cache snapshot {self._cache_key!r}: {exc}") from exc
        if row is None:
            return []
        return self._decode(row.value)

    async def has_snapshot(self) -> bool:
        """Whether a snapshot has ever been persisted under the cache key."""
        try:
            async with self._db.session() as session:
                return await self._get_row(session) is not None
        except SQLAlchemyError as exc:
            raise CacheReadFailed(f"Could not read cache snapshot {self._cache_key!r}: {exc}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def replace_all(self, records: Iterable[CatalogRecord]) -> None:
        """Atomically overwrite the whole snapshot."""
        snapshot = [record.model_copy(deep=True) for record in records]
        await self._mutate(lambda _current: snapshot)
        logger.debug("Cache snapshot replaced with %d records", len(snapshot))

    async def upsert(self, record: CatalogRecord) -> None:
        """Insert or replace a record by id, keeping its position if present."""
        stored = record.model_copy(deep=True)

        def _apply(current: list[CatalogRecord]) -> list[CatalogRecord]:
            for index, existing in enumerate(current):
                if existing.id == stored.id:
                    current[index] = stored
                    return current
            current.append(stored)
            return current

        await self._mutate(_apply)

    async def remove(self, record_id: str) -> None:
        """Delete a record by id; no-op if absent."""
        await self._mutate(lambda current: [r for r in current if r.id != record_id])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_row(self, session: AsyncSession) -> CacheEntry | None:
        return await session.get(CacheEntry, self._cache_key)

    async def _mutate(self, change: Callable[[list[CatalogRecord]], list[CatalogRecord]]) -> None:
        try:
            async with self._db.session() as session:
                row = await self._get_row(session)
                current = self._decode(row.value) if row is not None else []
                payload = self._encode(change(current))
                if row is None:
                    session.add(CacheEntry(key=self._cache_key, value=payload))
                else:
                    row.value = payload
        except SQLAlchemyError as exc:
            raise CacheWriteFailed(f"Could not persist cache snapshot {self._cache_key!r}: {exc}") from exc

    def _encode(self, records: list[CatalogRecord]) -> str:
        payload = json.dumps([record.to_wire() for record in records], ensure_ascii=False)
        if self._max_bytes and len(payload.encode("utf-8")) > self._max_bytes:
            raise CacheWriteFailed(
                f"Cache snapshot {self._cache_key!r} exceeds storage quota ({self._max_bytes} bytes)"
            )
        return payload

    def _decode(self, raw: str) -> list[CatalogRecord]:
        try:
            return _SNAPSHOT.validate_json(raw)
        except ValidationError:
            logger.warning("Cache snapshot %r is corrupt, treating it as empty", self._cache_key)
            return []
