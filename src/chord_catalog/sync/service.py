"""Catalog synchronization service -- reconciles the remote index with the local cache.

Reads go to the remote index while it is reachable and fall back to the
cached snapshot on the first failure. Writes go through an elevation
protocol: an unelevated attempt that hits ``PermissionDenied`` asks the
collaborator for an admin key, runs the one logical operation inside an
elevated scope, and releases the key straight after. Every successful
remote change is mirrored into the local cache before the call returns.
"""

import asyncio
import inspect
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TypeVar

from chord_catalog.cache.store import LocalCacheStore
from chord_catalog.constants import MAX_HITS_PER_PAGE
from chord_catalog.exceptions import (
    CacheReadFailed,
    CacheWriteFailed,
    CatalogError,
    ElevationDeclined,
    NotFound,
    PermissionDenied,
    RemoteIndexError,
    RemoteUnavailable,
    RenameAborted,
    ValidationFailed,
)
from chord_catalog.records import CatalogRecord, derive_id, stamp_for_write, validate_batch, validate_record
from chord_catalog.remote.client import RemoteIndexClient
from chord_catalog.remote.models import ConnectStatus, SearchOptions
from chord_catalog.remote.session import ElevatedSession
from chord_catalog.sync.models import CatalogListener, ConnectionStatus, CredentialRequester, SyncResult
from chord_catalog.transfer import dump_catalog, parse_catalog

logger = logging.getLogger(__name__)

T = TypeVar("T")

_READ_FAILURES = (RemoteIndexError, NotFound)
_HIDDEN_FILTER = "hidden:false"


class _KeyedLocks:
    """One asyncio.Lock per record id; multiple ids are always taken in sorted order.

    A lock lives only while some task holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncGenerator[None, None]:
        ordered = sorted(set(keys))
        for key in ordered:
            self._users[key] = self._users.get(key, 0) + 1
            self._locks.setdefault(key, asyncio.Lock())
        try:
            async with AsyncExitStack() as stack:
                for key in ordered:
                    await stack.enter_async_context(self._locks[key])
                yield
        finally:
            for key in ordered:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]


class CatalogSyncService:
    """Routes every catalog read and write between the remote index and the local cache.

    Constructed explicitly by the composing application with its remote
    client, cache store, read-only key and (optionally) a credential
    requester. Without a requester, writes that need elevation raise
    :class:`PermissionDenied` and change nothing.
    """

    def __init__(
        self,
        remote: RemoteIndexClient,
        cache: LocalCacheStore,
        *,
        read_key: str,
        request_credential: CredentialRequester | None = None,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._read_key = read_key
        self._request_credential = request_credential
        self._remote_available = False
        self._has_cache = False
        self._records: dict[str, CatalogRecord] = {}
        self._listeners: list[CatalogListener] = []
        self._locks = _KeyedLocks()

    # ------------------------------------------------------------------
    # Lifecycle and status
    # ------------------------------------------------------------------

    async def initialize(self) -> ConnectionStatus:
        """Load the cached snapshot, connect, and pull the remote catalog when connected.

        A pull that differs from the cached snapshot replaces memory and the
        cache, so change events and offline fallbacks later in the session
        start from the whole catalog. A failed pull leaves the cached snapshot
        in place and the session offline.
        """
        await self._load_cache_snapshot()
        status = await self._remote.connect(self._read_key)
        self._remote_available = status is ConnectStatus.CONNECTED
        if not self._remote_available:
            logger.warning("Remote index unreachable; serving %d records from local cache", len(self._records))
            return self.get_connection_status()

        try:
            catalog = await self._fetch_remote_catalog()
        except RemoteUnavailable:
            logger.warning("Initial pull failed; serving %d records from local cache", len(self._records))
            return self.get_connection_status()

        if catalog != self._records:
            await self._mirror(self._cache.replace_all(catalog.values()))
            self._apply_snapshot(catalog.values())
        logger.info("Remote index connected; %d records pulled into local cache", len(self._records))
        return self.get_connection_status()

    async def close(self) -> None:
        """Close the remote client."""
        await self._remote.close()

    @property
    def remote_available(self) -> bool:
        return self._remote_available

    def get_connection_status(self) -> ConnectionStatus:
        return ConnectionStatus(
            connected=self._remote_available,
            has_cache=self._has_cache,
            cache_size=len(self._records),
        )

    def on_catalog_changed(self, listener: CatalogListener) -> Callable[[], None]:
        """Subscribe to ``catalog_changed`` notifications. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_records(self, *, include_hidden: bool = False) -> list[CatalogRecord]:
        """Return the whole catalog; hidden records only when asked for."""
        if self._remote_available:
            filters = "" if include_hidden else _HIDDEN_FILTER
            try:
                return await self._remote.search("", SearchOptions(hits_per_page=MAX_HITS_PER_PAGE, filters=filters))
            except _READ_FAILURES as exc:
                self._mark_unavailable(exc)
        return [record.model_copy(deep=True) for record in self._records.values() if include_hidden or not record.hidden]

    async def search(self, query: str, options: SearchOptions | None = None) -> list[CatalogRecord]:
        """Search by text; offline this is a case-insensitive match on title, key and style."""
        options = options or SearchOptions()
        if self._remote_available:
            try:
                return await self._remote.search(query, options)
            except _READ_FAILURES as exc:
                self._mark_unavailable(exc)
        return self._search_offline(query, options)

    async def get_by_id(self, record_id: str) -> CatalogRecord | None:
        """Fetch one record, hidden or not; ``None`` if it does not exist."""
        if self._remote_available:
            try:
                return await self._remote.get_by_id(record_id)
            except _READ_FAILURES as exc:
                self._mark_unavailable(exc)
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    async def get_by_title(self, title: str) -> CatalogRecord | None:
        """Fetch the record stored under the id derived from *title*."""
        record_id = derive_id(title)
        if not record_id:
            return None
        return await self.get_by_id(record_id)

    def _search_offline(self, query: str, options: SearchOptions) -> list[CatalogRecord]:
        needle = query.lower()
        exclude_hidden = _HIDDEN_FILTER in options.filters.replace(" ", "")
        matches = [
            record.model_copy(deep=True)
            for record in self._records.values()
            if not (exclude_hidden and record.hidden)
            and (
                needle in record.title.lower() or needle in record.key.lower() or needle in record.style_type.lower()
            )
        ]
        if options.hits_per_page is not None:
            return matches[: min(options.hits_per_page, MAX_HITS_PER_PAGE)]
        return matches[:MAX_HITS_PER_PAGE]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, record: CatalogRecord, *, previous_title: str | None = None) -> SyncResult:
        """Create or update a record.

        When *previous_title* derives a different id than ``record.title``,
        the save is a rename: the old id is deleted and the new id created
        inside one elevated scope. If the create fails after the delete
        succeeded, the pre-rename record is restored into the cache and
        :class:`RenameAborted` is raised.

        Raises:
            ValidationFailed: Invalid record, or its id belongs to a different title.
            PermissionDenied: Elevation unavailable or the admin key was rejected.
            ElevationDeclined: The collaborator declined to provide an admin key.
            RemoteUnavailable: The remote index failed while online (nothing changed).
            RenameAborted: See above.
        """
        for warning in validate_record(record):
            logger.info("Validation warning: %s", warning)

        new_id = derive_id(record.title)
        old_id = derive_id(previous_title) if previous_title else ""
        renaming = bool(old_id) and old_id != new_id

        async with self._locks.hold(new_id, *([old_id] if renaming else [])):
            online = self._remote_available
            old_record = await self._lookup_for_write(old_id, online) if renaming else None
            if renaming and old_record is None:
                logger.info("Previous record %s no longer exists; saving %s as a new record", old_id, new_id)
                renaming = False

            existing = await self._lookup_for_write(new_id, online)
            self._check_collision(record, existing, previous_title, renaming)

            stamped = stamp_for_write(record, old_record if renaming else existing)

            if not online:
                return await self._save_offline(stamped, old_id if renaming else None)
            if renaming and old_record is not None:
                return await self._rename(old_record, stamped)

            try:
                saved = await self._with_write_access(
                    f"save song '{stamped.title}'",
                    lambda session: self._remote.write(stamped, session),
                )
            except RemoteUnavailable as exc:
                self._mark_unavailable(exc)
                raise

            warnings = await self._mirror(self._cache.upsert(saved))
            self._records[saved.id] = saved
            await self._emit()
            return SyncResult(records=(saved.model_copy(deep=True),), cache_warnings=tuple(warnings))

    async def delete(self, record_id: str) -> SyncResult:
        """Delete a record from the remote index and the cache.

        A remote failure other than a credential problem falls back to a
        cache-only delete, reported as ``degraded``.

        Raises:
            NotFound: No record with this id exists.
            PermissionDenied: Elevation unavailable or the admin key was rejected.
            ElevationDeclined: The collaborator declined to provide an admin key.
        """
        async with self._locks.hold(record_id):
            existing = await self._lookup(record_id)
            if existing is None:
                raise NotFound(record_id)

            if not self._remote_available:
                logger.warning(
                    "Remote index unavailable; deleting %s from local cache only", record_id, extra={"record_id": record_id}
                )
                return await self._delete_locally(record_id)

            try:
                await self._with_write_access(
                    f"delete song '{existing.title}'",
                    lambda session: self._remote.delete(record_id, session),
                )
            except PermissionDenied:
                raise
            except RemoteIndexError as exc:
                if isinstance(exc, RemoteUnavailable):
                    self._mark_unavailable(exc)
                logger.warning("Remote delete of %s failed (%s); deleting from local cache only", record_id, exc)
                return await self._delete_locally(record_id)

            warnings = await self._mirror(self._cache.remove(record_id))
            self._records.pop(record_id, None)
            await self._emit()
            return SyncResult(cache_warnings=tuple(warnings))

    async def batch_save(
        self,
        records: Sequence[CatalogRecord],
        *,
        write_key: str | None = None,
        wait: bool = False,
    ) -> SyncResult:
        """Upsert many records in one elevated operation, then rebuild the cache snapshot.

        Args:
            records: Records to save; validated as a batch first.
            write_key: Admin key supplied up front (the importer's path). When
                omitted the usual elevation request is made.
            wait: Wait until the remote index has published the batch.
        """
        for warning in validate_batch(records):
            logger.info("Validation warning: %s", warning)

        async with self._locks.hold(*(derive_id(record.title) for record in records)):
            online = self._remote_available
            current = await self._fetch_remote_catalog() if online else dict(self._records)

            collisions = [
                f"Song {record.title!r} collides with existing {existing.title!r} (id {existing.id})"
                for record in records
                if (existing := current.get(derive_id(record.title))) is not None and existing.title != record.title
            ]
            if collisions:
                raise ValidationFailed(collisions)

            stamped = [stamp_for_write(record, current.get(derive_id(record.title))) for record in records]

            if not online:
                logger.warning("Remote index unavailable; importing %d songs into local cache only", len(stamped))
                merged = self._merged(current, stamped)
                await self._cache.replace_all(merged)
                self._apply_snapshot(merged)
                await self._emit()
                return SyncResult(records=tuple(r.model_copy(deep=True) for r in stamped), degraded=True)

            try:
                saved = await self._with_write_access(
                    f"import {len(stamped)} songs",
                    lambda session: self._remote.batch_write(stamped, session, wait=wait),
                    write_key=write_key,
                )
            except RemoteUnavailable as exc:
                self._mark_unavailable(exc)
                raise

            merged = self._merged(current, saved)
            warnings = await self._mirror(self._cache.replace_all(merged))
            self._apply_snapshot(merged)
            await self._emit()
            return SyncResult(records=tuple(r.model_copy(deep=True) for r in saved), cache_warnings=tuple(warnings))

    async def refresh(self) -> SyncResult:
        """Re-pull the whole remote index and rebuild the cache from it.

        Reconnects first if the remote was marked unavailable. Cached records
        the remote no longer has (stale-local) are evicted.

        Raises:
            RemoteUnavailable: Reconnection or the full pull failed.
        """
        if not self._remote_available:
            status = await self._remote.connect(self._read_key)
            if status is not ConnectStatus.CONNECTED:
                raise RemoteUnavailable("reconnection failed")
            self._remote_available = True
            logger.info("Remote index reconnected")

        catalog = await self._fetch_remote_catalog()
        records = list(catalog.values())

        stale = [record_id for record_id in self._records if record_id not in catalog]
        if stale:
            logger.info("Evicting %d stale-local records: %s", len(stale), ", ".join(stale))

        warnings = await self._mirror(self._cache.replace_all(records))
        self._apply_snapshot(records)
        await self._emit()
        logger.info("Catalog refreshed from remote index: %d records", len(records))
        return SyncResult(records=tuple(r.model_copy(deep=True) for r in records), cache_warnings=tuple(warnings))

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    async def export_catalog(self) -> str:
        """Serialize every record (hidden included) to the re-loadable text format."""
        return dump_catalog(await self.list_records(include_hidden=True))

    async def import_catalog(self, text: str, *, write_key: str | None = None) -> SyncResult:
        """Parse exported text and save it through :meth:`batch_save`."""
        return await self.batch_save(parse_catalog(text), write_key=write_key)

    # ------------------------------------------------------------------
    # Elevation protocol
    # ------------------------------------------------------------------

    async def _with_write_access(
        self,
        operation: str,
        action: Callable[[ElevatedSession | None], Awaitable[T]],
        *,
        write_key: str | None = None,
    ) -> T:
        """Run *action* unelevated; on ``PermissionDenied`` ask for a key once and retry elevated."""
        if write_key is not None:
            async with self._remote.elevated(write_key) as session:
                return await action(session)

        try:
            return await action(None)
        except PermissionDenied:
            if self._request_credential is None:
                logger.warning(
                    "Write access required for %s but no credential requester is configured",
                    operation,
                    extra={"operation": operation},
                )
                raise

        credential = await self._ask_for_credential(operation)
        if not credential:
            logger.info("Elevation declined for %s", operation, extra={"operation": operation})
            raise ElevationDeclined(operation)

        async with self._remote.elevated(credential) as session:
            return await action(session)

    async def _ask_for_credential(self, operation: str) -> str | None:
        request_credential = self._request_credential
        if request_credential is None:
            return None
        logger.info("Requesting elevated credential for %s", operation, extra={"operation": operation})
        try:
            credential = await request_credential(operation)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.info("Credential request for %s was abandoned", operation)
            return None
        return credential.strip() if credential else None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _rename(self, old_record: CatalogRecord, stamped: CatalogRecord) -> SyncResult:
        deleted = False

        async def _delete_then_create(session: ElevatedSession | None) -> CatalogRecord:
            nonlocal deleted
            await self._remote.delete(old_record.id, session)
            deleted = True
            return await self._remote.write(stamped, session)

        try:
            saved = await self._with_write_access(
                f"rename song '{old_record.title}' to '{stamped.title}'",
                _delete_then_create,
            )
        except CatalogError as exc:
            if isinstance(exc, RemoteUnavailable):
                self._mark_unavailable(exc)
            if not deleted:
                raise
            logger.error(
                "Rename of %s to %s failed after deleting the old id; restoring %s in local cache",
                old_record.id,
                stamped.id,
                old_record.id,
            )
            await self._mirror(self._cache.upsert(old_record))
            self._records[old_record.id] = old_record
            await self._emit()
            raise RenameAborted(old_record, stamped.title) from exc

        warnings = await self._mirror(self._cache.upsert(saved))
        warnings += await self._mirror(self._cache.remove(old_record.id))
        self._records.pop(old_record.id, None)
        self._records[saved.id] = saved
        await self._emit()
        return SyncResult(records=(saved.model_copy(deep=True),), cache_warnings=tuple(warnings))

    async def _save_offline(self, stamped: CatalogRecord, old_id: str | None) -> SyncResult:
        """Cache is the sole store: a cache failure here is an error, not a warning."""
        logger.warning(
            "Remote index unavailable; saving %s to local cache only", stamped.id, extra={"record_id": stamped.id}
        )
        await self._cache.upsert(stamped)
        self._has_cache = True
        self._records[stamped.id] = stamped
        if old_id is not None:
            await self._cache.remove(old_id)
            self._records.pop(old_id, None)
        await self._emit()
        return SyncResult(records=(stamped.model_copy(deep=True),), degraded=True)

    async def _delete_locally(self, record_id: str) -> SyncResult:
        await self._cache.remove(record_id)
        self._records.pop(record_id, None)
        await self._emit()
        return SyncResult(degraded=True)

    async def _lookup(self, record_id: str) -> CatalogRecord | None:
        if not record_id:
            return None
        return await self.get_by_id(record_id)

    async def _lookup_for_write(self, record_id: str, online: bool) -> CatalogRecord | None:
        """Current stored version of *record_id*; online a read failure is raised, never masked by the cache."""
        if not record_id:
            return None
        if not online:
            return self._records.get(record_id)
        return await self._read_remote(self._remote.get_by_id(record_id))

    async def _fetch_remote_catalog(self) -> dict[str, CatalogRecord]:
        """Every remote record keyed by id, hidden ones included."""
        records = await self._read_remote(self._remote.search("", SearchOptions(hits_per_page=MAX_HITS_PER_PAGE)))
        return {record.id: record for record in records}

    async def _read_remote(self, operation: Awaitable[T]) -> T:
        """Await a remote read; any failure switches to the cache and surfaces as ``RemoteUnavailable``."""
        try:
            return await operation
        except RemoteUnavailable as exc:
            self._mark_unavailable(exc)
            raise
        except _READ_FAILURES as exc:
            self._mark_unavailable(exc)
            raise RemoteUnavailable(str(exc)) from exc

    @staticmethod
    def _check_collision(
        record: CatalogRecord,
        existing: CatalogRecord | None,
        previous_title: str | None,
        renaming: bool,
    ) -> None:
        if existing is None:
            return
        if renaming:
            raise ValidationFailed([f"A song with id {existing.id!r} already exists ({existing.title!r})"])
        if existing.title != record.title and existing.title != previous_title:
            raise ValidationFailed(
                [f"Song {record.title!r} collides with existing {existing.title!r} (id {existing.id!r})"]
            )

    async def _load_cache_snapshot(self) -> None:
        try:
            records = await self._cache.load_all()
            self._has_cache = await self._cache.has_snapshot()
        except CacheReadFailed as exc:
            logger.error("Local cache unreadable, starting with an empty catalog: %s", exc)
            records = []
            self._has_cache = False
        self._apply_snapshot(records)
        logger.info("Loaded %d records from local cache", len(records))

    def _apply_snapshot(self, records: Iterable[CatalogRecord]) -> None:
        self._records = {record.id: record.model_copy(deep=True) for record in records}

    @staticmethod
    def _merged(current: dict[str, CatalogRecord], records: Iterable[CatalogRecord]) -> list[CatalogRecord]:
        merged = dict(current)
        for record in records:
            merged[record.id] = record
        return list(merged.values())

    async def _mirror(self, operation: Awaitable[None]) -> list[CacheWriteFailed]:
        """Run a cache mirror step; failures become durability warnings."""
        try:
            await operation
        except CacheWriteFailed as exc:
            logger.warning("Durability warning, local cache not updated: %s", exc)
            return [exc]
        self._has_cache = True
        return []

    def _mark_unavailable(self, exc: Exception) -> None:
        if self._remote_available:
            logger.warning("Remote index call failed, switching to local cache for this session: %s", exc)
        self._remote_available = False

    async def _emit(self) -> None:
        snapshot = [record.model_copy(deep=True) for record in self._records.values()]
        for listener in list(self._listeners):
            try:
                result = listener(list(snapshot))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("catalog_changed listener failed")
