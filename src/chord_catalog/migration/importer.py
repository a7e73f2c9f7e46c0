"""Migration batch importer -- loads the seed dataset into the catalog in one batch.

Flow: convert seed -> validate -> request admin key -> batch save (wait for
the index to publish) -> refresh -> self-test. Every step is recorded in the
run's :class:`ImportReport` log; the admin key is only held for the batch save.
"""

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from chord_catalog.exceptions import CatalogError, ElevationDeclined, MigrationCheckFailed, ValidationFailed
from chord_catalog.migration.models import ImportReport, LogLevel, MigrationLogEntry
from chord_catalog.migration.seed import SEED_SONGS
from chord_catalog.records import CatalogRecord, now_ms, stamp_for_write, validate_batch
from chord_catalog.sync.models import CredentialRequester
from chord_catalog.sync.service import CatalogSyncService

logger = logging.getLogger(__name__)

# Creation times are staggered so the seed keeps its order when sorted by age
CREATED_AT_STAGGER_MS = 1000
MIGRATE_OPERATION = "migrate seed catalog to remote index"

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class MigrationImporter:
    """One-shot importer for a title-keyed seed dataset.

    The service must already be initialized; the importer never touches the
    remote index or cache directly.
    """

    def __init__(
        self,
        service: CatalogSyncService,
        request_credential: CredentialRequester,
        *,
        seed: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._service = service
        self._request_credential = request_credential
        self._seed = seed if seed is not None else SEED_SONGS
        self._report = ImportReport()

    def convert_seed(self, *, now: int | None = None) -> list[CatalogRecord]:
        """Turn the seed mapping into stamped records, filling defaults for missing fields."""
        timestamp = now if now is not None else now_ms()
        records: list[CatalogRecord] = []
        for index, (title, data) in enumerate(self._seed.items()):
            record = CatalogRecord(
                title=title,
                key=data.get("key"),
                time_signature=data.get("time"),
                style_type=data.get("type"),
                sections=data.get("chords") or {},
                hidden=data.get("hidden", False),
                created_at=timestamp - index * CREATED_AT_STAGGER_MS,
            )
            records.append(stamp_for_write(record, now=timestamp))
        return records

    def validate(self, records: list[CatalogRecord]) -> list[str]:
        """Validate the converted batch, logging warnings and errors into the report."""
        try:
            warnings = validate_batch(records)
        except ValidationFailed as exc:
            for error in exc.errors:
                self._log(error, LogLevel.ERROR)
            raise
        for warning in warnings:
            self._log(warning, LogLevel.WARNING)
        return warnings

    async def run(self) -> ImportReport:
        """Run the whole migration. Failures are reported, not raised."""
        self._report = report = ImportReport()
        self._log("Starting data migration to remote index...")

        try:
            if not self._service.get_connection_status().connected:
                self._log("Remote index unavailable, migration will only update local cache", LogLevel.WARNING)

            self._log("Converting seed data...")
            records = self.convert_seed()
            self._log(f"Converted {len(records)} songs")

            self._log("Validating converted data...")
            self.validate(records)

            self._log("Migration requires an admin API key for write permissions...")
            write_key = await self._request_credential(MIGRATE_OPERATION)
            if not write_key:
                raise ElevationDeclined(MIGRATE_OPERATION)

            self._log("Uploading songs...")
            result = await self._service.batch_save(records, write_key=write_key, wait=True)
            write_key = None
            report.degraded = result.degraded
            for warning in result.cache_warnings:
                self._log(f"Durability warning: {warning}", LogLevel.WARNING)
            self._log(f"Successfully migrated {len(result.records)} songs")

            if not result.degraded:
                self._log("Refreshing catalog from remote index...")
                await self._service.refresh()

            self._log("Testing migration...")
            await self.self_test()

            report.success = True
            report.songs_count = len(records)
            self._log("Migration completed successfully")
        except CatalogError as exc:
            report.error = str(exc)
            self._log(f"Migration failed: {exc}", LogLevel.ERROR)
        finally:
            self._log("Admin credentials cleaned up")

        return report

    async def self_test(self) -> None:
        """Check the catalog is listable, searchable and fetchable by id.

        Raises:
            MigrationCheckFailed: If any of the checks fails.
        """
        records = await self._service.list_records()
        if not records:
            raise MigrationCheckFailed("No songs found after migration")

        jigs = await self._service.search("jig")
        self._log(f"Search test: Found {len(jigs)} jigs")

        first = records[0]
        if await self._service.get_by_id(first.id) is None:
            raise MigrationCheckFailed(f"Failed to retrieve individual song {first.id!r}")

        self._log("All tests passed successfully")

    def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self._report.log.append(MigrationLogEntry(timestamp=datetime.now(UTC), message=message, level=level))
        logger.log(_LOG_LEVELS[level], message, extra={"operation": MIGRATE_OPERATION})
