"""Tests for MigrationImporter."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from chord_catalog.exceptions import RemoteUnavailable, ValidationFailed
from chord_catalog.migration.importer import MigrationImporter
from chord_catalog.migration.models import ImportReport, LogLevel, MigrationLogEntry
from chord_catalog.migration.seed import SEED_SONGS
from chord_catalog.records import CatalogRecord, derive_id
from chord_catalog.sync.models import ConnectionStatus, SyncResult


def _mock_service(*, connected: bool = True, degraded: bool = False) -> MagicMock:
    """A sync service double whose batch save echoes its input."""
    service = MagicMock()
    service.get_connection_status.return_value = ConnectionStatus(connected=connected, has_cache=False, cache_size=0)

    async def _batch_save(records: list[CatalogRecord], **kwargs: object) -> SyncResult:
        service.saved = list(records)
        return SyncResult(records=tuple(records), degraded=degraded)

    service.batch_save = AsyncMock(side_effect=_batch_save)
    service.refresh = AsyncMock(return_value=SyncResult())
    service.list_records = AsyncMock(side_effect=lambda: list(service.saved))
    service.search = AsyncMock(side_effect=lambda query: [r for r in service.saved if "Jig" in r.style_type])
    service.get_by_id = AsyncMock(side_effect=lambda record_id: next(r for r in service.saved if r.id == record_id))
    return service


class TestConvertSeed:
    def test_converts_all_seed_songs(self) -> None:
        records = MigrationImporter(MagicMock(), AsyncMock()).convert_seed(now=100_000)

        assert len(records) == 12
        assert [r.id for r in records] == [derive_id(title) for title in SEED_SONGS]
        assert all(r.sections for r in records)

    def test_creation_times_are_staggered(self) -> None:
        records = MigrationImporter(MagicMock(), AsyncMock()).convert_seed(now=100_000)

        assert [r.created_at for r in records[:3]] == [100_000, 99_000, 98_000]
        assert all(r.modified_at == 100_000 for r in records)

    def test_missing_fields_get_defaults(self) -> None:
        importer = MigrationImporter(MagicMock(), AsyncMock(), seed={"Untitled Air": {"chords": {"A": "G"}}})

        (record,) = importer.convert_seed(now=1)

        assert record.key == "Unknown"
        assert record.time_signature == "4/4"
        assert record.style_type == "Traditional"
        assert record.hidden is False
        assert record.searchable_text == "Untitled Air Unknown Traditional G"

    def test_lark_in_the_morning_has_four_parts(self) -> None:
        records = MigrationImporter(MagicMock(), AsyncMock()).convert_seed()

        lark = next(r for r in records if r.id == "the-lark-in-the-morning")
        assert list(lark.sections) == ["A Part", "B Part", "C Part", "D Part"]


class TestValidate:
    def test_warnings_are_logged(self) -> None:
        importer = MigrationImporter(MagicMock(), AsyncMock(), seed={"Untitled Air": {"chords": {"A": "G"}}})

        warnings = importer.validate(importer.convert_seed())

        assert warnings == ["Song 0: missing key", "Song 0: missing type"]

    def test_errors_raise(self) -> None:
        importer = MigrationImporter(MagicMock(), AsyncMock(), seed={"Empty": {"chords": {}}})

        with pytest.raises(ValidationFailed):
            importer.validate(importer.convert_seed())


class TestRun:
    async def test_successful_migration(self) -> None:
        service = _mock_service()
        requester = AsyncMock(return_value="admin-key")

        report = await MigrationImporter(service, requester).run()

        assert report.success is True
        assert report.songs_count == 12
        assert report.error is None
        requester.assert_awaited_once()
        kwargs = service.batch_save.await_args.kwargs
        assert kwargs == {"write_key": "admin-key", "wait": True}
        service.refresh.assert_awaited_once()
        service.search.assert_awaited_once_with("jig")
        assert any("Found 4 jigs" in entry.message for entry in report.log)
        assert report.log[-1].message == "Admin credentials cleaned up"

    async def test_declined_key_fails_without_writing(self) -> None:
        service = _mock_service()

        report = await MigrationImporter(service, AsyncMock(return_value=None)).run()

        assert report.success is False
        assert "declined" in (report.error or "")
        service.batch_save.assert_not_awaited()
        assert report.log[-1].message == "Admin credentials cleaned up"

    async def test_invalid_seed_fails_before_asking_for_key(self) -> None:
        service = _mock_service()
        requester = AsyncMock(return_value="admin-key")

        report = await MigrationImporter(service, requester, seed={"A": {"chords": {"V": "G"}}, "a": {}}).run()

        assert report.success is False
        requester.assert_not_awaited()
        errors = [entry.message for entry in report.log if entry.level is LogLevel.ERROR]
        assert "Song 1: at least one chord section is required" in errors
        assert "Duplicate objectID found: a" in errors

    async def test_remote_failure_is_reported(self) -> None:
        service = _mock_service()
        service.batch_save.side_effect = RemoteUnavailable("HTTP 503")

        report = await MigrationImporter(service, AsyncMock(return_value="admin-key")).run()

        assert report.success is False
        assert "unavailable" in (report.error or "")

    async def test_offline_migration_skips_refresh(self) -> None:
        service = _mock_service(connected=False, degraded=True)

        report = await MigrationImporter(service, AsyncMock(return_value="admin-key")).run()

        assert report.success is True
        assert report.degraded is True
        service.refresh.assert_not_awaited()
        assert report.log[1].level is LogLevel.WARNING

    async def test_empty_catalog_fails_self_test(self) -> None:
        service = _mock_service()
        service.list_records = AsyncMock(return_value=[])

        report = await MigrationImporter(service, AsyncMock(return_value="admin-key")).run()

        assert report.success is False
        assert report.error == "No songs found after migration"


def test_format_log_renders_one_line_per_entry() -> None:
    stamp = datetime(2024, 3, 17, 12, 0, tzinfo=UTC)
    report = ImportReport(
        log=[
            MigrationLogEntry(stamp, "Starting data migration to remote index..."),
            MigrationLogEntry(stamp, "Song 3: missing key", LogLevel.WARNING),
        ]
    )

    assert report.format_log() == (
        "[2024-03-17T12:00:00+00:00] INFO: Starting data migration to remote index...\n"
        "[2024-03-17T12:00:00+00:00] WARNING: Song 3: missing key"
    )
