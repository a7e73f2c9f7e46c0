"""Migration batch importer and seed dataset."""

from chord_catalog.migration.importer import MigrationImporter
from chord_catalog.migration.models import ImportReport, LogLevel, MigrationLogEntry
from chord_catalog.migration.seed import SEED_SONGS

__all__ = [
    "ImportReport",
    "LogLevel",
    "MigrationImporter",
    "MigrationLogEntry",
    "SEED_SONGS",
]
