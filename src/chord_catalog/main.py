"""Command entry point for the chord catalog."""

import argparse
import asyncio
import getpass
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from chord_catalog.cache import LocalCacheStore
from chord_catalog.constants import ServiceName
from chord_catalog.db import DatabaseManager
from chord_catalog.exceptions import CatalogError
from chord_catalog.logging import configure_logging
from chord_catalog.migration import MigrationImporter
from chord_catalog.remote import RemoteIndexClient
from chord_catalog.settings import CatalogSettings, get_settings
from chord_catalog.sync import CatalogSyncService, CredentialRequester

logger = logging.getLogger(__name__)


async def prompt_for_write_key(operation: str) -> str | None:
    """Ask on the terminal for an admin key; an empty answer declines."""
    try:
        answer = await asyncio.to_thread(getpass.getpass, f"Admin API key to {operation} (empty to cancel): ")
    except EOFError:
        return None
    return answer.strip() or None


async def build_service(
    settings: CatalogSettings,
    db_manager: DatabaseManager,
    request_credential: CredentialRequester | None = None,
) -> CatalogSyncService:
    """Wire the remote client, cache store and service, then initialize it."""
    await db_manager.create_schema()
    cache = LocalCacheStore(db_manager, cache_key=settings.CACHE_KEY, max_bytes=settings.CACHE_MAX_BYTES)
    service = CatalogSyncService(
        RemoteIndexClient.from_settings(settings),
        cache,
        read_key=settings.ALGOLIA_SEARCH_API_KEY,
        request_credential=request_credential,
    )
    await service.initialize()
    return service


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chord-catalog", description="Chord catalog synchronization")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show remote connection and cache status")
    subparsers.add_parser("refresh", help="Rebuild the local cache from the remote index")

    export_parser = subparsers.add_parser("export", help="Write the whole catalog as JSON")
    export_parser.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")

    import_parser = subparsers.add_parser("import", help="Import a JSON catalog file")
    import_parser.add_argument("file", type=Path, help="Exported catalog or legacy title-keyed seed file")

    migrate_parser = subparsers.add_parser("migrate", help="Load the seed dataset into the remote index")
    migrate_parser.add_argument("--log-file", type=Path, help="Write the migration log to this file")
    return parser


async def _run_command(args: argparse.Namespace, service: CatalogSyncService) -> int:
    if args.command == "status":
        status = service.get_connection_status()
        print(status.model_dump_json(indent=2))
        return 0

    if args.command == "refresh":
        result = await service.refresh()
        print(f"Refreshed {len(result.records)} songs")
        return 0

    if args.command == "export":
        text = await service.export_catalog()
        if args.output is None:
            print(text)
        else:
            args.output.write_text(text, encoding="utf-8")
            logger.info("Catalog exported to %s", args.output)
        return 0

    if args.command == "import":
        result = await service.import_catalog(args.file.read_text(encoding="utf-8"))
        suffix = " (local cache only)" if result.degraded else ""
        print(f"Imported {len(result.records)} songs{suffix}")
        return 0

    if args.command == "migrate":
        report = await MigrationImporter(service, prompt_for_write_key).run()
        if args.log_file is not None:
            args.log_file.write_text(report.format_log(), encoding="utf-8")
        if report.success:
            print(f"Migration successful! Migrated {report.songs_count} songs.")
            return 0
        print(f"Migration failed: {report.error}", file=sys.stderr)
        return 1

    raise ValueError(f"Unknown command: {args.command!r}")


async def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, build the service, run one command and shut down."""
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(ServiceName.MIGRATION if args.command == "migrate" else ServiceName.CATALOG, settings.LOG_LEVEL)

    db_manager = DatabaseManager(settings.database_settings())
    service: CatalogSyncService | None = None
    try:
        service = await build_service(settings, db_manager, prompt_for_write_key)
        return await _run_command(args, service)
    except CatalogError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if service is not None:
            await service.close()
        await db_manager.dispose()


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received, shutting down")
        sys.exit(130)


if __name__ == "__main__":
    run()
