"""Catalog error taxonomy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chord_catalog.records import CatalogRecord


class CatalogError(Exception):
    """Base exception for all catalog errors."""


# ---------------------------------------------------------------------------
# Remote index
# ---------------------------------------------------------------------------


class RemoteIndexError(CatalogError):
    """Base exception for failures talking to the remote index."""


class RemoteUnavailable(RemoteIndexError):
    """The remote index could not be reached or returned a server error. Try again later."""

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        msg = "Remote index unavailable"
        if status_code is not None:
            msg += f": HTTP {status_code}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class RemoteRateLimited(RemoteUnavailable):
    """The remote index returned 429 Too Many Requests and retries were exhausted."""

    def __init__(self, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = "rate limit exceeded"
        if retry_after is not None:
            detail += f", retry-after: {retry_after}s"
        super().__init__(detail, status_code=429)


class PermissionDenied(RemoteIndexError):
    """The credential in use does not grant the requested operation."""


class RemoteRequestError(RemoteIndexError):
    """The remote index rejected the request with a non-retryable 4xx."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Remote index request error: HTTP {status_code}" + (f": {detail}" if detail else ""))


# ---------------------------------------------------------------------------
# Catalog operations
# ---------------------------------------------------------------------------


class NotFound(CatalogError):
    """No record with the given id exists in the active backend."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id!r}")


class ElevationDeclined(CatalogError):
    """The caller declined to provide a write credential. Nothing was changed."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Write access declined for: {operation}")


class ValidationFailed(CatalogError):
    """A record failed validation. No backend was touched."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))


class RenameAborted(CatalogError):
    """The old id was deleted but the new record could not be created.

    The pre-rename record has been restored into the local cache.
    """

    def __init__(self, old_record: CatalogRecord, new_title: str) -> None:
        self.old_record = old_record
        self.new_title = new_title
        super().__init__(
            f"Rename of {old_record.title!r} to {new_title!r} aborted; "
            f"{old_record.title!r} restored in the local cache"
        )


# ---------------------------------------------------------------------------
# Local cache
# ---------------------------------------------------------------------------


class CacheError(CatalogError):
    """Base exception for local cache failures."""


class CacheWriteFailed(CacheError):
    """The local cache could not persist a change. Non-fatal durability warning."""


class CacheReadFailed(CacheError):
    """The local cache snapshot could not be read."""


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------


class MigrationCheckFailed(CatalogError):
    """The catalog did not pass the post-migration self-test."""
