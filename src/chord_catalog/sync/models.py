"""Result and collaborator interface types for the synchronization service."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel

from chord_catalog.exceptions import CacheWriteFailed
from chord_catalog.records import CatalogRecord


class CredentialRequester(Protocol):
    """Asks a collaborator for an admin (write) key.

    Receives a human-readable description of the operation and returns the
    key, or ``None`` to decline. Cancelling the returned awaitable counts as
    a decline.
    """

    def __call__(self, operation: str) -> Awaitable[str | None]: ...


CatalogListener = Callable[[list[CatalogRecord]], Awaitable[None] | None]


class ConnectionStatus(BaseModel):
    """Connection metadata exposed to presentation layers."""

    connected: bool
    has_cache: bool
    cache_size: int


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Outcome of a write, delete, batch save or refresh.

    ``degraded`` means only the local cache was changed (remote unavailable).
    ``cache_warnings`` holds non-fatal failures to mirror a successful remote
    change into the local cache.
    """

    records: tuple[CatalogRecord, ...] = ()
    degraded: bool = False
    cache_warnings: tuple[CacheWriteFailed, ...] = ()

    @property
    def record(self) -> CatalogRecord | None:
        return self.records[0] if self.records else None

    @property
    def durable(self) -> bool:
        return not self.cache_warnings
