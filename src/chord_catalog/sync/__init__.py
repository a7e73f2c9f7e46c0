"""Catalog synchronization service."""

from chord_catalog.sync.models import CatalogListener, ConnectionStatus, CredentialRequester, SyncResult
from chord_catalog.sync.service import CatalogSyncService

__all__ = [
    "CatalogListener",
    "CatalogSyncService",
    "ConnectionStatus",
    "CredentialRequester",
    "SyncResult",
]
