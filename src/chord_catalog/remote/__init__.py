"""Remote index client and models."""

from chord_catalog.remote.client import RemoteIndexClient
from chord_catalog.remote.models import ConnectStatus, SearchOptions
from chord_catalog.remote.session import ElevatedSession

__all__ = [
    "ConnectStatus",
    "ElevatedSession",
    "RemoteIndexClient",
    "SearchOptions",
]
