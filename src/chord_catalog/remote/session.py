"""Elevated (write-capable) session bound to an admin credential."""

import time
from collections.abc import Callable

from chord_catalog.exceptions import PermissionDenied


class ElevatedSession:
    """In-memory binding of an admin API key with a bounded lifetime.

    The key is never persisted or logged. Once released or expired the
    session refuses to hand out its credential.
    """

    __slots__ = ("_write_key", "_expires_at", "_clock", "_released")

    def __init__(
        self,
        write_key: str,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._write_key = write_key
        self._clock = clock
        self._expires_at = clock() + ttl_seconds
        self._released = False

    @property
    def is_active(self) -> bool:
        return not self._released and self._clock() < self._expires_at

    @property
    def released(self) -> bool:
        return self._released

    def credential(self) -> str:
        """Return the admin key.

        Raises:
            PermissionDenied: If the session was released or has expired.
        """
        if self._released:
            raise PermissionDenied("Elevated session has been released")
        if self._clock() >= self._expires_at:
            raise PermissionDenied("Elevated session has expired")
        return self._write_key

    def release(self) -> None:
        """Discard the credential. Safe to call more than once."""
        self._write_key = ""
        self._released = True

    def __repr__(self) -> str:
        return f"ElevatedSession(active={self.is_active})"
