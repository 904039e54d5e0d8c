"""
Credential cache — whether the sudo session is currently trusted.

Pure state plus a time check.  No I/O, never raises.  The cache has its
own small lock so the session keeper can read and flip the flag without
ever touching the gateway lock.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

DEFAULT_TTL_SECONDS = 45 * 60


class CredentialCache:
    """Last known validity of the elevated session.

    Args:
        ttl: Seconds a confirmation stays trustworthy.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._authenticated = False
        self._confirmed_at: float | None = None

    @property
    def confirmed_at(self) -> float | None:
        with self._lock:
            return self._confirmed_at

    def is_valid(self) -> bool:
        """True iff authenticated, confirmed, and within the TTL."""
        with self._lock:
            if not self._authenticated or self._confirmed_at is None:
                return False
            return (self._clock() - self._confirmed_at) < self.ttl

    def is_flagged(self) -> bool:
        """Raw ``authenticated`` flag, ignoring the TTL."""
        with self._lock:
            return self._authenticated

    def confirm(self) -> None:
        """Record a successful, operator-confirmed authentication."""
        with self._lock:
            self._authenticated = True
            self._confirmed_at = self._clock()

    def mark_expired(self) -> None:
        """Drop the flag only.  Used for cooperative keeper shutdown."""
        with self._lock:
            self._authenticated = False

    def invalidate(self) -> None:
        """Forget the session entirely.  Idempotent."""
        with self._lock:
            self._authenticated = False
            self._confirmed_at = None

    def remaining(self) -> float:
        """Seconds of trust left (0.0 when invalid)."""
        with self._lock:
            if not self._authenticated or self._confirmed_at is None:
                return 0.0
            return max(0.0, self.ttl - (self._clock() - self._confirmed_at))

    def to_dict(self) -> dict:
        return {
            "authenticated": self.is_valid(),
            "ttl_seconds": self.ttl,
            "remaining_seconds": round(self.remaining(), 1),
        }
