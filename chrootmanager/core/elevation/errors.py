"""
Elevation errors — everything the gateway can raise.

The cache and the session keeper never raise; their failures show up
as an invalidated cache.  Everything below is raised by the gateway
and surfaces to the caller unchanged.
"""

from __future__ import annotations


class ElevationError(Exception):
    """Base class for all privilege-elevation failures."""


class SudoNotAvailable(ElevationError):
    """The sudo binary could not be found on PATH."""

    def __init__(self, binary: str = "sudo") -> None:
        super().__init__(f"'{binary}' is not available on this system")
        self.binary = binary


class AccessDenied(ElevationError):
    """Authentication was rejected, or sudo refused the session outright."""

    def __init__(self, message: str = "sudo access denied", stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class PermissionDenied(ElevationError):
    """A specific operation was rejected although the session is valid."""

    def __init__(self, command: str, stderr: str = "") -> None:
        super().__init__(f"Permission denied: {command}")
        self.command = command
        self.stderr = stderr


class AuthenticationRequired(ElevationError):
    """An elevated call was made without a valid cached session."""

    def __init__(self, message: str = "Authentication required: call authenticate() first") -> None:
        super().__init__(message)


class SessionExpired(AuthenticationRequired):
    """sudo asked for a password on a non-interactive call."""

    def __init__(self, stderr: str = "") -> None:
        super().__init__("sudo session expired, re-authentication required")
        self.stderr = stderr


class FailedToAcquireLock(ElevationError):
    """The gateway lock could not be obtained within the configured timeout."""

    def __init__(self, timeout: float | None) -> None:
        super().__init__(f"Failed to acquire elevation lock (timeout={timeout}s)")
        self.timeout = timeout


class ElevationIOError(ElevationError):
    """Spawning the sudo process itself failed."""
