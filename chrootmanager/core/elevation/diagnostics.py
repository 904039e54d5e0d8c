"""
sudo diagnostic translation — stderr text → session signal.

This is the ONLY place that knows sudo's wording.  The phrases are the
stock English messages; localized or reworded builds of sudo are not
recognized and fall through to ``SessionSignal.NONE``.
"""

from __future__ import annotations

from enum import StrEnum


class SessionSignal(StrEnum):
    """What a failed sudo call says about the session."""

    NONE = "none"                      # unrelated failure, report output as-is
    EXPIRED = "expired"                # non-interactive call needed a password
    REFUSED = "refused"                # sudo rejected the user
    PERMISSION_DENIED = "permission"   # session fine, operation rejected


_EXPIRED_PHRASES = (
    "a password is required",
    "a terminal is required",
)

_REFUSED_PHRASES = (
    "sorry, try again",
    "incorrect password",
    "is not in the sudoers file",
    "is not allowed to execute",
    "may not run sudo",
)

_PERMISSION_PHRASES = (
    "permission denied",
    "operation not permitted",
)


def classify_sudo_stderr(stderr: str) -> SessionSignal:
    """Translate sudo/child stderr into a ``SessionSignal``.

    Order matters: session-level signals win over a permission error
    printed by the child program in the same output.
    """
    text = (stderr or "").lower()
    if not text:
        return SessionSignal.NONE

    if any(p in text for p in _EXPIRED_PHRASES):
        return SessionSignal.EXPIRED
    if any(p in text for p in _REFUSED_PHRASES):
        return SessionSignal.REFUSED
    if any(p in text for p in _PERMISSION_PHRASES):
        return SessionSignal.PERMISSION_DENIED
    return SessionSignal.NONE
