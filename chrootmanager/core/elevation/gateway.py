"""
Elevation gateway — the one door to root.

Every authentication and every elevated command goes through one
``ElevationGateway``.  A single re-entrant lock serializes them, so two
callers can never race to prompt the operator, and privileged commands
never run concurrently against the same tree.

State machine:
    UNAUTHENTICATED → authenticate ok → AUTHENTICATED (keeper running)
    AUTHENTICATED   → ttl elapsed | keeper renewal fails
                      | execute sees expiry/refusal | invalidate()
                    → UNAUTHENTICATED
    AUTHENTICATED   → authenticate → AUTHENTICATED (no prompt, same keeper)
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator

from chrootmanager.core.elevation import runner
from chrootmanager.core.elevation.cache import DEFAULT_TTL_SECONDS, CredentialCache
from chrootmanager.core.elevation.diagnostics import SessionSignal, classify_sudo_stderr
from chrootmanager.core.elevation.errors import (
    AccessDenied,
    AuthenticationRequired,
    FailedToAcquireLock,
    PermissionDenied,
    SessionExpired,
    SudoNotAvailable,
)
from chrootmanager.core.elevation.keeper import DEFAULT_INTERVAL_SECONDS, SessionKeeper
from chrootmanager.core.elevation.models import (
    BatchSpec,
    CommandMode,
    CommandOutput,
    CommandRequest,
)

if TYPE_CHECKING:
    from chrootmanager.core.models.config import ElevationSettings

logger = logging.getLogger(__name__)


class ElevationGateway:
    """Serialized access to sudo with a cached, kept-alive session.

    Args:
        ttl: Seconds an operator confirmation is trusted (default 45 min).
        keeper_interval: Seconds between background renewals.
        sudo_binary: sudo executable name or path.
        lock_timeout: Max seconds to wait for the gateway lock
            (``None`` waits forever).
        clock: Monotonic time source shared with the cache.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        keeper_interval: float = DEFAULT_INTERVAL_SECONDS,
        sudo_binary: str = "sudo",
        lock_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sudo_binary = sudo_binary
        self.keeper_interval = keeper_interval
        self.lock_timeout = lock_timeout
        self._cache = CredentialCache(ttl=ttl, clock=clock)
        self._keeper: SessionKeeper | None = None
        self._lock = threading.RLock()

        if not self.is_available():
            logger.warning("%s is not available on this system", sudo_binary)
        else:
            logger.debug("Using %s for privilege elevation with session caching", sudo_binary)

    @classmethod
    def from_settings(cls, settings: ElevationSettings) -> ElevationGateway:
        """Build from an ``ElevationSettings`` config section."""
        return cls(
            ttl=settings.cache_minutes * 60,
            keeper_interval=settings.keeper_interval_seconds,
            sudo_binary=settings.sudo_binary,
            lock_timeout=settings.lock_timeout_seconds,
        )

    # ── Queries ─────────────────────────────────────────────────

    def is_available(self) -> bool:
        return runner.sudo_available(self.sudo_binary)

    def is_authenticated(self) -> bool:
        return self._cache.is_valid()

    @property
    def keeper(self) -> SessionKeeper | None:
        return self._keeper

    def status(self) -> dict[str, Any]:
        return {
            "sudo_binary": self.sudo_binary,
            "available": self.is_available(),
            "keeper_running": bool(self._keeper and self._keeper.is_alive()),
            **self._cache.to_dict(),
        }

    # ── Authentication ──────────────────────────────────────────

    def authenticate(self) -> None:
        """Make sure a sudo session exists, prompting at most once.

        Raises:
            SudoNotAvailable: sudo is not installed.
            AccessDenied: the operator failed to authenticate.
        """
        with self._locked():
            self._require_sudo()

            if self._cache.is_valid():
                logger.debug("Using cached sudo authentication")
                return

            logger.info("Requesting sudo authentication for privileged operations...")
            result = runner.validate(self.sudo_binary, interactive=True)

            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                logger.warning("sudo authentication failed: %s", stderr)
                self._invalidate_locked()
                raise AccessDenied("sudo authentication failed", stderr=stderr)

            self._stop_keeper()
            self._cache.confirm()
            self._start_keeper()
            logger.info(
                "sudo authentication successful, session cached for %d minutes",
                int(self._cache.ttl // 60),
            )

    def invalidate(self) -> None:
        """Forget the session and stop the keeper.  Idempotent."""
        with self._locked():
            self._cache.invalidate()
            self._stop_keeper()
            logger.debug("sudo elevation cache invalidated")

    close = invalidate

    # ── Execution ───────────────────────────────────────────────

    def execute(self, program: str, arguments: Iterable[Any] = ()) -> CommandOutput:
        """Run one command non-interactively as root and capture its output.

        A non-zero exit that is not a session or permission problem is
        returned as-is; callers check ``output.ok``.

        Raises:
            SudoNotAvailable, AuthenticationRequired, SessionExpired,
            AccessDenied, PermissionDenied, ElevationIOError.
        """
        request = CommandRequest.of(program, arguments)
        with self._locked():
            self._require_sudo()
            self._require_session()

            output = runner.run_captured(request, self.sudo_binary)
            if output.ok:
                return output

            signal = classify_sudo_stderr(output.stderr)
            if signal is SessionSignal.EXPIRED:
                logger.warning("sudo session expired, invalidating cache")
                self._invalidate_locked()
                raise SessionExpired(stderr=output.stderr)
            if signal is SessionSignal.REFUSED:
                logger.warning("sudo refused the session, invalidating cache")
                self._invalidate_locked()
                raise AccessDenied("sudo refused the request", stderr=output.stderr)
            if signal is SessionSignal.PERMISSION_DENIED:
                logger.warning("Permission denied: %s", output.stderr.strip())
                raise PermissionDenied(request.display(), stderr=output.stderr)

            return output

    def execute_interactive(self, program: str, arguments: Iterable[Any] = ()) -> CommandOutput:
        """Run one command as root attached to the current terminal.

        stderr is not captured, so expiry is not detected here.
        """
        request = CommandRequest.of(program, arguments, mode=CommandMode.INTERACTIVE)
        with self._locked():
            self._require_sudo()
            self._require_session()
            return runner.run_interactive(request, self.sudo_binary)

    def execute_batch(self, commands: BatchSpec) -> list[CommandOutput]:
        """Authenticate once, then run each command in order.

        The first raised failure aborts the batch; later commands are
        never attempted.  Rolling back the applied prefix is the
        caller's job.
        """
        with self._locked():
            self.authenticate()

            results: list[CommandOutput] = []
            for program, arguments in commands:
                results.append(self.execute(program, arguments))
            return results

    # ── Internals ───────────────────────────────────────────────

    @contextmanager
    def _locked(self) -> Iterator[None]:
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not self._lock.acquire(timeout=timeout):
            raise FailedToAcquireLock(self.lock_timeout)
        try:
            yield
        finally:
            self._lock.release()

    def _require_sudo(self) -> None:
        if not self.is_available():
            raise SudoNotAvailable(self.sudo_binary)

    def _require_session(self) -> None:
        if not self._cache.is_valid():
            raise AuthenticationRequired()

    def _invalidate_locked(self) -> None:
        self._cache.invalidate()
        self._stop_keeper()

    def _start_keeper(self) -> None:
        keeper = SessionKeeper(
            self._cache,
            interval=self.keeper_interval,
            sudo_binary=self.sudo_binary,
        )
        keeper.start()
        self._keeper = keeper

    def _stop_keeper(self) -> None:
        keeper, self._keeper = self._keeper, None
        if keeper is not None:
            keeper.stop()

    def __repr__(self) -> str:
        return (
            f"<ElevationGateway sudo={self.sudo_binary!r} "
            f"authenticated={self.is_authenticated()}>"
        )
