"""
Session keeper — keep sudo's own timestamp alive in the background.

Once per interval the keeper runs ``sudo -n -v``.  It never prompts and
never extends the cache's trust window: ``confirmed_at`` stays anchored
to the last operator-confirmed authentication, so a long-running
process still has to re-confirm once the TTL is up.

Lifecycle
─────────
- Started by the gateway after a successful ``authenticate()``.
- Stops on its own when the cache flag is down, when a silent renewal
  fails, or after ``ttl // interval`` ticks.
- ``stop()`` is synchronous: it returns only after the thread is gone.

The keeper only ever takes the cache lock and only ever sets the flag
to False, so it cannot resurrect a session a caller tore down.
"""

from __future__ import annotations

import logging
import threading

from chrootmanager.core.elevation import runner
from chrootmanager.core.elevation.cache import CredentialCache
from chrootmanager.core.elevation.errors import ElevationIOError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class SessionKeeper:
    """Background renewal task bound to one ``CredentialCache``.

    Args:
        cache: The cache whose flag controls the loop.
        interval: Seconds between renewal attempts.
        sudo_binary: sudo executable name or path.
    """

    def __init__(
        self,
        cache: CredentialCache,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        sudo_binary: str = "sudo",
    ) -> None:
        self.cache = cache
        self.interval = interval
        self.sudo_binary = sudo_binary
        self.max_ticks = max(1, int(cache.ttl // interval)) if interval > 0 else 1
        self.ticks = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("session keeper already started")
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="sudo-session-keeper",
        )
        self._thread.start()
        logger.debug(
            "Session keeper started (every %.0fs, at most %d renewals)",
            self.interval,
            self.max_ticks,
        )

    def stop(self) -> None:
        """Signal the thread, drop the cache flag, and join."""
        self._stop.set()
        self.cache.mark_expired()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
            logger.debug("Session keeper stopped cleanly")

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Loop ────────────────────────────────────────────────────

    def _run(self) -> None:
        while self.ticks < self.max_ticks:
            if self._stop.wait(self.interval):
                break

            if not self.cache.is_flagged():
                logger.debug("Session keeper stopping: authentication invalidated")
                break

            if not self._renew():
                self.cache.mark_expired()
                break

            self.ticks += 1

        logger.debug("Session keeper thread terminated after %d renewals", self.ticks)

    def _renew(self) -> bool:
        try:
            result = runner.validate(self.sudo_binary, interactive=False)
        except ElevationIOError as e:
            logger.debug("Failed to refresh sudo session: %s", e)
            return False

        if result.returncode != 0:
            logger.debug("sudo session expired, stopping session keeper")
            return False

        logger.debug("sudo session refreshed by keeper")
        return True
