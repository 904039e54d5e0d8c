"""
Logging for the chrootmanager CLI.

``main.py`` builds a ``LogOptions`` from its ``-d/-v/-q`` flags and the
``CM_LOG_*`` environment, then calls ``configure_logging`` once.

Console output is sized to the chosen level:
    WARNING+  bare messages, the CLI decorates its own output
    INFO      clock time and logger name
    DEBUG     thread name too, so keeper renewals can be told apart
              from the command that is waiting on the gateway lock

The session keeper renews sudo every minute from a background thread;
its logger is held at INFO unless some handler is at DEBUG, so a long
``enter`` session does not fill a verbose log with renewal lines.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping

ENV_LEVEL = "CM_LOG_LEVEL"
ENV_FILE = "CM_LOG_FILE"
ENV_FILE_LEVEL = "CM_LOG_FILE_LEVEL"

KEEPER_LOGGER = "chrootmanager.core.elevation.keeper"

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s: %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s %(name)s: %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class LogOptions:
    level: int = logging.WARNING
    file: str | None = None
    file_level: int | None = None

    @classmethod
    def from_cli(
        cls,
        debug: bool = False,
        verbose: bool = False,
        quiet: bool = False,
        environ: Mapping[str, str] | None = None,
    ) -> LogOptions:
        """Flags win over ``CM_LOG_LEVEL``; the default is WARNING."""
        env = os.environ if environ is None else environ
        if debug:
            level = logging.DEBUG
        elif verbose:
            level = logging.INFO
        elif quiet:
            level = logging.ERROR
        else:
            level = level_from_name(env.get(ENV_LEVEL))

        file_level = env.get(ENV_FILE_LEVEL)
        return cls(
            level=level,
            file=env.get(ENV_FILE) or None,
            file_level=level_from_name(file_level) if file_level else None,
        )


def level_from_name(name: str | None) -> int:
    """``"debug"`` → ``logging.DEBUG``; unknown or empty names give WARNING."""
    if not name:
        return logging.WARNING
    numeric = logging.getLevelName(name.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING


def console_format(level: int) -> tuple[str, str | None]:
    if level <= logging.DEBUG:
        return _CONSOLE_FORMATS[logging.DEBUG]
    if level <= logging.INFO:
        return _CONSOLE_FORMATS[logging.INFO]
    return _CONSOLE_FORMATS[logging.WARNING]


def configure_logging(options: LogOptions) -> None:
    """Replace the root handlers according to ``options``."""
    fmt, datefmt = console_format(options.level)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(options.level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    root_level = options.level
    if options.file:
        file_level = options.file_level if options.file_level is not None else options.level
        root_level = min(root_level, file_level)

        file_handler = logging.FileHandler(options.file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(file_handler)

    root.setLevel(root_level)

    # NOTSET lets the keeper follow the root again when DEBUG is asked for
    keeper_level = logging.NOTSET if root_level <= logging.DEBUG else logging.INFO
    logging.getLogger(KEEPER_LOGGER).setLevel(keeper_level)

    logging.raiseExceptions = False
