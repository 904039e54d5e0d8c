"""
Elevated process runner.

The SINGLE PLACE where ``subprocess.run`` is called for sudo.  The
gateway decides *whether* to run something; this module only knows
*how*.

Security invariants:
- argv lists only, never ``shell=True``
- ``-n`` on every command so sudo fails instead of prompting
- only ``validate(interactive=True)`` may prompt the operator
- no password ever passes through this process
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from chrootmanager.core.elevation.errors import ElevationIOError
from chrootmanager.core.elevation.models import CommandOutput, CommandRequest

logger = logging.getLogger(__name__)


def sudo_available(binary: str = "sudo") -> bool:
    """Cheap existence check for the sudo binary.  Never raises."""
    return shutil.which(binary) is not None


def validate(binary: str = "sudo", *, interactive: bool) -> subprocess.CompletedProcess:
    """Run ``sudo -v`` (may prompt) or ``sudo -n -v`` (never prompts).

    stdin and the tty stay attached so sudo can ask for the password
    when ``interactive`` is set.  stderr is captured for diagnostics.
    """
    cmd = [binary, "-v"] if interactive else [binary, "-n", "-v"]
    try:
        return subprocess.run(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        raise ElevationIOError(f"Failed to run {binary}: {e}") from e


def run_captured(request: CommandRequest, binary: str = "sudo") -> CommandOutput:
    """Run a request with stdout/stderr captured."""
    argv = request.argv(binary)
    logger.debug("Executing with sudo: %s", request.display())

    start = time.monotonic()
    try:
        result = subprocess.run(argv, capture_output=True, text=True)
    except OSError as e:
        raise ElevationIOError(f"Failed to spawn '{request.display()}': {e}") from e
    elapsed_ms = int((time.monotonic() - start) * 1000)

    return CommandOutput(
        program=request.program,
        arguments=request.arguments,
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        duration_ms=elapsed_ms,
    )


def run_interactive(request: CommandRequest, binary: str = "sudo") -> CommandOutput:
    """Run a request attached to the invoking terminal."""
    argv = request.argv(binary)
    logger.debug("Executing interactively with sudo: %s", request.display())

    start = time.monotonic()
    try:
        result = subprocess.run(argv)
    except OSError as e:
        raise ElevationIOError(f"Failed to spawn '{request.display()}': {e}") from e
    elapsed_ms = int((time.monotonic() - start) * 1000)

    return CommandOutput(
        program=request.program,
        arguments=request.arguments,
        returncode=result.returncode,
        duration_ms=elapsed_ms,
        metadata={"interactive": True},
    )
