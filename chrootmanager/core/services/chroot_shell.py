"""
Interactive chroot shell.

Writes a throwaway rcfile into the tree, then runs
``chroot <root> /bin/bash --rcfile /tmp/chroot_bashrc -i`` through the
gateway with the terminal attached.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from chrootmanager.core.elevation import ElevationError
from chrootmanager.core.services.chroot_ops import ChrootError, ChrootUnit

logger = logging.getLogger(__name__)

BASHRC_RELATIVE = "tmp/chroot_bashrc"

_BASHRC_TEMPLATE = r"""#!/bin/bash
export ENV="/tmp/chroot_env.sh"
cat > /tmp/chroot_env.sh << 'EOF'
source /etc/profile 2>/dev/null || true
export TERM=xterm-256color
eval "$(dircolors -b 2>/dev/null || true)"
alias ls='ls --color=auto'
alias ll='ls -l --color=auto'
alias la='ls -la --color=auto'
alias grep='grep --color=auto'
export PS1='\[\e[1;32m\](chroot) \[\e[01;31m\]{name}\[\e[01;34m\] \w \$\[\e[00m\] '
EOF
exec bash --posix -i
"""


def render_bashrc(name: str) -> str:
    return _BASHRC_TEMPLATE.replace("{name}", name)


def prepare_bashrc(unit: ChrootUnit) -> Path:
    """Write the rcfile into ``<root>/tmp`` and return its host path."""
    tmp_dir = unit.chroot_path / "tmp"
    bashrc = unit.chroot_path / BASHRC_RELATIVE
    try:
        tmp_dir.mkdir(parents=True, exist_ok=True)
        bashrc.write_text(render_bashrc(unit.name), encoding="utf-8")
    except OSError as e:
        raise ChrootError(f"Cannot write {bashrc}: {e}") from e
    return bashrc


def cleanup_bashrc(bashrc: Path) -> None:
    try:
        bashrc.unlink()
    except OSError as e:
        logger.debug("Failed to clean up bashrc %s: %s", bashrc, e)
    else:
        logger.debug("Cleaned up bashrc %s", bashrc)


def chroot_command_args(unit: ChrootUnit, bashrc: Path) -> list[str]:
    """Arguments for ``chroot`` with the rcfile path as seen from inside."""
    try:
        inside = "/" + str(bashrc.relative_to(unit.chroot_path))
    except ValueError:
        inside = "/" + BASHRC_RELATIVE
    return [str(unit.chroot_path), "/bin/bash", "--rcfile", inside, "-i"]


def terminal_command(unit: ChrootUnit, sudo_binary: str = "sudo") -> tuple[str, Path]:
    """Command line for launching the chroot from an external terminal.

    The rcfile is written and left in place; the mounts must already be up
    and stay up until the operator runs ``unmount``.
    """
    bashrc = prepare_bashrc(unit)
    args = chroot_command_args(unit, bashrc)
    return shlex.join([sudo_binary, "chroot", *args]), bashrc


def enter_interactive(unit: ChrootUnit) -> int:
    """Drop the operator into a shell inside the chroot.

    Requires an authenticated gateway; the caller mounts filesystems
    first.  Returns the shell's exit status.
    """
    if not unit.is_authenticated():
        raise ChrootError("Authentication required: call authenticate() first")

    logger.info("Entering chroot environment: %s", unit.name)
    bashrc = prepare_bashrc(unit)
    try:
        output = unit.elevation.execute_interactive(
            "chroot", chroot_command_args(unit, bashrc)
        )
    except ElevationError as e:
        raise ChrootError(f"Failed to enter chroot: {e}") from e
    finally:
        cleanup_bashrc(bashrc)

    logger.info("Exited chroot environment %s (status %d)", unit.name, output.returncode)
    return output.returncode
