"""
Chroot unit — one Gentoo tree on disk and the privileged operations on it.

Every operation that needs root goes through the injected
``ElevationGateway``.  When none is given, the process-wide gateway is
used so all call sites share one sudo session.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from chrootmanager.core.elevation import (
    AuthenticationRequired,
    ElevationError,
    ElevationGateway,
    get_shared_gateway,
)
from chrootmanager.core.elevation.models import CommandOutput
from chrootmanager.core.models.config import ChrootConfig
from chrootmanager.core.models.profile import SelectedProfile

logger = logging.getLogger(__name__)

PROFILE_INFO_FILE = "etc/arch-chroot-profile"
RESOLV_CONF = Path("/etc/resolv.conf")

# Unmounted in this order after the recursive lazy umount.
_MOUNT_POINTS = ("dev/shm", "dev/pts", "dev", "sys", "proc")


class ChrootError(Exception):
    """Raised when a chroot operation cannot be completed."""


class ChrootCommandError(ChrootError):
    """An elevated command ran but exited non-zero."""

    def __init__(self, description: str, output: CommandOutput) -> None:
        stderr = output.stderr.strip()
        super().__init__(f"{description} failed: {stderr or f'exit {output.returncode}'}")
        self.description = description
        self.output = output


class NoProfileError(ChrootError):
    """The chroot carries no profile information."""


@dataclass
class ChrootUnit:
    """A named chroot directory.

    Args:
        name: Directory name under the chroot base dir.
        chroot_path: Absolute path of the tree.
        profile: Stage3 profile it was built from, when known.
        gateway: Elevation gateway (defaults to the shared one).
    """

    name: str
    chroot_path: Path
    profile: SelectedProfile | None = None
    gateway: ElevationGateway | None = field(default=None, repr=False, compare=False)

    # ── Construction ────────────────────────────────────────────

    @classmethod
    def from_config(
        cls,
        name: str,
        config: ChrootConfig,
        profile: SelectedProfile | None = None,
        gateway: ElevationGateway | None = None,
    ) -> ChrootUnit:
        _validate_name(name)
        return cls(
            name=name,
            chroot_path=config.chroot_path(name),
            profile=profile,
            gateway=gateway,
        )

    @classmethod
    def load(cls, path: Path, gateway: ElevationGateway | None = None) -> ChrootUnit:
        """Load an existing chroot, reading its profile info if present."""
        unit = cls(name=path.name, chroot_path=path, gateway=gateway)
        try:
            unit.profile = SelectedProfile.parse(unit.read_profile_info())
        except (NoProfileError, ValueError, OSError) as e:
            logger.debug("Could not read profile info for chroot %s: %s", path.name, e)
        return unit

    @classmethod
    def find_units(
        cls, config: ChrootConfig, gateway: ElevationGateway | None = None
    ) -> list[ChrootUnit]:
        """All chroots under the configured base directory, sorted by name."""
        base = config.chroot_base_dir
        if not base.is_dir():
            return []
        try:
            dirs = sorted(p for p in base.iterdir() if p.is_dir())
        except OSError as e:
            raise ChrootError(f"Cannot read chroot directory {base}: {e}") from e
        return [cls.load(p, gateway=gateway) for p in dirs]

    # ── Gateway access ──────────────────────────────────────────

    @property
    def elevation(self) -> ElevationGateway:
        if self.gateway is None:
            self.gateway = get_shared_gateway()
        return self.gateway

    def pre_authenticate(self) -> None:
        """Authenticate once before a sequence of privileged operations."""
        try:
            self.elevation.authenticate()
        except ElevationError as e:
            raise ChrootError(f"Authentication failed: {e}") from e
        logger.info("Pre-authenticated for chroot operations on %s", self.name)

    def is_authenticated(self) -> bool:
        return self.elevation.is_authenticated()

    def invalidate_authentication(self) -> None:
        self.elevation.invalidate()
        logger.debug("Authentication cache invalidated for chroot %s", self.name)

    def execute_elevated(self, program: str, arguments: Iterable[Any]) -> CommandOutput:
        try:
            return self.elevation.execute(program, arguments)
        except ElevationError as e:
            raise ChrootError(f"{program} failed: {e}") from e

    def execute_logged(
        self, program: str, arguments: Iterable[Any], description: str
    ) -> CommandOutput:
        """Run an elevated command; non-zero exit raises ``ChrootCommandError``."""
        arguments = [str(a) for a in arguments]
        logger.debug("Executing %s with cached elevation: %s", program, arguments)

        output = self.execute_elevated(program, arguments)
        if not output.ok:
            logger.error("Error during %s: %s", description, output.stderr.strip())
            raise ChrootCommandError(description, output)

        logger.info("%s successful", description)
        if output.stdout.strip():
            logger.debug("Output: %s", output.stdout.strip())
        return output

    def _require_auth(self) -> None:
        if not self.is_authenticated():
            raise ChrootError(str(AuthenticationRequired()))

    # ── Tree lifecycle ──────────────────────────────────────────

    def exists(self) -> bool:
        return self.chroot_path.exists()

    def prepare_directory(self) -> None:
        logger.info("Creating the chroot directory: %s", self.chroot_path)
        if self.chroot_path.exists():
            logger.warning("The chroot directory already exists: %s", self.chroot_path)
            return
        self.chroot_path.mkdir(parents=True)

    def extract_stage3(self, archive: Path) -> None:
        """Unpack a stage3 tarball into the tree, preserving owners and xattrs."""
        logger.info("Extracting %s to %s", archive, self.chroot_path)
        self.execute_logged(
            "tar",
            [
                "xpf",
                archive,
                "--xattrs-include=*.*",
                "--numeric-owner",
                "-C",
                self.chroot_path,
            ],
            "Stage3 extraction",
        )

    def cleanup(self, remove_directory: bool = False) -> None:
        """Unmount everything and optionally delete the tree."""
        logger.info("Cleaning chroot %s", self.name)
        self.unmount_filesystems()

        if remove_directory and self.chroot_path.exists():
            self.execute_logged("rm", ["-rf", "--one-file-system", self.chroot_path],
                                "Chroot removal")
            logger.info("Deleted chroot directory: %s", self.chroot_path)

    # ── Mounts ──────────────────────────────────────────────────

    def mount_commands(self) -> list[tuple[str, list[str]]]:
        root = self.chroot_path
        proc, sys_, dev = root / "proc", root / "sys", root / "dev"
        return [
            ("mount", ["-t", "proc", "/proc", str(proc)]),
            ("mount", ["--rbind", "/sys", str(sys_)]),
            ("mount", ["--rbind", "/dev", str(dev)]),
            ("mount", ["--rbind", "/dev/pts", str(root / "dev/pts")]),
            ("mount", ["--rbind", "/dev/shm", str(root / "dev/shm")]),
            ("mount", ["--make-slave", str(sys_)]),
            ("mount", ["--make-slave", str(dev)]),
        ]

    def mount_filesystems(self) -> None:
        """Bind /proc, /sys and /dev into the tree as one batch."""
        self._require_auth()
        logger.info("Mounting filesystems for chroot: %s", self.name)

        try:
            results = self.elevation.execute_batch(self.mount_commands())
        except ElevationError as e:
            raise ChrootError(f"Mount operation failed: {e}") from e

        for i, result in enumerate(results):
            if not result.ok:
                logger.error("Mount command %d failed: %s", i, result.stderr.strip())
                raise ChrootCommandError("Mount operation", result)

        logger.info("Mounted all filesystems for chroot: %s", self.name)

    def unmount_filesystems(self) -> None:
        """Lazy, recursive unmount.  Failures are logged, never raised."""
        self._require_auth()
        logger.info("Cleaning up mount points for chroot: %s", self.name)

        try:
            output = self.elevation.execute("umount", ["-l", "-R", str(self.chroot_path)])
        except ElevationError as e:
            logger.warning("Unmount command failed: %s", e)
        else:
            if output.ok:
                logger.info("Unmounted all filesystems")
            elif "not mounted" in output.stderr:
                logger.debug("No filesystems were mounted")
            else:
                logger.warning("Unmount warning: %s", output.stderr.strip())

        for mount_point in _MOUNT_POINTS:
            full_path = self.chroot_path / mount_point
            if not full_path.exists():
                continue
            try:
                self.elevation.execute("umount", ["-l", str(full_path)])
            except ElevationError as e:
                logger.debug("umount %s: %s", full_path, e)

        logger.info("Mount point cleanup completed")

    # ── Files inside the tree ───────────────────────────────────

    def copy_dns_info(self) -> None:
        """Copy the host resolv.conf so the chroot can resolve names."""
        if not RESOLV_CONF.exists():
            logger.debug("%s not found, skipping DNS copy", RESOLV_CONF)
            return
        destination = self.chroot_path / "etc" / "resolv.conf"
        self.execute_logged(
            "cp", ["--dereference", str(RESOLV_CONF), str(destination)], "DNS info copy"
        )

    def write_profile_info(self) -> None:
        """Record ``<arch>-<profile>`` in the root-owned tree."""
        if self.profile is None:
            raise NoProfileError(f"Chroot '{self.name}' has no profile")

        destination = self.chroot_path / PROFILE_INFO_FILE
        fd, temp_name = tempfile.mkstemp(prefix="arch-chroot-profile-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(str(self.profile))
            self.execute_logged("mv", [temp_name, str(destination)], "Profile info write")
        finally:
            if os.path.exists(temp_name):
                os.unlink(temp_name)

        logger.debug("Profile info written to %s", destination)

    def read_profile_info(self) -> str:
        path = self.chroot_path / PROFILE_INFO_FILE
        if not path.is_file():
            raise NoProfileError(f"Profile file doesn't exist: {path}")
        return path.read_text(encoding="utf-8").strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.chroot_path),
            "profile": str(self.profile) if self.profile else None,
        }


def _validate_name(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or name.startswith("-"):
        raise ChrootError(f"Invalid chroot name: {name!r}")
