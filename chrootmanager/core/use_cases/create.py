"""
Create use case — build a new chroot from a stage3 archive.

Steps: validate profile → handle an existing tree → obtain the archive
(local file or verified download) → authenticate once → create the
directory → extract → copy DNS → record the profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from chrootmanager.core.config.loader import ensure_directories
from chrootmanager.core.elevation import ElevationGateway
from chrootmanager.core.models.config import ChrootConfig
from chrootmanager.core.models.profile import SelectedProfile, profiles_for
from chrootmanager.core.services.chroot_ops import ChrootError, ChrootUnit
from chrootmanager.core.services.stage3_download import (
    DownloadError,
    ProgressCallback,
    download_stage3_with_cache,
)

logger = logging.getLogger(__name__)


@dataclass
class CreateResult:
    """Outcome of a create run."""

    name: str
    path: Path | None = None
    profile: str = ""
    archive: Path | None = None
    archive_verified: bool = False
    replaced: bool = False
    error: str | None = None
    steps: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "name": self.name,
            "path": str(self.path) if self.path else None,
            "profile": self.profile,
            "archive": str(self.archive) if self.archive else None,
            "archive_verified": self.archive_verified,
            "replaced": self.replaced,
            "steps": self.steps,
            "error": self.error,
        }


def create_chroot(
    name: str,
    profile: SelectedProfile,
    config: ChrootConfig,
    gateway: ElevationGateway | None = None,
    stage3: Path | None = None,
    progress: ProgressCallback | None = None,
    replace: bool = False,
) -> CreateResult:
    """Create chroot ``name`` from ``profile``.

    Args:
        stage3: Use this local archive instead of downloading.
        progress: Download progress callback.
        replace: Delete an existing chroot of the same name first.

    Returns:
        CreateResult; ``error`` is set on failure, nothing is raised.
    """
    result = CreateResult(name=name, profile=str(profile))

    if not profile.is_supported():
        choices = ", ".join(profiles_for(profile.architecture)) or "none"
        result.error = (
            f"Profile '{profile}' is not supported "
            f"(available for {profile.architecture}: {choices})"
        )
        return result

    try:
        unit = ChrootUnit.from_config(name, config, profile=profile, gateway=gateway)
    except ChrootError as e:
        result.error = str(e)
        return result
    result.path = unit.chroot_path

    if unit.exists() and not replace:
        result.error = (
            f"The chroot '{name}' already exists. Use another name or delete it first."
        )
        return result

    ensure_directories(config)

    # ── Archive ──
    if stage3 is not None:
        if not stage3.is_file():
            result.error = f"Stage3 archive not found: {stage3}"
            return result
        result.archive = stage3
        result.steps.append("archive:local")
    else:
        try:
            download = download_stage3_with_cache(profile, config, progress)
        except DownloadError as e:
            result.error = str(e)
            return result
        result.archive = download.path
        result.archive_verified = download.verified
        result.steps.append("archive:cache" if download.from_cache else "archive:download")

    # ── Privileged part ──
    try:
        unit.pre_authenticate()

        if unit.exists():
            logger.info("Removing existing chroot %s", name)
            unit.cleanup(remove_directory=True)
            result.replaced = True
            result.steps.append("removed")

        unit.prepare_directory()
        result.steps.append("directory")
        unit.extract_stage3(result.archive)
        result.steps.append("extracted")
        unit.copy_dns_info()
        result.steps.append("dns")
        unit.write_profile_info()
        result.steps.append("profile")
    except ChrootError as e:
        logger.error("Creating chroot %s failed: %s", name, e)
        result.error = str(e)
        return result

    logger.info("Chroot '%s' created at %s", name, unit.chroot_path)
    return result
