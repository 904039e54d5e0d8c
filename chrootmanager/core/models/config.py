"""
Configuration model — where chroots live, where stage3 archives are
cached, which mirrors to use, and how sudo sessions are handled.

Loaded from ``~/.config/chrootmanager/config.yml``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_MIRROR = "https://distfiles.gentoo.org"


def _home() -> Path:
    try:
        return Path.home()
    except RuntimeError:
        return Path("/tmp")


def default_chroot_base_dir() -> Path:
    return _home() / ".local" / "share" / "chrootmanager" / "chroots"


def default_stage3_cache_dir() -> Path:
    return _home() / ".cache" / "chrootmanager" / "stage3"


class ElevationSettings(BaseModel):
    """sudo session handling."""

    cache_minutes: int = Field(default=45, ge=1)
    keeper_interval_seconds: float = Field(default=60.0, gt=0)
    sudo_binary: str = "sudo"
    lock_timeout_seconds: float | None = None


class ChrootConfig(BaseModel):
    """Root configuration object."""

    chroot_base_dir: Path = Field(default_factory=default_chroot_base_dir)
    stage3_cache_dir: Path = Field(default_factory=default_stage3_cache_dir)
    mirrors_url: list[str] = Field(default_factory=list)
    elevation: ElevationSettings = Field(default_factory=ElevationSettings)

    @field_validator("chroot_base_dir", "stage3_cache_dir", mode="before")
    @classmethod
    def _expand_user(cls, value: object) -> object:
        if isinstance(value, str):
            return Path(value).expanduser()
        if isinstance(value, Path):
            return value.expanduser()
        return value

    def has_mirrors(self) -> bool:
        return bool(self.mirrors_url)

    def cache_path(self, filename: str) -> Path:
        """Where a downloaded stage3 file lives in the cache."""
        return self.stage3_cache_dir / filename

    def chroot_path(self, name: str) -> Path:
        return self.chroot_base_dir / name

    def to_yaml_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["chroot_base_dir"] = str(self.chroot_base_dir)
        data["stage3_cache_dir"] = str(self.stage3_cache_dir)
        return data
