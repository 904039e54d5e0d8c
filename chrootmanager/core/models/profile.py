"""
Stage3 profiles — architecture + flavour, e.g. ``amd64-openrc``.

The catalog mirrors the stage3 autobuilds published by Gentoo for the
two architectures we support.
"""

from __future__ import annotations

from pydantic import BaseModel

DEFAULT_ARCH = "amd64"
DEFAULT_PROFILE = "openrc"

PROFILES: dict[str, tuple[str, ...]] = {
    "amd64": (
        "desktop-openrc",
        "desktop-systemd",
        "hardened-selinux-openrc",
        "hardened-openrc",
        "hardened-systemd",
        "llvm-openrc",
        "llvm-systemd",
        "musl-hardened",
        "musl-llvm",
        "musl",
        "no-multilib-openrc",
        "no-multilib-systemd",
        "openrc-splitusr",
        "openrc",
        "systemd",
        "x32-openrc",
        "x32-systemd",
    ),
    "arm64": (
        "aarch64be-openrc",
        "aarch64be-systemd",
        "desktop-openrc",
        "desktop-systemd",
        "llvm-openrc",
        "llvm-systemd",
        "musl-hardened",
        "musl-llvm",
        "musl",
        "openrc-splitusr",
        "openrc",
        "systemd",
    ),
}


def architectures() -> list[str]:
    return sorted(PROFILES)


def profiles_for(arch: str) -> list[str]:
    return sorted(PROFILES.get(arch, ()))


def is_supported(arch: str, profile: str) -> bool:
    return profile in PROFILES.get(arch, ())


class SelectedProfile(BaseModel):
    """A chosen architecture/profile pair."""

    architecture: str = DEFAULT_ARCH
    profile: str = DEFAULT_PROFILE

    @classmethod
    def parse(cls, text: str) -> SelectedProfile:
        """Parse ``<arch>-<profile>``, splitting at the first dash."""
        arch, sep, profile = text.strip().partition("-")
        if not sep or not arch or not profile:
            raise ValueError(f"Invalid profile string: {text!r}")
        return cls(architecture=arch, profile=profile)

    @property
    def stage3_pattern(self) -> str:
        return f"stage3-{self.architecture}-{self.profile}"

    def is_supported(self) -> bool:
        return is_supported(self.architecture, self.profile)

    def __str__(self) -> str:
        return f"{self.architecture}-{self.profile}"
