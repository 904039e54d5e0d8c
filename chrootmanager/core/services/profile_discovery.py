"""
Profile discovery — read the stage3 catalog off a mirror's directory index.

``<mirror>/releases/`` lists one directory per architecture and
``releases/<arch>/autobuilds/`` one ``current-stage3-<arch>-<profile>/``
directory per published profile.  Mirrors are tried in configured order;
when none answers, the built-in ``PROFILES`` catalog is used.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from chrootmanager.core.models.config import ChrootConfig
from chrootmanager.core.models.profile import DEFAULT_PROFILE, PROFILES
from chrootmanager.core.services.stage3_download import DownloadError, fetch_text

logger = logging.getLogger(__name__)

KNOWN_ARCHITECTURES = frozenset({
    "alpha", "amd64", "arm", "arm64", "hppa", "ia64", "mips",
    "ppc", "ppc64", "riscv", "s390", "sparc", "x86",
})

_HREF = re.compile(r"""href\s*=\s*["']?([^"'\s>]+)""", re.IGNORECASE)

Fetcher = Callable[[Iterable[str]], str]


@dataclass
class DiscoveredProfiles:
    """Architecture → sorted profile names, and where they came from."""

    profiles: dict[str, list[str]] = field(default_factory=dict)
    mirror: str | None = None

    @property
    def from_fallback(self) -> bool:
        return self.mirror is None


def parse_architecture_directories(html: str) -> list[str]:
    """Known architecture names linked as directories, sorted."""
    found = set()
    for href in _HREF.findall(html):
        if not href.endswith("/"):
            continue
        name = href.rstrip("/").rsplit("/", 1)[-1]
        if name in KNOWN_ARCHITECTURES:
            found.add(name)
    return sorted(found)


def parse_autobuilds_directories(html: str, arch: str) -> list[str]:
    """Profiles from ``current-stage3-<arch>-<profile>`` links, sorted.

    An index with no such link yields ``[DEFAULT_PROFILE]``.
    """
    pattern = re.compile(r"current-stage3-" + re.escape(arch) + r"-([^/\"'\s<>]+)")
    profiles = sorted({
        match.group(1)
        for href in _HREF.findall(html)
        for match in [pattern.search(href)]
        if match
    })
    if not profiles:
        logger.debug("No current-stage3 directories for %s, assuming %s", arch, DEFAULT_PROFILE)
        return [DEFAULT_PROFILE]
    return profiles


def discover_from_mirror(mirror_url: str, fetch: Fetcher = fetch_text) -> dict[str, list[str]]:
    """Walk one mirror's release tree.

    Raises:
        DownloadError: the releases index is unreachable or lists no
            architecture with published profiles.
    """
    releases_url = mirror_url.rstrip("/") + "/releases/"
    logger.debug("Fetching releases from: %s", releases_url)
    arches = parse_architecture_directories(fetch([releases_url]))

    catalog: dict[str, list[str]] = {}
    for arch in arches:
        try:
            html = fetch([f"{releases_url}{arch}/autobuilds/"])
        except DownloadError as e:
            logger.warning("Failed to discover profiles for %s: %s", arch, e)
            continue
        catalog[arch] = parse_autobuilds_directories(html, arch)
        logger.debug("Found %d profiles for %s", len(catalog[arch]), arch)

    if not catalog:
        raise DownloadError(f"No valid architecture found on {mirror_url}")
    return catalog


def fallback_profiles() -> DiscoveredProfiles:
    return DiscoveredProfiles({arch: sorted(names) for arch, names in PROFILES.items()})


def discover_profiles(config: ChrootConfig, fetch: Fetcher = fetch_text) -> DiscoveredProfiles:
    """Profiles published by the first configured mirror that answers."""
    if not config.has_mirrors():
        logger.info("No mirrors configured, using the built-in profile catalog")
        return fallback_profiles()

    for mirror_url in config.mirrors_url:
        try:
            catalog = discover_from_mirror(mirror_url, fetch)
        except DownloadError as e:
            logger.warning("Profile discovery failed on %s: %s", mirror_url, e)
            continue
        logger.info("Discovered %d architectures on %s", len(catalog), mirror_url)
        return DiscoveredProfiles(catalog, mirror_url)

    logger.warning("Could not discover profiles from any configured mirror, using fallback")
    return fallback_profiles()
