"""
Tests for reading the stage3 profile catalog off mirror directory indexes.
"""

from __future__ import annotations

import pytest

from chrootmanager.core.models.profile import PROFILES
from chrootmanager.core.services.profile_discovery import (
    discover_from_mirror,
    discover_profiles,
    parse_architecture_directories,
    parse_autobuilds_directories,
)
from chrootmanager.core.services.stage3_download import DownloadError

MIRROR = "https://mirror.example.org/gentoo"
RELEASES = f"{MIRROR}/releases/"

RELEASES_INDEX = """\
<html><body><h1>Index of /gentoo/releases/</h1><pre>
<a href="../">../</a>
<a href="amd64/">amd64/</a>                 01-Aug-2024 17:04    -
<a href="arm64/">arm64/</a>                 01-Aug-2024 17:04    -
<a href="snapshots/">snapshots/</a>         01-Aug-2024 17:04    -
<a href="verify-digests.sh">verify-digests.sh</a>
<a href="amd64/">amd64/</a>
</pre></body></html>
"""

AMD64_AUTOBUILDS = """\
<a href="20240801T170406Z/">20240801T170406Z/</a>
<a href="current-stage3-amd64-openrc/">current-stage3-amd64-openrc/</a>
<a href="current-stage3-amd64-systemd/">current-stage3-amd64-systemd/</a>
<a href="current-stage3-amd64-openrc-splitusr/">current-stage3-amd64-openrc-splitusr/</a>
<a href="current-install-amd64-minimal/">current-install-amd64-minimal/</a>
<a href="latest-stage3-amd64-openrc.txt">latest-stage3-amd64-openrc.txt</a>
"""


def _publish(files: dict, base: str = MIRROR) -> None:
    files[f"{base}/releases/"] = RELEASES_INDEX.encode()
    files[f"{base}/releases/amd64/autobuilds/"] = AMD64_AUTOBUILDS.encode()
    files[f"{base}/releases/arm64/autobuilds/"] = b"<pre>nothing yet</pre>"


class TestParseIndexes:
    def test_architectures(self):
        assert parse_architecture_directories(RELEASES_INDEX) == ["amd64", "arm64"]

    def test_architectures_need_trailing_slash(self):
        assert parse_architecture_directories('<a href="amd64">amd64</a>') == []

    def test_absolute_hrefs(self):
        html = '<a href="/gentoo/releases/x86/">x86/</a>'
        assert parse_architecture_directories(html) == ["x86"]

    def test_autobuilds_profiles(self):
        assert parse_autobuilds_directories(AMD64_AUTOBUILDS, "amd64") == [
            "openrc", "openrc-splitusr", "systemd",
        ]

    def test_autobuilds_other_arch_ignored(self):
        html = '<a href="current-stage3-arm64-openrc/">x</a>'
        assert parse_autobuilds_directories(html, "arm") == ["openrc"]
        assert parse_autobuilds_directories(html, "arm64") == ["openrc"]

    def test_autobuilds_empty_defaults_to_openrc(self):
        assert parse_autobuilds_directories("", "riscv") == ["openrc"]


class TestDiscoverFromMirror:
    def test_walks_release_tree(self, mirror):
        _publish(mirror)

        catalog = discover_from_mirror(MIRROR + "/")

        assert catalog == {
            "amd64": ["openrc", "openrc-splitusr", "systemd"],
            "arm64": ["openrc"],
        }
        assert mirror.requested[0] == RELEASES

    def test_unreachable_arch_is_skipped(self, mirror):
        _publish(mirror)
        del mirror[f"{MIRROR}/releases/arm64/autobuilds/"]

        assert list(discover_from_mirror(MIRROR)) == ["amd64"]

    def test_no_architectures(self, mirror):
        mirror[RELEASES] = b"<pre>empty</pre>"
        with pytest.raises(DownloadError, match="No valid architecture"):
            discover_from_mirror(MIRROR)


class TestDiscoverProfiles:
    def test_no_mirrors_uses_builtin_catalog(self, config, mirror):
        found = discover_profiles(config)

        assert found.from_fallback
        assert found.profiles["amd64"] == sorted(PROFILES["amd64"])
        assert mirror.requested == []

    def test_first_answering_mirror_wins(self, config, mirror):
        _publish(mirror, "https://b.example")
        config.mirrors_url = ["https://a.example", "https://b.example", "https://c.example"]

        found = discover_profiles(config)

        assert found.mirror == "https://b.example"
        assert found.profiles["arm64"] == ["openrc"]
        assert not any(url.startswith("https://c.example") for url in mirror.requested)

    def test_all_mirrors_fail(self, config, mirror):
        config.mirrors_url = ["https://a.example"]

        found = discover_profiles(config)

        assert found.from_fallback
        assert set(found.profiles) == set(PROFILES)
