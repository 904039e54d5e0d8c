"""
Tests for the create use case.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from chrootmanager.core.models.profile import SelectedProfile
from chrootmanager.core.services import chroot_ops
from chrootmanager.core.services.stage3_download import DownloadError, DownloadResult
from chrootmanager.core.use_cases import create
from chrootmanager.core.use_cases.create import create_chroot

OPENRC = SelectedProfile(architecture="amd64", profile="openrc")


def _sudo_side_effects(cmd: list[str]) -> tuple[int, str, str]:
    if cmd[2] == "mv":
        shutil.move(cmd[3], cmd[4])
    return 0, "", ""


@pytest.fixture
def stage3(tmp_path: Path) -> Path:
    path = tmp_path / "stage3-amd64-openrc-20240801T170406Z.tar.xz"
    path.write_bytes(b"archive")
    return path


@pytest.fixture(autouse=True)
def _no_host_resolv_conf(tmp_path, monkeypatch):
    monkeypatch.setattr(chroot_ops, "RESOLV_CONF", tmp_path / "no-resolv.conf")


class TestCreateChroot:
    def test_local_archive(self, config, gateway, fake_sudo, stage3):
        fake_sudo.handler = _sudo_side_effects
        # tar is faked, so the tree needs an etc/ for the profile file
        (config.chroot_base_dir / "dev" / "etc").mkdir(parents=True)

        result = create_chroot("dev", OPENRC, config, gateway=gateway, stage3=stage3,
                               replace=True)

        assert result.ok, result.error
        assert result.archive == stage3
        assert result.replaced is True
        assert result.steps == [
            "archive:local", "removed", "directory", "extracted", "dns", "profile",
        ]
        assert (result.path / "etc/arch-chroot-profile").read_text() == "amd64-openrc"
        assert fake_sudo.prompts == 1

    def test_fresh_tree(self, config, gateway, fake_sudo, stage3):
        result = create_chroot("dev", OPENRC, config, gateway=gateway, stage3=stage3)

        assert result.ok, result.error
        assert result.replaced is False
        assert result.path.is_dir()
        assert fake_sudo.programs() == ["tar", "mv"]

    def test_unsupported_profile(self, config, gateway, fake_sudo):
        profile = SelectedProfile(architecture="amd64", profile="bogus")

        result = create_chroot("dev", profile, config, gateway=gateway)

        assert not result.ok
        assert "not supported" in result.error
        assert fake_sudo.calls == []

    def test_invalid_name(self, config, gateway):
        result = create_chroot("../x", OPENRC, config, gateway=gateway)
        assert "Invalid chroot name" in result.error

    def test_existing_without_replace(self, config, gateway, fake_sudo, stage3):
        (config.chroot_base_dir / "dev").mkdir(parents=True)

        result = create_chroot("dev", OPENRC, config, gateway=gateway, stage3=stage3)

        assert "already exists" in result.error
        assert fake_sudo.calls == []

    def test_missing_local_archive(self, config, gateway, tmp_path):
        result = create_chroot("dev", OPENRC, config, gateway=gateway,
                               stage3=tmp_path / "missing.tar.xz")
        assert "not found" in result.error

    def test_authentication_failure(self, config, gateway, fake_sudo, stage3):
        fake_sudo.validate_rc = 1

        result = create_chroot("dev", OPENRC, config, gateway=gateway, stage3=stage3)

        assert "Authentication failed" in result.error
        assert fake_sudo.programs() == []

    def test_extraction_failure(self, config, gateway, fake_sudo, stage3):
        fake_sudo.responses["tar"] = (2, "", "xz: File format not recognized")

        result = create_chroot("dev", OPENRC, config, gateway=gateway, stage3=stage3)

        assert "Stage3 extraction failed" in result.error
        assert result.steps == ["archive:local", "directory"]

    def test_downloaded_archive(self, config, gateway, fake_sudo, stage3, monkeypatch):
        calls = []

        def fake_download(profile, cfg, progress=None):
            calls.append(profile)
            return DownloadResult(stage3, "https://m.example/x", 7, 1.0, verified=True)

        monkeypatch.setattr(create, "download_stage3_with_cache", fake_download)

        result = create_chroot("dev", OPENRC, config, gateway=gateway)

        assert result.ok, result.error
        assert calls == [OPENRC]
        assert result.archive_verified is True
        assert result.steps[0] == "archive:download"

    def test_download_failure(self, config, gateway, fake_sudo, monkeypatch):
        def fake_download(profile, cfg, progress=None):
            raise DownloadError("All mirrors failed. Last error: HTTP Status 404")

        monkeypatch.setattr(create, "download_stage3_with_cache", fake_download)

        result = create_chroot("dev", OPENRC, config, gateway=gateway)

        assert "All mirrors failed" in result.error
        assert fake_sudo.calls == []

    def test_to_dict(self, config, gateway):
        result = create_chroot("../x", OPENRC, config, gateway=gateway)
        data = result.to_dict()
        assert data["ok"] is False
        assert data["profile"] == "amd64-openrc"
        assert data["path"] is None
