"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import io
import subprocess
import threading
import urllib.error
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import pytest

from chrootmanager.core.elevation import ElevationGateway, reset_shared_gateway
from chrootmanager.core.models.config import ChrootConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeSudo:
    """Stand-in for ``subprocess.run`` as called by the elevation runner.

    ``sudo -v`` / ``sudo -n -v`` answer from ``validate_rc`` / ``renew_rc``.
    Other commands answer from ``responses`` keyed by program name, or
    succeed with empty output.
    """

    validate_rc: int = 0
    validate_stderr: str = ""
    renew_rc: int = 0
    responses: dict[str, tuple[int, str, str]] = field(default_factory=dict)
    handler: Callable[[list[str]], tuple[int, str, str]] | None = None
    calls: list[list[str]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def __call__(self, cmd, *args, **kwargs) -> subprocess.CompletedProcess:
        cmd = list(cmd)
        with self._lock:
            self.calls.append(cmd)

        if cmd[1:] == ["-v"]:
            return subprocess.CompletedProcess(cmd, self.validate_rc, "", self.validate_stderr)
        if cmd[1:] == ["-n", "-v"]:
            return subprocess.CompletedProcess(cmd, self.renew_rc, "", "")

        program = cmd[2]
        if self.handler is not None:
            rc, out, err = self.handler(cmd)
        else:
            rc, out, err = self.responses.get(program, (0, "", ""))
        if kwargs.get("capture_output"):
            return subprocess.CompletedProcess(cmd, rc, out, err)
        return subprocess.CompletedProcess(cmd, rc)

    @property
    def prompts(self) -> int:
        return sum(1 for c in self.calls if c[1:] == ["-v"])

    @property
    def renewals(self) -> int:
        return sum(1 for c in self.calls if c[1:] == ["-n", "-v"])

    def programs(self) -> list[str]:
        """Programs run through ``sudo -n <program>``, in order."""
        return [c[2] for c in self.calls if len(c) > 2 and c[1] == "-n" and c[2] != "-v"]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sudo():
    """Patch sudo discovery and process spawning for the elevation runner."""
    sudo = FakeSudo()
    with patch("chrootmanager.core.elevation.runner.shutil.which",
               return_value="/usr/bin/sudo"), \
         patch("chrootmanager.core.elevation.runner.subprocess.run", side_effect=sudo):
        yield sudo


@pytest.fixture
def no_sudo():
    with patch("chrootmanager.core.elevation.runner.shutil.which", return_value=None):
        yield


@pytest.fixture
def gateway(fake_sudo, fake_clock):
    """Gateway on the fake clock; the keeper sleeps long enough to stay idle."""
    gw = ElevationGateway(keeper_interval=3600.0, clock=fake_clock)
    yield gw
    gw.invalidate()


@pytest.fixture(autouse=True)
def _reset_registry():
    yield
    reset_shared_gateway()


@pytest.fixture
def config(tmp_path: Path) -> ChrootConfig:
    """Config rooted in a temp directory."""
    return ChrootConfig(
        chroot_base_dir=tmp_path / "chroots",
        stage3_cache_dir=tmp_path / "cache",
    )


class FakeResponse(io.BytesIO):
    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self.headers = {"Content-Length": str(len(data))}


class FakeMirror(dict):
    """URL → body map served in place of urlopen; unknown URLs are 404.

    A value may also be a zero-argument callable returning a response.
    """

    def __init__(self) -> None:
        super().__init__()
        self.requested: list[str] = []

    def open(self, url: str):
        self.requested.append(url)
        if url not in self:
            raise urllib.error.HTTPError(url, 404, "Not Found", hdrs=None, fp=None)
        body = self[url]
        return body() if callable(body) else FakeResponse(body)


@pytest.fixture
def mirror(monkeypatch) -> FakeMirror:
    """Serve HTTP from a dict by patching ``stage3_download._open``."""
    from chrootmanager.core.services import stage3_download

    fake = FakeMirror()
    monkeypatch.setattr(stage3_download, "_open", fake.open)
    return fake
