"""
Stage3 download — locate, fetch and verify Gentoo stage3 archives.

Layout on a mirror::

    <mirror>/releases/<arch>/autobuilds/current-stage3-<arch>-<profile>/
        latest-stage3-<arch>-<profile>.txt
        stage3-<arch>-<profile>-<timestamp>.tar.xz
        stage3-<arch>-<profile>-<timestamp>.tar.xz.sha256

Mirrors are tried in configured order; the first that answers wins.
Archives are cached and reused only while their SHA-256 still verifies.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import re
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from chrootmanager import __version__
from chrootmanager.core.models.config import DEFAULT_MIRROR, ChrootConfig
from chrootmanager.core.models.profile import SelectedProfile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
PARTIAL_SUFFIX = ".part"
PROGRESS_INTERVAL_S = 0.25
HTTP_TIMEOUT_S = 30
USER_AGENT = f"chrootmanager/{__version__}"


class DownloadError(Exception):
    """Raised when no mirror can deliver a file, or verification fails."""


@dataclass
class DownloadProgress:
    """Progress snapshot handed to the progress callback."""

    filename: str
    downloaded: int = 0
    total: int = 0
    speed_bytes_per_sec: float = 0.0

    @property
    def ratio(self) -> float | None:
        if self.total <= 0:
            return None
        return min(1.0, self.downloaded / self.total)


@dataclass
class DownloadResult:
    path: Path
    url: str
    total_bytes: int
    average_speed_bytes_per_sec: float
    verified: bool = False
    from_cache: bool = False


ProgressCallback = Callable[[DownloadProgress], None]


# ── URL building ────────────────────────────────────────────────────


def build_stage3_base_url(mirror_url: str, profile: SelectedProfile) -> str:
    base = mirror_url if mirror_url.endswith("/") else mirror_url + "/"
    return (
        f"{base}releases/{profile.architecture}/autobuilds/"
        f"current-{profile.stage3_pattern}/"
    )


def candidate_base_urls(profile: SelectedProfile, config: ChrootConfig) -> list[str]:
    """Per-mirror base URLs, falling back to the main Gentoo mirror."""
    if config.has_mirrors():
        return [build_stage3_base_url(m, profile) for m in config.mirrors_url]
    logger.warning("No mirrors configured, using default mirror")
    return [build_stage3_base_url(DEFAULT_MIRROR, profile)]


# ── Listing parsers ─────────────────────────────────────────────────


def parse_latest_listing(text: str, profile: SelectedProfile) -> str:
    """Extract the archive filename from a ``latest-stage3-*.txt`` file.

    Lines look like ``<filename> <size>`` (current) or
    ``<timestamp> <filename> <size>`` (older); comments and PGP armour
    are skipped.
    """
    regex = re.compile(re.escape(profile.stage3_pattern) + r"-\d[^\s/]*\.tar\.xz")
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", "-----", "Hash:")):
            continue
        match = regex.search(line)
        if match:
            return match.group(0)

    raise DownloadError(f"No stage3 file found for profile {profile}")


def parse_sha256_listing(text: str, filename: str) -> str:
    """Find the SHA-256 hash for ``filename`` in a ``*.sha256`` file.

    Accepts plain ``<hash>  <file>`` lines and BSD-style
    ``SHA256 (<file>) = <hash>`` lines.
    """
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.upper().startswith("SHA256 (") and ") = " in line:
            name, _, digest = line[len("SHA256 ("):].partition(") = ")
            if name == filename or name.endswith("/" + filename):
                return digest.strip().lower()
            continue

        parts = line.split()
        if len(parts) >= 2 and len(parts[0]) == 64:
            name = parts[1].lstrip("*")
            if name == filename or name.endswith("/" + filename):
                return parts[0].lower()

    raise DownloadError(f"SHA256 hash for {filename} isn't found")


# ── HTTP ────────────────────────────────────────────────────────────


def _open(url: str):
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    return urllib.request.urlopen(req, timeout=HTTP_TIMEOUT_S)


def _first_responding(urls: Iterable[str]):
    """Open the first URL that answers.  Returns ``(url, response)``."""
    last_error = "No mirrors to try"
    for index, url in enumerate(urls, start=1):
        logger.debug("Attempting mirror %d: %s", index, url)
        try:
            return url, _open(url)
        except urllib.error.HTTPError as e:
            logger.debug("Mirror %d failed - Status: %s", index, e.code)
            last_error = f"HTTP Status {e.code}"
        except (urllib.error.URLError, OSError) as e:
            logger.debug("Error with mirror %d: %s", index, e)
            last_error = f"Network error: {e}"
    raise DownloadError(f"All mirrors failed. Last error: {last_error}")


def fetch_bytes(urls: Iterable[str]) -> bytes:
    url, resp = _first_responding(urls)
    try:
        with resp:
            data = resp.read()
    except (OSError, http.client.HTTPException) as e:
        raise DownloadError(f"Reading {url} failed: {e}") from e
    logger.debug("Fetched %s (%d bytes)", url, len(data))
    return data


def fetch_text(urls: Iterable[str]) -> str:
    return fetch_bytes(urls).decode("utf-8", errors="replace")


def download_file(
    urls: Iterable[str],
    destination: Path,
    progress: ProgressCallback | None = None,
) -> DownloadResult:
    """Stream the first responding URL into ``destination``.

    Bytes land in ``<destination>.part`` and are renamed into place only
    once the body is complete, so an interrupted transfer never leaves a
    truncated file under the final name.
    """
    url, resp = _first_responding(urls)
    filename = destination.name
    partial = destination.with_name(filename + PARTIAL_SUFFIX)

    try:
        with resp:
            total = int(resp.headers.get("Content-Length") or 0)
            snapshot = DownloadProgress(filename=filename, total=total)
            if progress:
                progress(snapshot)

            start = last_update = time.monotonic()
            last_downloaded = 0
            downloaded = 0

            try:
                with open(partial, "wb") as fh:
                    while True:
                        chunk = resp.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        fh.write(chunk)
                        downloaded += len(chunk)

                        now = time.monotonic()
                        if progress and now - last_update >= PROGRESS_INTERVAL_S:
                            snapshot.downloaded = downloaded
                            snapshot.speed_bytes_per_sec = (downloaded - last_downloaded) / (
                                now - last_update
                            )
                            progress(snapshot)
                            last_update, last_downloaded = now, downloaded
            except (OSError, http.client.HTTPException) as e:
                raise DownloadError(f"Download of {filename} failed: {e}") from e

        if total > 0 and downloaded != total:
            raise DownloadError(
                f"Download of {filename} incomplete: got {downloaded} of {total} bytes"
            )
        partial.replace(destination)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise

    elapsed = max(time.monotonic() - start, 1e-6)
    average = downloaded / elapsed
    if progress:
        snapshot.downloaded = downloaded
        snapshot.speed_bytes_per_sec = average
        progress(snapshot)

    return DownloadResult(
        path=destination,
        url=url,
        total_bytes=downloaded,
        average_speed_bytes_per_sec=average,
    )


# ── Integrity ───────────────────────────────────────────────────────


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def verify_sha256(path: Path, expected: str) -> tuple[bool, str]:
    """Returns ``(is_valid, calculated_hash)``."""
    calculated = file_sha256(path)
    return calculated.lower() == expected.strip().lower(), calculated


# ── High level ──────────────────────────────────────────────────────


def current_stage3_filename(profile: SelectedProfile, config: ChrootConfig) -> str:
    urls = [
        f"{base}latest-{profile.stage3_pattern}.txt"
        for base in candidate_base_urls(profile, config)
    ]
    return parse_latest_listing(fetch_text(urls), profile)


def expected_sha256(profile: SelectedProfile, config: ChrootConfig, filename: str) -> str:
    urls = [f"{base}{filename}.sha256" for base in candidate_base_urls(profile, config)]
    return parse_sha256_listing(fetch_text(urls), filename)


def download_stage3_with_cache(
    profile: SelectedProfile,
    config: ChrootConfig,
    progress: ProgressCallback | None = None,
) -> DownloadResult:
    """Return a verified stage3 archive, downloading only when needed.

    Raises:
        DownloadError: no mirror answered, or the fresh download failed
            SHA-256 verification (the corrupt file is deleted).
    """
    filename = current_stage3_filename(profile, config)
    logger.info("Current stage3 file: %s", filename)

    config.stage3_cache_dir.mkdir(parents=True, exist_ok=True)
    cached = config.cache_path(filename)

    expected: str | None
    try:
        expected = expected_sha256(profile, config, filename)
    except DownloadError as e:
        logger.warning("Unable to download SHA256 hash: %s", e)
        expected = None

    if cached.is_file():
        if expected is None:
            logger.warning("Using cached %s without verification", filename)
            return DownloadResult(cached, "", cached.stat().st_size, 0.0, False, True)
        valid, _ = verify_sha256(cached, expected)
        if valid:
            logger.info("Cached stage3 verified: %s", cached)
            return DownloadResult(cached, "", cached.stat().st_size, 0.0, True, True)
        logger.warning("Cached stage3 corrupted, deleting and re-downloading")
        cached.unlink(missing_ok=True)

    urls = [f"{base}{filename}" for base in candidate_base_urls(profile, config)]
    result = download_file(urls, cached, progress)

    if expected is None:
        logger.warning("%s downloaded without SHA256 verification", filename)
        return result

    valid, calculated = verify_sha256(cached, expected)
    if not valid:
        cached.unlink(missing_ok=True)
        raise DownloadError(
            f"The downloaded file is corrupted (expected {expected}, got {calculated})"
        )

    result.verified = True
    return result


def format_bytes(count: float) -> str:
    units = ("B", "KB", "MB", "GB", "TB")
    size = float(count)
    index = 0
    while size >= 1024.0 and index < len(units) - 1:
        size /= 1024.0
        index += 1
    return f"{size:.0f} {units[index]}" if index == 0 else f"{size:.1f} {units[index]}"
