"""
Configuration loader — reads config.yml into a ``ChrootConfig``.

Reads YAML, validates against the pydantic schema, and returns a typed
config object.  Also writes it back and migrates the legacy flat format
(``default_chroot_dir`` / ``default_mirror``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from chrootmanager.core.models.config import ChrootConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"
CONFIG_ENV = "CM_CONFIG"

_LEGACY_KEYS = ("default_chroot_dir", "default_mirror")


class ConfigError(Exception):
    """Raised when the configuration is invalid or cannot be written."""


def default_config_path() -> Path:
    """``$CM_CONFIG`` if set, else ``~/.config/chrootmanager/config.yml``."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "chrootmanager" / CONFIG_FILE


def load_config(path: Path | None = None) -> ChrootConfig:
    """Load and validate configuration.

    A missing file yields the defaults.  A legacy flat file is migrated
    and written back in the current format.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    path = path or default_config_path()

    if not path.is_file():
        logger.debug("No config at %s, using defaults", path)
        return ChrootConfig()

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return ChrootConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    if any(key in data for key in _LEGACY_KEYS):
        config = migrate_legacy_config(data)
        logger.info("Migrated legacy configuration at %s", path)
        save_config(config, path)
        return config

    try:
        return ChrootConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def migrate_legacy_config(data: dict) -> ChrootConfig:
    """Build a ``ChrootConfig`` from the old flat layout."""
    config = ChrootConfig()

    old_dir = data.get("default_chroot_dir")
    if isinstance(old_dir, str) and old_dir:
        config.chroot_base_dir = Path(old_dir).expanduser()

    old_mirror = data.get("default_mirror")
    if isinstance(old_mirror, str) and old_mirror:
        config.mirrors_url = [old_mirror]

    return config


def save_config(config: ChrootConfig, path: Path | None = None) -> Path:
    """Write the configuration as YAML, creating parent directories."""
    path = path or default_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            yaml.safe_dump(config.to_yaml_dict(), default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e

    logger.debug("Saved config to %s", path)
    return path


def ensure_directories(config: ChrootConfig) -> None:
    """Create the chroot base and stage3 cache directories."""
    for directory in (config.chroot_base_dir, config.stage3_cache_dir):
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created directory: %s", directory)


def add_mirror(config: ChrootConfig, mirror_url: str) -> bool:
    """Append a mirror if not already present.  Returns True if added."""
    url = mirror_url.strip()
    if not url:
        raise ConfigError("Mirror URL cannot be empty")
    if not url.startswith(("http://", "https://", "ftp://", "rsync://")):
        raise ConfigError(f"Unsupported mirror URL scheme: {url}")

    normalized = url.rstrip("/")
    if any(m.rstrip("/") == normalized for m in config.mirrors_url):
        return False
    config.mirrors_url.append(url)
    return True


def remove_mirror(config: ChrootConfig, mirror_url: str) -> bool:
    """Remove a mirror.  Returns True if something was removed."""
    normalized = mirror_url.strip().rstrip("/")
    before = len(config.mirrors_url)
    config.mirrors_url = [m for m in config.mirrors_url if m.rstrip("/") != normalized]
    return len(config.mirrors_url) != before
