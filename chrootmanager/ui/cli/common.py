"""
Shared CLI helpers — config and gateway resolution, error exits.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn

import click

from chrootmanager.core.config.loader import ConfigError, load_config
from chrootmanager.core.elevation import ElevationGateway, set_shared_gateway
from chrootmanager.core.models.config import ChrootConfig
from chrootmanager.core.services.stage3_download import DownloadProgress, format_bytes

_BAR_WIDTH = 40


def fail(message: str) -> NoReturn:
    click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


def get_config(ctx: click.Context) -> ChrootConfig:
    """Load the config once per invocation."""
    config: ChrootConfig | None = ctx.obj.get("config")
    if config is None:
        path: Path | None = ctx.obj.get("config_path")
        try:
            config = load_config(path)
        except ConfigError as e:
            fail(str(e))
        ctx.obj["config"] = config
    return config


def get_gateway(ctx: click.Context) -> ElevationGateway:
    """Build the process gateway from config and install it as the shared one.

    Invalidated when the command finishes.
    """
    gateway: ElevationGateway | None = ctx.obj.get("gateway")
    if gateway is None:
        config = get_config(ctx)
        gateway = ElevationGateway.from_settings(config.elevation)
        set_shared_gateway(gateway)
        ctx.obj["gateway"] = gateway
        ctx.call_on_close(gateway.close)
    return gateway


def render_progress(progress: DownloadProgress) -> None:
    """Single-line download progress on stdout."""
    speed = format_bytes(progress.speed_bytes_per_sec)
    ratio = progress.ratio
    if ratio is None:
        line = f"\r📥 Downloaded: {format_bytes(progress.downloaded)} @ {speed}/s       "
    else:
        filled = int(ratio * _BAR_WIDTH)
        bar = "█" * filled + "░" * (_BAR_WIDTH - filled)
        line = (
            f"\r📥 [{bar}] {int(ratio * 100)}% "
            f"({format_bytes(progress.downloaded)} / {format_bytes(progress.total)}) "
            f"@ {speed}/s     "
        )
    click.echo(line, nl=False)
