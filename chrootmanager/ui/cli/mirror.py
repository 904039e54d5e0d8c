"""
CLI commands for stage3 mirrors.

Thin wrappers over ``chrootmanager.core.config.loader`` and
``chrootmanager.core.services.mirror_discovery``.
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from chrootmanager.core.config.loader import (
    ConfigError,
    add_mirror,
    default_config_path,
    remove_mirror,
    save_config,
)
from chrootmanager.core.models.config import DEFAULT_MIRROR
from chrootmanager.core.services.mirror_discovery import (
    PROTOCOLS,
    MirrorError,
    fetch_mirrors,
    filter_mirrors,
    regions,
)
from chrootmanager.ui.cli.common import fail, get_config


def _config_file(ctx: click.Context) -> Path:
    return ctx.obj.get("config_path") or default_config_path()


@click.group("mirror")
def mirror() -> None:
    """Stage3 mirrors — list, add, remove, browse available."""


@mirror.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_mirrors(ctx: click.Context, as_json: bool) -> None:
    """Show configured mirrors."""
    config = get_config(ctx)

    if as_json:
        click.echo(json.dumps({"mirrors": config.mirrors_url}, indent=2))
        return

    if not config.mirrors_url:
        click.echo(f"   No mirrors configured (default: {DEFAULT_MIRROR})")
        return

    click.secho("🌐 Configured mirrors:", fg="cyan", bold=True)
    for index, url in enumerate(config.mirrors_url, start=1):
        click.echo(f"  {index}. {url}")


@mirror.command("add")
@click.argument("url")
@click.pass_context
def add(ctx: click.Context, url: str) -> None:
    """Add a mirror URL (e.g. https://distfiles.gentoo.org)."""
    config = get_config(ctx)
    try:
        added = add_mirror(config, url)
        if added:
            save_config(config, _config_file(ctx))
    except ConfigError as e:
        fail(str(e))

    if added:
        click.secho(f"✅ Mirror added: {url}", fg="green")
    else:
        click.echo(f"   Mirror already configured: {url}")


@mirror.command("remove")
@click.argument("url")
@click.pass_context
def remove(ctx: click.Context, url: str) -> None:
    """Remove a mirror URL."""
    config = get_config(ctx)
    if not remove_mirror(config, url):
        fail(f"Mirror not configured: {url}")
    try:
        save_config(config, _config_file(ctx))
    except ConfigError as e:
        fail(str(e))
    click.secho(f"✅ Mirror removed: {url}", fg="green")


@mirror.command("available")
@click.option("--region", "-r", default=None, help="Only mirrors in this region (e.g. Europe).")
@click.option("--country", "-C", default=None, help="Country code or name (e.g. FR, France).")
@click.option(
    "--protocol",
    "-p",
    type=click.Choice(PROTOCOLS, case_sensitive=False),
    default=None,
    help="Only URIs of this protocol.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def available(region: str | None, country: str | None, protocol: str | None, as_json: bool) -> None:
    """List public Gentoo mirrors from the official mirror list."""
    try:
        sites = fetch_mirrors()
    except MirrorError as e:
        fail(str(e))

    matching = filter_mirrors(sites, region=region, country=country, protocol=protocol)

    if as_json:
        click.echo(json.dumps({"mirrors": [s.to_dict() for s in matching]}, indent=2))
        return

    if not matching:
        click.echo(f"   No mirrors match (regions: {', '.join(regions(sites)) or 'none'})")
        return

    click.secho(f"🌐 {len(matching)} mirror(s) available:", fg="cyan", bold=True)
    for site in matching:
        click.echo(f"   {site.name} — {site.country_name or site.country_code} ({site.region})")
        for uri in site.uris:
            click.echo(f"      {uri.protocol:<6} {uri.uri}")
    click.echo("\n💡 Add one with: chrootmanager mirror add <URL>")
