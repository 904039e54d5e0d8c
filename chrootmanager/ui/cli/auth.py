"""
CLI commands for sudo session handling.
"""

from __future__ import annotations

import json

import click

from chrootmanager.core.elevation import ElevationError
from chrootmanager.ui.cli.common import fail, get_gateway


@click.group("auth")
def auth() -> None:
    """sudo session — availability and authentication checks."""


@auth.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--no-prompt", is_flag=True, help="Only check that sudo is installed, never authenticate.")
@click.pass_context
def check(ctx: click.Context, as_json: bool, no_prompt: bool) -> None:
    """Verify sudo is usable for chroot operations."""
    gateway = get_gateway(ctx)

    error: str | None = None
    if not gateway.is_available():
        error = f"'{gateway.sudo_binary}' is not available on this system"
    elif not no_prompt:
        try:
            gateway.authenticate()
        except ElevationError as e:
            error = str(e)

    status = gateway.status()

    if as_json:
        click.echo(json.dumps({**status, "error": error}, indent=2))
        if error:
            ctx.exit(1)
        return

    if error:
        fail(error)

    click.secho(f"✅ {gateway.sudo_binary} is available", fg="green")
    if status["authenticated"]:
        minutes = int(status["ttl_seconds"] // 60)
        click.secho(f"🔐 Authenticated, session cached for {minutes} minutes", fg="green")
