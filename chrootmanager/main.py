"""
chrootmanager — CLI entrypoint.

Usage:
    chrootmanager --help
    chrootmanager create dev --arch amd64 --profile openrc
    chrootmanager enter dev
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from chrootmanager import __version__
from chrootmanager.core.observability.logging_config import LogOptions, configure_logging
from chrootmanager.ui.cli.common import fail, get_config, get_gateway, render_progress


@click.group()
@click.version_option(version=__version__, prog_name="chrootmanager")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    envvar="CM_CONFIG",
    help="Path to config.yml (default: ~/.config/chrootmanager/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """chrootmanager — create and enter Gentoo chroots."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path).expanduser() if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    configure_logging(LogOptions.from_cli(debug=debug, verbose=verbose, quiet=quiet))


def _load_unit(ctx: click.Context, name: str):
    from chrootmanager.core.services.chroot_ops import ChrootError, ChrootUnit

    config = get_config(ctx)
    try:
        unit = ChrootUnit.from_config(name, config, gateway=get_gateway(ctx))
    except ChrootError as e:
        fail(str(e))
    if not unit.exists():
        fail(f"Chroot '{name}' not found in {config.chroot_base_dir}")
    return ChrootUnit.load(unit.chroot_path, gateway=unit.gateway)


@cli.command()
@click.argument("name")
@click.option("--arch", "-a", default="amd64", show_default=True, help="Architecture.")
@click.option("--profile", "-p", default="openrc", show_default=True, help="Stage3 profile.")
@click.option(
    "--stage3",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Use a local stage3 archive instead of downloading.",
)
@click.option("--replace", is_flag=True, help="Delete an existing chroot with the same name.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def create(
    ctx: click.Context,
    name: str,
    arch: str,
    profile: str,
    stage3: Path | None,
    replace: bool,
    as_json: bool,
) -> None:
    """Create a new chroot from a Gentoo stage3.

    Examples:

        chrootmanager create dev

        chrootmanager create musl --arch amd64 --profile musl

        chrootmanager create local --stage3 ./stage3-amd64-openrc.tar.xz
    """
    from chrootmanager.core.models.profile import SelectedProfile
    from chrootmanager.core.use_cases.create import create_chroot

    config = get_config(ctx)
    selected = SelectedProfile(architecture=arch, profile=profile)
    quiet = ctx.obj.get("quiet") or as_json

    if not quiet:
        click.secho("📦 Creating chroot...", fg="green", bold=True)
        click.echo(f"   📂 Base directory: {config.chroot_base_dir}")
        click.echo(f"   🧬 Profile: {selected}")

    result = create_chroot(
        name,
        selected,
        config,
        gateway=get_gateway(ctx),
        stage3=stage3,
        progress=None if quiet else render_progress,
        replace=replace,
    )
    if not quiet and "archive:download" in result.steps:
        click.echo()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if not result.ok:
        fail(result.error or "Chroot creation failed")

    if result.archive and not result.archive_verified and stage3 is None:
        click.secho("⚠️  Stage3 used without SHA256 verification", fg="yellow")
    click.secho(f"✅ Chroot '{name}' created successfully!", fg="green", bold=True)
    click.echo(f"📍 Path: {result.path}")


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_chroots(ctx: click.Context, as_json: bool) -> None:
    """List all chroots."""
    from chrootmanager.core.services.chroot_ops import ChrootError, ChrootUnit

    config = get_config(ctx)
    try:
        units = ChrootUnit.find_units(config)
    except ChrootError as e:
        fail(str(e))

    if as_json:
        click.echo(json.dumps({"chroots": [u.to_dict() for u in units]}, indent=2))
        return

    click.echo(f"   📂 Chroot Directory: {config.chroot_base_dir}")
    if not units:
        click.echo("   No chroots found")
        return

    click.echo("\n   📋 Available chroots:")
    click.echo(f"   {'NAME':<20} {'PROFILE':<24} PATH")
    click.echo(f"   {'─' * 70}")
    for unit in units:
        profile_name = str(unit.profile) if unit.profile else "Undefined"
        click.echo(f"   {unit.name:<20} {profile_name:<24} {unit.chroot_path}")

    click.secho(f"\n   ✅ {len(units)} chroot(s) found", fg="green")


@cli.command()
@click.argument("name")
@click.option(
    "--print-command",
    is_flag=True,
    help="Mount, then print the chroot command for another terminal instead of opening a shell.",
)
@click.pass_context
def enter(ctx: click.Context, name: str, print_command: bool) -> None:
    """Mount filesystems and open a shell inside a chroot."""
    from chrootmanager.core.services.chroot_ops import ChrootError
    from chrootmanager.core.services.chroot_shell import enter_interactive, terminal_command

    unit = _load_unit(ctx, name)
    status = 0
    keep_mounted = False
    try:
        unit.pre_authenticate()
        unit.mount_filesystems()
        unit.copy_dns_info()

        if print_command:
            command, _ = terminal_command(unit, unit.elevation.sudo_binary)
            keep_mounted = True
            click.echo(command)
            if not ctx.obj.get("quiet"):
                click.echo(
                    f"💡 Filesystems stay mounted; run 'chrootmanager unmount {name}' when done",
                    err=True,
                )
            return

        click.secho(f"🚀 Entering chroot environment '{name}'...", fg="cyan", bold=True)
        click.echo("💡 Type 'exit' to quit the chroot environment")
        status = enter_interactive(unit)
    except ChrootError as e:
        fail(str(e))
    finally:
        if unit.is_authenticated() and not keep_mounted:
            unit.unmount_filesystems()
        unit.invalidate_authentication()

    click.secho(f"✅ Exited chroot '{name}'", fg="green")
    if status != 0:
        sys.exit(status)


@cli.command()
@click.argument("name")
@click.pass_context
def mount(ctx: click.Context, name: str) -> None:
    """Bind /proc, /sys and /dev into a chroot."""
    from chrootmanager.core.services.chroot_ops import ChrootError

    unit = _load_unit(ctx, name)
    try:
        unit.pre_authenticate()
        unit.mount_filesystems()
        unit.copy_dns_info()
    except ChrootError as e:
        fail(str(e))
    click.secho(f"✅ Filesystems mounted in '{name}'", fg="green")


@cli.command()
@click.argument("name")
@click.pass_context
def unmount(ctx: click.Context, name: str) -> None:
    """Unmount everything below a chroot."""
    from chrootmanager.core.services.chroot_ops import ChrootError

    unit = _load_unit(ctx, name)
    try:
        unit.pre_authenticate()
        unit.unmount_filesystems()
    except ChrootError as e:
        fail(str(e))
    click.secho(f"✅ Filesystems unmounted from '{name}'", fg="green")


@cli.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, name: str, yes: bool) -> None:
    """Unmount and delete a chroot."""
    from chrootmanager.core.services.chroot_ops import ChrootError

    unit = _load_unit(ctx, name)
    if not yes:
        click.confirm(f"Delete chroot '{name}' at {unit.chroot_path}?", abort=True)

    try:
        unit.pre_authenticate()
        unit.cleanup(remove_directory=True)
    except ChrootError as e:
        fail(str(e))
    click.secho(f"🗑️  Chroot '{name}' deleted", fg="green")


@cli.command()
@click.option("--arch", "-a", default=None, help="Only show this architecture.")
@click.option(
    "--discover",
    is_flag=True,
    help="Read the catalog from the configured mirrors instead of the built-in list.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def profiles(ctx: click.Context, arch: str | None, discover: bool, as_json: bool) -> None:
    """List supported architectures and stage3 profiles."""
    from chrootmanager.core.services.profile_discovery import (
        discover_profiles,
        fallback_profiles,
    )

    found = discover_profiles(get_config(ctx)) if discover else fallback_profiles()
    arches = [arch] if arch else sorted(found.profiles)
    catalog = {a: found.profiles.get(a, []) for a in arches}

    if as_json:
        click.echo(json.dumps(catalog, indent=2))
        return

    if discover:
        source = "built-in catalog" if found.from_fallback else found.mirror
        click.echo(f"   Source: {source}")
    for a, names in catalog.items():
        if not names:
            fail(f"The arch '{a}' is not supported")
        click.secho(f"🧬 {a}", fg="cyan", bold=True)
        for profile_name in names:
            click.echo(f"   • {profile_name}")


# ── Register sub-command groups from chrootmanager/ui/cli/ ─────────

from chrootmanager.ui.cli.auth import auth  # noqa: E402
from chrootmanager.ui.cli.mirror import mirror  # noqa: E402

cli.add_command(auth)
cli.add_command(mirror)


if __name__ == "__main__":
    cli()
