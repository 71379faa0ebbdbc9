"""
Bridge Installer CLI

Command-line interface for installing claude-bridge and managing its
Claude Desktop MCP registration.

Usage:
    bridge-installer install --url 'ws://192.168.30.36:1111/mcp/email@domain.com' --name OutlookMCP
    bridge-installer register --url 'ws://host:1111/mcp/a@b.com'
    bridge-installer uninstall --name OutlookMCP
    bridge-installer backups --prune 5

Shortcuts mirroring the original scripts:
    install-claude-bridge-ws --url 'ws://host:port/path' [--name ServerName]
    uninstall-claude-bridge [--name ServerName]

Environment Variables:
    BRIDGE_INSTALLER_CONFIG_PATH - MCP config file to edit
    BRIDGE_INSTALLER_SERVER_NAME - Default MCP server name
    (see bridge_installer.config for the rest)
"""

import dataclasses
import functools
import json
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .config import InstallerConfig, get_config, ENV_CONFIG_PATH
from .exceptions import BridgeInstallerError, MissingArgumentError
from .installer import BridgeInstaller
from .probe import verify
from .registry import ServiceRegistry
from .uninstaller import BridgeUninstaller


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

NEXT_STEPS = """
Done ✅

Next:
  1) Quit & relaunch Claude Desktop to reload the config.
  2) In the MCP pane, confirm '{name}' is listed.

Notes:
  - If your endpoint supports TLS, prefer wss:// for transport.
"""


class BridgeGroup(click.Group):
    """Click group that reports usage errors as `ERROR: ...` with exit code 1."""

    def main(self, args=None, prog_name=None, complete_var=None, standalone_mode=True, **extra):
        try:
            rv = super().main(
                args=args,
                prog_name=prog_name,
                complete_var=complete_var,
                standalone_mode=False,
                **extra,
            )
        except click.UsageError as e:
            if e.ctx is not None:
                click.echo(e.ctx.get_usage(), err=True)
            click.echo(f"ERROR: {e.format_message()}", err=True)
            sys.exit(1)
        except click.ClickException as e:
            click.echo(f"ERROR: {e.format_message()}", err=True)
            sys.exit(e.exit_code)
        except click.Abort:
            click.echo("Aborted!", err=True)
            sys.exit(1)

        if not standalone_mode:
            return rv
        sys.exit(rv if isinstance(rv, int) else 0)


def fail(message: str) -> None:
    """Print an ERROR line and exit 1."""
    click.echo(f"ERROR: {message}", err=True)
    sys.exit(1)


def fatal_errors(f):
    """Turn installer errors into `ERROR: ...` and exit code 1."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except BridgeInstallerError as e:
            fail(str(e))
    return wrapper


def name_option(f):
    return click.option(
        "--name", "-n",
        type=str,
        default=None,
        help="MCP server name in Claude's config (default: TransportBridgeWS)",
    )(f)


def url_option(f):
    return click.option(
        "--url", "-u",
        type=str,
        required=True,
        help="WebSocket URL for the bridge, e.g. ws://host:port/path",
    )(f)


@click.group(cls=BridgeGroup, context_settings=CONTEXT_SETTINGS, invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--config-path", "-c",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Claude Desktop MCP config file (env: {ENV_CONFIG_PATH})",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """Install claude-bridge and register it with Claude Desktop."""
    try:
        config = get_config()
    except ValueError as e:
        fail(str(e))
    if config_path is not None:
        config = dataclasses.replace(config, config_path=config_path.expanduser())
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("install")
@url_option
@name_option
@click.option(
    "--skip-deps",
    is_flag=True,
    default=False,
    help="Don't install Homebrew/Node/git; use what is on PATH",
)
@click.option(
    "--no-probe",
    is_flag=True,
    default=False,
    help="Skip the post-install smoke probe",
)
@click.pass_obj
@fatal_errors
def install_command(
    config: InstallerConfig,
    url: str,
    name: Optional[str],
    skip_deps: bool,
    no_probe: bool,
):
    """Install the bridge and register it as an MCP server.

    Examples:
        bridge-installer install --url 'ws://192.168.30.36:1111/mcp/email@domain.com' --name OutlookMCP
    """
    if not url:
        raise MissingArgumentError("--url")

    installer = BridgeInstaller(config, skip_dependencies=skip_deps, run_probe=not no_probe)
    result = installer.install(url, name)
    click.echo(NEXT_STEPS.format(name=result.service_name))


@cli.command("register")
@url_option
@name_option
@click.option(
    "--no-probe",
    is_flag=True,
    default=False,
    help="Skip the smoke probe",
)
@click.pass_obj
@fatal_errors
def register_command(config: InstallerConfig, url: str, name: Optional[str], no_probe: bool):
    """Add or update the MCP entry only (bridge already installed)."""
    if not url:
        raise MissingArgumentError("--url")
    if name is None:
        name = config.server_name
    if not name:
        raise MissingArgumentError("--name")

    registry = ServiceRegistry(config.config_path, config.bridge_command)
    entry = registry.upsert(name, url)
    click.echo(f"✔ Updated MCP config: {registry.path}")
    click.echo(entry.to_json())

    if not no_probe:
        result = verify(entry, timeout=config.probe_timeout)
        if result.launched:
            click.echo(f"Smoke probe: {result.describe()}")
        else:
            click.echo(f"Warning: smoke probe failed: {result.describe()}", err=True)


@cli.command("unregister")
@name_option
@click.pass_obj
@fatal_errors
def unregister_command(config: InstallerConfig, name: Optional[str]):
    """Remove one MCP entry, leaving everything else in place."""
    if name is None:
        name = config.server_name
    if not name:
        raise MissingArgumentError("--name")
    registry = ServiceRegistry(config.config_path, config.bridge_command)

    if removed := registry.remove(name):
        click.echo(f"✔ Removed '{name}' from MCP config: {registry.path}")
        click.echo(removed.to_json())
    else:
        click.echo(f"'{name}' not present in {registry.path}; nothing to do")


@cli.command("uninstall")
@name_option
@click.option(
    "--delete-config",
    is_flag=True,
    default=False,
    help="Delete the whole MCP config file (all servers), after a backup",
)
@click.option(
    "--purge-runtime",
    is_flag=True,
    default=False,
    help="Also uninstall Node/jq/coreutils/git and clear npm caches",
)
@click.option(
    "--reset-launchctl",
    is_flag=True,
    default=False,
    help="Unset PATH and proxy variables in the launchctl GUI environment",
)
@click.option(
    "--yes", "-y",
    is_flag=True,
    default=False,
    help="Don't ask for confirmation",
)
@click.pass_obj
@fatal_errors
def uninstall_command(
    config: InstallerConfig,
    name: Optional[str],
    delete_config: bool,
    purge_runtime: bool,
    reset_launchctl: bool,
    yes: bool,
):
    """Stop and remove the bridge and its MCP registration.

    Examples:
        bridge-installer uninstall --name OutlookMCP
        bridge-installer uninstall --delete-config --purge-runtime --yes
    """
    if delete_config and not yes:
        click.confirm(
            f"This deletes {config.config_path} including every other MCP server. Continue?",
            abort=True,
        )

    click.echo("Starting Claude Bridge uninstaller...")
    uninstaller = BridgeUninstaller(
        config,
        delete_config=delete_config,
        purge_runtime=purge_runtime,
        reset_launchctl=reset_launchctl,
    )
    report = uninstaller.uninstall(name)

    click.echo(f"\n✅ Claude Bridge removed ({len(report.removed_paths)} path(s) deleted)")
    if report.config_backup:
        click.echo(f"Config backup: {report.config_backup}")


@cli.command("show")
@name_option
@click.pass_obj
@fatal_errors
def show_command(config: InstallerConfig, name: Optional[str]):
    """Print one MCP entry, or all of them."""
    registry = ServiceRegistry(config.config_path, config.bridge_command)

    if name:
        entry = registry.get(name)
        if entry is None:
            fail(f"'{name}' is not registered in {registry.path}")
        click.echo(entry.to_json())
        if url := entry.websocket_url:
            click.echo(f"WebSocket URL: {url}")
        return

    entries = registry.entries()
    if not entries:
        click.echo(f"No MCP servers registered in {registry.path}")
        return
    click.echo(json.dumps(
        {n: e.to_dict() for n, e in entries.items()},
        indent=2,
        ensure_ascii=False,
    ))


@cli.command("backups")
@click.option(
    "--prune",
    type=click.IntRange(min=0),
    default=None,
    help="Keep only the N most recent backups",
)
@click.pass_obj
@fatal_errors
def backups_command(config: InstallerConfig, prune: Optional[int]):
    """List config backups, optionally pruning old ones."""
    registry = ServiceRegistry(config.config_path, config.bridge_command)

    if prune is not None:
        removed = registry.prune_backups(prune)
        click.echo(f"Deleted {len(removed)} backup(s)")

    backups = registry.list_backups()
    if not backups:
        click.echo(f"No backups of {registry.path}")
        return

    click.echo(f"\nBackups of {registry.path} ({len(backups)}):\n")
    for snapshot in backups:
        click.echo(f"  {snapshot.taken_at:%Y-%m-%d %H:%M:%S} UTC  {snapshot.path}")


@cli.command("restore")
@click.argument("backup", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
@fatal_errors
def restore_command(config: InstallerConfig, backup: Path):
    """Replace the MCP config with BACKUP (the current file is backed up first)."""
    registry = ServiceRegistry(config.config_path, config.bridge_command)
    previous = registry.restore(backup)
    click.echo(f"✔ Restored {registry.path} from {backup}")
    if previous:
        click.echo(f"Previous config saved to {previous}")


def main():
    """Entry point for the CLI."""
    cli()


def install_main():
    """Entry point matching the original install-claude-bridge-ws.sh flags."""
    cli.main(args=["install", *sys.argv[1:]], prog_name="install-claude-bridge-ws")


def uninstall_main():
    """Entry point matching the original uninstall-claude-bridge.sh."""
    cli.main(args=["uninstall", *sys.argv[1:]], prog_name="uninstall-claude-bridge")


if __name__ == "__main__":
    main()
