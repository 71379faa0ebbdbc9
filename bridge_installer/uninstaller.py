"""
Bridge Uninstaller

Stops the bridge, deletes everything the installer put on disk and takes
the entry back out of Claude Desktop's MCP config.

By default only the named MCP entry is removed. Deleting the whole config
file, purging the Node runtime and resetting the launchctl GUI environment
are opt-in because they affect more than this bridge.
"""

import platform
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Sequence

import click

from .config import InstallerConfig, get_config
from .exceptions import MissingArgumentError
from .models import ServiceEntry
from .registry import ServiceRegistry
from .utils import remove_path


RUNTIME_FORMULAE = ["jq", "coreutils", "git"]

NODE_TOOLS = ["node", "npm", "npx"]

LAUNCHCTL_VARS = ["PATH", "NO_PROXY", "no_proxy", "HTTP_PROXY", "HTTPS_PROXY"]


@dataclass
class UninstallReport:
    """
    What an uninstall run actually removed.

    Attributes:
        removed_paths: Files, links and directories deleted
        removed_entry: MCP entry taken out of the config, if any
        config_deleted: True if the whole config file was deleted
        config_backup: Backup taken before touching the config
    """
    removed_paths: List[Path] = field(default_factory=list)
    removed_entry: Optional[ServiceEntry] = None
    config_deleted: bool = False
    config_backup: Optional[Path] = None


class BridgeUninstaller:
    """
    Removes the bridge and its config entry.

    Example:
        report = BridgeUninstaller().uninstall("OutlookMCP")
        for path in report.removed_paths:
            print(path)
    """

    def __init__(
        self,
        config: Optional[InstallerConfig] = None,
        registry: Optional[ServiceRegistry] = None,
        delete_config: bool = False,
        purge_runtime: bool = False,
        reset_launchctl: bool = False,
    ):
        """
        Initialize the uninstaller.

        Args:
            config: Installer configuration (uses global if not provided)
            registry: Registry to update (defaults to config.config_path)
            delete_config: Delete the whole MCP config instead of one entry
            purge_runtime: Also uninstall Node and the build tools, and clear npm caches
            reset_launchctl: Unset PATH and proxy variables in the launchctl environment
        """
        self._config = config or get_config()
        self._registry = registry or ServiceRegistry(
            self._config.config_path, self._config.bridge_command
        )
        self._delete_config = delete_config
        self._purge_runtime = purge_runtime
        self._reset_launchctl = reset_launchctl

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    def uninstall(self, service_name: Optional[str] = None) -> UninstallReport:
        """
        Run every removal step.

        Missing artifacts are skipped. Only config errors are fatal.

        Args:
            service_name: MCP entry to remove (default: configured server_name)

        Returns:
            UninstallReport listing what was removed

        Raises:
            MissingArgumentError: If an explicit service_name is empty
            MalformedRegistryError: If the config can't be parsed for entry removal
            RegistryIOError: If the config can't be written or deleted
        """
        if service_name is None:
            service_name = self._config.server_name
        if not service_name:
            raise MissingArgumentError("--name")
        report = UninstallReport()

        self.stop_processes()
        self.remove_source(report)
        self.remove_package()
        self.remove_binary_links(report)
        if self._purge_runtime:
            self.purge_runtime(report)
        if self._reset_launchctl:
            self.reset_launchctl()
        self.unregister(service_name, report)
        self.remove_leftovers(report)
        return report

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def stop_processes(self) -> None:
        click.echo(f"Stopping any running {self._config.bridge_command} processes...")
        self._run(["pkill", "-f", self._config.bridge_command])

    def remove_source(self, report: UninstallReport) -> None:
        clone_dir = self._config.clone_dir
        if clone_dir.exists():
            click.echo(f"Removing local source clone: {clone_dir}")
        self._remove(clone_dir, report)

    def remove_package(self) -> None:
        package = self._config.package_name
        click.echo(f"Uninstalling global {package} package...")
        self._run(["npm", "uninstall", "-g", package])
        self._run(["npm", "unlink", "-g", package])

    def remove_binary_links(self, report: UninstallReport) -> None:
        command = self._config.bridge_command
        for directory in self._bin_dirs():
            link = directory / command
            if link.is_symlink() or link.is_file():
                click.echo(f"Removing binary link: {link}")
            self._remove(link, report)

    def purge_runtime(self, report: UninstallReport) -> None:
        """Uninstall Node and the build tools, and clear npm caches."""
        formulae = [self._config.node_formula, *RUNTIME_FORMULAE]
        click.echo(f"Uninstalling {', '.join(formulae)}...")
        brew = self._config.brew_prefix / "bin" / "brew"
        if brew.exists():
            self._run([str(brew), "uninstall", *formulae])

        for tool in NODE_TOOLS:
            for directory in (self._config.brew_prefix / "bin", self._config.link_dir):
                self._remove(directory / tool, report)

        click.echo("Cleaning npm and Node cache...")
        self._run(["npm", "cache", "clean", "--force"])
        home = Path.home()
        for path in (home / ".npm", home / ".node-gyp", home / ".local" / "lib" / "node_modules"):
            self._remove(path, report)

    def reset_launchctl(self) -> None:
        """Unset variables the GUI session may have inherited (macOS only)."""
        if platform.system() != "Darwin":
            return
        click.echo("Resetting launchctl environment...")
        for name in LAUNCHCTL_VARS:
            self._run(["launchctl", "unsetenv", name])

    def unregister(self, service_name: str, report: UninstallReport) -> None:
        """Remove the MCP entry, or the whole config file when asked to."""
        if self._delete_config:
            if backup := self._registry.delete():
                click.echo(f"Removed MCP config: {self._registry.path} (backup: {backup})")
                report.config_deleted = True
                report.config_backup = backup
            return

        if removed := self._registry.remove(service_name):
            report.removed_entry = removed
            report.config_backup = self._latest_backup()
            click.echo(f"Removed '{service_name}' from MCP config: {self._registry.path}")
        else:
            click.echo(f"'{service_name}' not present in MCP config")

    def remove_leftovers(self, report: UninstallReport) -> None:
        """Installed package copies and log directories."""
        package = self._config.package_name
        global_copy = self._config.brew_prefix / "lib" / "node_modules" / package
        for path in (
            global_copy / "dist" / "src" / "logs",
            self._config.clone_dir / "dist" / "src" / "logs",
            Path.home() / ".npm" / "_logs",
            global_copy,
        ):
            self._remove(path, report)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bin_dirs(self) -> List[Path]:
        dirs = [self._config.brew_prefix / "bin", self._config.link_dir, Path("/usr/bin")]
        unique: List[Path] = []
        for d in dirs:
            if d not in unique:
                unique.append(d)
        return unique

    def _latest_backup(self) -> Optional[Path]:
        backups = self._registry.list_backups()
        return backups[-1].path if backups else None

    @staticmethod
    def _remove(path: Path, report: UninstallReport) -> None:
        try:
            if remove_path(path):
                report.removed_paths.append(path)
        except OSError as e:
            click.echo(f"Warning: could not remove {path}: {e}", err=True)

    @staticmethod
    def _run(args: Sequence[str]) -> int:
        """Run a best-effort cleanup command quietly. Failure is expected and ignored."""
        try:
            result = subprocess.run(
                list(args),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError:
            return 127
        return result.returncode
