"""
Bridge Installer Orchestrator

Sequential installation of the claude-bridge binary and its registration
in Claude Desktop's MCP config.

Steps (in order):
    1. Dependencies: Homebrew, Node, git (macOS only)
    2. Node version check
    3. Clone or refresh the bridge source
    4. npm install + build (with dev dependencies)
    5. Global link (npm link, falling back to npm pack + install -g)
    6. Make the binary discoverable for GUI apps
    7. Upsert the MCP config entry
    8. Smoke probe (non-gating)
"""

import os
import platform
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, List, Sequence, Union

import click

from .config import InstallerConfig, get_config
from .exceptions import (
    BinaryNotFoundError,
    DependencyInstallError,
    MissingArgumentError,
)
from .models import ServiceEntry, ProbeResult
from .probe import verify
from .registry import ServiceRegistry
from .utils import find_executable, force_symlink, remove_path


HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"

# Tools the bridge build needs besides Node itself
BUILD_TOOLS = ["git"]

NODE_TOOLS = ["node", "npm", "npx"]

Arg = Union[str, Path]


@dataclass
class InstallResult:
    """
    Outcome of a full install run.

    Attributes:
        service_name: Name registered under mcpServers
        entry: The entry written to the config
        config_path: Config file that was updated
        binary_path: Where claude-bridge was found
        probe: Smoke probe result, None if skipped
    """
    service_name: str
    entry: ServiceEntry
    config_path: Path
    binary_path: Optional[Path] = None
    probe: Optional[ProbeResult] = None


class BridgeInstaller:
    """
    Installs the bridge and registers it with Claude Desktop.

    Each step is a public method so callers (and tests) can run them one
    at a time; install() runs them all in order and stops at the first
    fatal error.

    Example:
        installer = BridgeInstaller()
        result = installer.install("ws://host:1111/mcp/a@b.com", "OutlookMCP")
        print(result.entry.to_json())
    """

    def __init__(
        self,
        config: Optional[InstallerConfig] = None,
        registry: Optional[ServiceRegistry] = None,
        skip_dependencies: bool = False,
        run_probe: bool = True,
    ):
        """
        Initialize the installer.

        Args:
            config: Installer configuration (uses global if not provided)
            registry: Registry to update (defaults to config.config_path)
            skip_dependencies: Don't touch Homebrew; use whatever Node is on PATH
            run_probe: Launch the bridge briefly after registering it
        """
        self._config = config or get_config()
        self._registry = registry or ServiceRegistry(
            self._config.config_path, self._config.bridge_command
        )
        self._skip_dependencies = skip_dependencies
        self._run_probe = run_probe

        # PATH adjustments apply to this run only
        self._env: Dict[str, str] = dict(os.environ)

    @property
    def config(self) -> InstallerConfig:
        return self._config

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def env(self) -> Dict[str, str]:
        return self._env

    def install(self, websocket_url: str, service_name: Optional[str] = None) -> InstallResult:
        """
        Run every step in order.

        Args:
            websocket_url: Endpoint for the bridge (required, non-empty)
            service_name: MCP server name (default: configured server_name)

        Returns:
            InstallResult with the registered entry and probe diagnostics

        Raises:
            MissingArgumentError: If websocket_url or an explicit service_name is empty
            DependencyInstallError: If a prerequisite or build step fails
            BinaryNotFoundError: If claude-bridge isn't discoverable afterwards
            MalformedRegistryError: If the existing config can't be parsed
            RegistryIOError: If the config can't be written
        """
        if not websocket_url:
            raise MissingArgumentError("--url")
        if service_name is None:
            service_name = self._config.server_name
        if not service_name:
            raise MissingArgumentError("--name")

        if self._skip_dependencies:
            click.echo("Skipping dependency installation")
        else:
            self.ensure_dependencies()
        self.check_node()
        self.sync_source()
        self.build()
        self.link_globally()
        binary_path = self.locate_binary()

        entry = self.register(service_name, websocket_url)

        result = InstallResult(
            service_name=service_name,
            entry=entry,
            config_path=self._registry.path,
            binary_path=binary_path,
        )
        if self._run_probe:
            result.probe = self.probe(entry)
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def ensure_dependencies(self) -> None:
        """
        Make sure Homebrew, Node and git are installed, and put Node first on PATH.

        Only macOS is handled; elsewhere Node and git must already be present.
        """
        if platform.system() != "Darwin":
            click.echo(f"Skipping Homebrew bootstrap on {platform.system()}")
            return

        brew = self._config.brew_prefix / "bin" / "brew"
        if not find_executable("brew", extra_dirs=[brew.parent], search_path=self._path()):
            click.echo("Installing Homebrew...")
            self._run(
                ["/bin/bash", "-c", f'/bin/bash -c "$(curl -fsSL {HOMEBREW_INSTALL_URL})"'],
                step="install Homebrew",
            )

        self._prepend_path(self._config.brew_prefix / "bin", self._config.brew_prefix / "sbin")
        self._persist_shellenv(brew)

        formulae = [self._config.node_formula, *BUILD_TOOLS]
        click.echo(f"Ensuring {', '.join(formulae)}...")
        self._run([brew, "update"], step="brew update", check=False, capture=True)
        result = self._run([brew, "install", *formulae], step="brew install", check=False)
        if result.returncode != 0:
            click.echo("Warning: brew install reported errors; continuing", err=True)

        prefix = self._run(
            [brew, "--prefix", self._config.node_formula],
            step=f"locate {self._config.node_formula}",
            capture=True,
        )
        node_bin = Path(prefix.stdout.strip()) / "bin"
        self._prepend_path(node_bin)

        # GUI apps (Claude) don't see the login shell PATH
        for tool in NODE_TOOLS:
            source = node_bin / tool
            if source.exists():
                force_symlink(source, self._config.link_dir / tool)

    def check_node(self) -> str:
        """
        Verify Node is on PATH and new enough.

        Returns:
            The reported Node version (e.g. "v20.11.1")

        Raises:
            DependencyInstallError: If node is missing or too old
        """
        if not find_executable("node", search_path=self._path()):
            raise DependencyInstallError("node", "node not found on PATH after install")

        version = self._run(["node", "-v"], step="node -v", capture=True).stdout.strip()
        match = re.match(r"v?(\d+)", version)
        if not match:
            raise DependencyInstallError("node", f"unrecognized version string {version!r}")
        if int(match.group(1)) < self._config.min_node_major:
            raise DependencyInstallError(
                "node",
                f"Node {version} found, but >= v{self._config.min_node_major} required",
            )
        return version

    def sync_source(self) -> Path:
        """
        Clone the bridge repository, or hard-reset an existing checkout to origin/main.

        Returns:
            The checkout directory
        """
        clone_dir = self._config.clone_dir
        click.echo(f"Preparing local source at: {clone_dir}")
        clone_dir.parent.mkdir(parents=True, exist_ok=True)

        if (clone_dir / ".git").is_dir():
            self._run(
                ["git", "-C", clone_dir, "fetch", "--all", "--tags", "--prune"],
                step="git fetch",
                check=False,
            )
            reset = self._run(
                ["git", "-C", clone_dir, "reset", "--hard", "origin/main"],
                step="git reset",
                check=False,
            )
            if reset.returncode != 0:
                self._run(["git", "-C", clone_dir, "reset", "--hard", "HEAD"], step="git reset")
        else:
            remove_path(clone_dir)
            self._run(
                ["git", "clone", "--depth", "1", self._config.repo_url, clone_dir],
                step="git clone",
            )
        return clone_dir

    def build(self) -> None:
        """Install dependencies (including dev) and run the package build."""
        clone_dir = self._config.clone_dir
        if (clone_dir / "package-lock.json").exists():
            self._run(["npm", "ci", "--include=dev"], step="npm ci", cwd=clone_dir)
        else:
            self._run(["npm", "install", "--include=dev"], step="npm install", cwd=clone_dir)
        self._run(["npm", "run", "build"], step="npm run build", cwd=clone_dir)

    def link_globally(self) -> None:
        """npm link the checkout; fall back to packing and installing the tarball."""
        clone_dir = self._config.clone_dir
        result = self._run(["npm", "link"], step="npm link", cwd=clone_dir, check=False)
        if result.returncode == 0:
            return

        click.echo("npm link failed; falling back to npm pack + npm install -g")
        packed = self._run(["npm", "pack"], step="npm pack", cwd=clone_dir, capture=True)
        lines = packed.stdout.strip().splitlines()
        if not lines:
            raise DependencyInstallError("npm pack", "no tarball name in output")
        self._run(
            ["npm", "install", "-g", f"./{lines[-1].strip()}"],
            step="npm install -g",
            cwd=clone_dir,
        )

    def locate_binary(self) -> Path:
        """
        Find claude-bridge, symlinking it from npm's global bin dir if needed.

        Returns:
            Path to the executable

        Raises:
            BinaryNotFoundError: If it can't be found anywhere
        """
        command = self._config.bridge_command
        link_dir = self._config.link_dir

        if found := find_executable(command, search_path=self._path()):
            click.echo(f"✔ {command} at: {found}")
            return found

        # Search order: our link dir, then npm's global bin
        searched: List[Path] = [link_dir]
        prefix = self._run(
            ["npm", "prefix", "-g"], step="npm prefix -g", check=False, capture=True
        )
        if prefix.returncode == 0 and prefix.stdout.strip():
            npm_bin = Path(prefix.stdout.strip()) / "bin"
            searched.append(npm_bin)
            candidate = npm_bin / command
            if candidate.exists() and not force_symlink(candidate, link_dir / command):
                click.echo(f"Warning: could not link {candidate} into {link_dir}", err=True)

        found = find_executable(command, extra_dirs=searched, search_path=self._path())
        if not found:
            raise BinaryNotFoundError(command, searched)
        click.echo(f"✔ {command} at: {found}")
        return found

    def register(self, service_name: str, websocket_url: str) -> ServiceEntry:
        """Upsert the MCP config entry and echo it back."""
        entry = self._registry.upsert(service_name, websocket_url)
        click.echo(f"✔ Updated MCP config: {self._registry.path}")
        click.echo(entry.to_json())
        return entry

    def probe(self, entry: ServiceEntry) -> ProbeResult:
        """Launch the bridge briefly. Failures are reported, never raised."""
        result = verify(entry, timeout=self._config.probe_timeout, env=self._env)
        if result.launched:
            click.echo(f"Smoke probe: {result.describe()}")
        else:
            click.echo(f"Warning: smoke probe failed: {result.describe()}", err=True)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _path(self) -> str:
        return self._env.get("PATH", "")

    def _prepend_path(self, *directories: Path) -> None:
        current = [p for p in self._path().split(os.pathsep) if p]
        front = [str(d) for d in directories]
        self._env["PATH"] = os.pathsep.join(front + [p for p in current if p not in front])

    def _persist_shellenv(self, brew: Path) -> None:
        """Add `brew shellenv` to ~/.zprofile so future login shells find brew."""
        zprofile = Path.home() / ".zprofile"
        try:
            existing = zprofile.read_text() if zprofile.exists() else ""
        except OSError:
            return
        if "brew shellenv" in existing:
            return
        try:
            with open(zprofile, "a") as f:
                f.write(f'eval "$({brew} shellenv)"\n')
        except OSError as e:
            click.echo(f"Warning: could not update {zprofile}: {e}", err=True)

    def _run(
        self,
        args: Sequence[Arg],
        step: str,
        cwd: Optional[Path] = None,
        check: bool = True,
        capture: bool = False,
    ) -> subprocess.CompletedProcess:
        """
        Run an external command with this run's environment.

        Args:
            args: Command line
            step: Human-readable step name for errors
            cwd: Working directory
            check: Raise DependencyInstallError on failure
            capture: Capture stdout/stderr instead of streaming to the terminal

        Returns:
            CompletedProcess (returncode 127 if the command couldn't be launched)
        """
        cmd = [str(a) for a in args]
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                env=self._env,
                capture_output=capture,
                text=True,
            )
        except OSError as e:
            if check:
                raise DependencyInstallError(step, str(e))
            return subprocess.CompletedProcess(cmd, 127, stdout="", stderr=str(e))

        if check and result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise DependencyInstallError(step, output or f"exit code {result.returncode}")
        return result
