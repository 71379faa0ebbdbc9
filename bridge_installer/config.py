"""
Bridge Installer Configuration

Environment variable handling and platform-dependent default locations.
"""

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# Environment variable names
ENV_CONFIG_PATH = "BRIDGE_INSTALLER_CONFIG_PATH"
ENV_SERVER_NAME = "BRIDGE_INSTALLER_SERVER_NAME"
ENV_REPO_URL = "BRIDGE_INSTALLER_REPO_URL"
ENV_CLONE_DIR = "BRIDGE_INSTALLER_CLONE_DIR"
ENV_BREW_PREFIX = "BRIDGE_INSTALLER_BREW_PREFIX"
ENV_LINK_DIR = "BRIDGE_INSTALLER_LINK_DIR"
ENV_PROBE_TIMEOUT = "BRIDGE_INSTALLER_PROBE_TIMEOUT"

DEFAULT_SERVER_NAME = "TransportBridgeWS"
DEFAULT_BRIDGE_COMMAND = "claude-bridge"
DEFAULT_PACKAGE_NAME = "claude-desktop-transport-bridge"
DEFAULT_REPO_URL = "https://github.com/chromecide/claude-desktop-transport-bridge.git"
DEFAULT_NODE_FORMULA = "node@20"
DEFAULT_MIN_NODE_MAJOR = 20
DEFAULT_PROBE_TIMEOUT = 3.0

CONFIG_FILENAME = "claude_desktop_config.json"


def default_config_path() -> Path:
    """
    Get the conventional Claude Desktop config location for this platform.

    Returns:
        Path to claude_desktop_config.json (may not exist yet)
    """
    system = platform.system()
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "Claude" / CONFIG_FILENAME
    if system == "Windows":
        appdata = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(appdata) / "Claude" / CONFIG_FILENAME
    return Path.home() / ".config" / "Claude" / CONFIG_FILENAME


def default_brew_prefix() -> Path:
    """Homebrew lives under /opt/homebrew on Apple Silicon, /usr/local on Intel."""
    if platform.machine() == "arm64":
        return Path("/opt/homebrew")
    return Path("/usr/local")


@dataclass
class InstallerConfig:
    """
    Global configuration for the bridge installer.

    Attributes:
        config_path: Claude Desktop MCP config file
        server_name: Default MCP server name to register
        bridge_command: Executable name the bridge package installs
        package_name: npm package name of the bridge
        repo_url: Git URL the bridge is built from
        clone_dir: Local checkout used for building
        brew_prefix: Homebrew installation prefix
        link_dir: Directory for symlinks GUI apps can see
        node_formula: Homebrew formula providing Node
        min_node_major: Minimum accepted Node major version
        probe_timeout: Seconds to let the smoke probe run
    """
    config_path: Path = field(default_factory=default_config_path)
    server_name: str = DEFAULT_SERVER_NAME
    bridge_command: str = DEFAULT_BRIDGE_COMMAND
    package_name: str = DEFAULT_PACKAGE_NAME
    repo_url: str = DEFAULT_REPO_URL
    clone_dir: Path = field(
        default_factory=lambda: Path.home() / ".local" / "src" / DEFAULT_PACKAGE_NAME
    )
    brew_prefix: Path = field(default_factory=default_brew_prefix)
    link_dir: Path = Path("/usr/local/bin")
    node_formula: str = DEFAULT_NODE_FORMULA
    min_node_major: int = DEFAULT_MIN_NODE_MAJOR
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT

    @classmethod
    def from_environment(cls) -> "InstallerConfig":
        """
        Load configuration from environment variables.

        Unset variables fall back to the platform defaults.
        """
        config = cls()

        if env_path := os.environ.get(ENV_CONFIG_PATH):
            config.config_path = Path(os.path.expanduser(env_path))

        if env_name := os.environ.get(ENV_SERVER_NAME):
            config.server_name = env_name

        if env_repo := os.environ.get(ENV_REPO_URL):
            config.repo_url = env_repo

        if env_clone := os.environ.get(ENV_CLONE_DIR):
            config.clone_dir = Path(os.path.expanduser(env_clone))

        if env_prefix := os.environ.get(ENV_BREW_PREFIX):
            config.brew_prefix = Path(os.path.expanduser(env_prefix))

        if env_link := os.environ.get(ENV_LINK_DIR):
            config.link_dir = Path(os.path.expanduser(env_link))

        if env_timeout := os.environ.get(ENV_PROBE_TIMEOUT):
            try:
                config.probe_timeout = float(env_timeout)
            except ValueError:
                raise ValueError(
                    f"{ENV_PROBE_TIMEOUT} must be a number of seconds, got {env_timeout!r}"
                )

        return config


# Global singleton
_config: Optional[InstallerConfig] = None


def get_config() -> InstallerConfig:
    """
    Get the global configuration singleton.

    Returns:
        InstallerConfig instance loaded from environment
    """
    global _config
    if _config is None:
        _config = InstallerConfig.from_environment()
    return _config


def reset_config() -> None:
    """
    Reset the global configuration singleton.

    Useful for testing or when environment variables change.
    """
    global _config
    _config = None


def set_config(config: InstallerConfig) -> None:
    """
    Set the global configuration singleton.

    Args:
        config: Configuration to use
    """
    global _config
    _config = config
