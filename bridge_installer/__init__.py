"""
Bridge Installer - claude-bridge setup for Claude Desktop

Installs the claude-desktop-transport-bridge Node package and registers it
as an MCP server in Claude Desktop's config, and removes it again.

Key Features:
    - Idempotent upsert of a named MCP server entry
    - Timestamped backup before every config mutation
    - Atomic replace of the config file (never half-written)
    - Refuses to overwrite a config it cannot parse
    - Best-effort smoke probe of the installed bridge

Basic Usage:
    from bridge_installer import ServiceRegistry

    registry = ServiceRegistry()
    entry = registry.upsert("OutlookMCP", "ws://192.168.30.36:1111/mcp/a@b.com")
    print(entry.to_json())

    registry.remove("OutlookMCP")

Environment Variables:
    BRIDGE_INSTALLER_CONFIG_PATH   - MCP config file to edit
    BRIDGE_INSTALLER_SERVER_NAME   - Default MCP server name
    BRIDGE_INSTALLER_REPO_URL      - Bridge git repository
    BRIDGE_INSTALLER_CLONE_DIR     - Where the bridge is checked out and built
    BRIDGE_INSTALLER_BREW_PREFIX   - Homebrew prefix
    BRIDGE_INSTALLER_LINK_DIR      - Directory for GUI-visible symlinks
    BRIDGE_INSTALLER_PROBE_TIMEOUT - Smoke probe duration in seconds
"""

__version__ = "0.1.0"

# Core models
from .models import (
    ServiceEntry,
    BackupSnapshot,
    ProbeOutcome,
    ProbeResult,
    build_payload,
)

# Configuration
from .config import (
    InstallerConfig,
    get_config,
    set_config,
    reset_config,
    default_config_path,
    ENV_CONFIG_PATH,
    ENV_SERVER_NAME,
    ENV_REPO_URL,
    ENV_CLONE_DIR,
    ENV_BREW_PREFIX,
    ENV_LINK_DIR,
    ENV_PROBE_TIMEOUT,
)

# Exceptions
from .exceptions import (
    BridgeInstallerError,
    MissingArgumentError,
    DependencyInstallError,
    BinaryNotFoundError,
    MalformedRegistryError,
    RegistryIOError,
)

# Service Registry
from .registry import (
    ServiceRegistry,
    get_registry,
    upsert,
    remove,
    delete_registry,
)

# Smoke probe
from .probe import verify

# Orchestrators
from .installer import BridgeInstaller, InstallResult
from .uninstaller import BridgeUninstaller, UninstallReport

__all__ = [
    # Version
    "__version__",

    # Core models
    "ServiceEntry",
    "BackupSnapshot",
    "ProbeOutcome",
    "ProbeResult",
    "build_payload",

    # Configuration
    "InstallerConfig",
    "get_config",
    "set_config",
    "reset_config",
    "default_config_path",
    "ENV_CONFIG_PATH",
    "ENV_SERVER_NAME",
    "ENV_REPO_URL",
    "ENV_CLONE_DIR",
    "ENV_BREW_PREFIX",
    "ENV_LINK_DIR",
    "ENV_PROBE_TIMEOUT",

    # Exceptions
    "BridgeInstallerError",
    "MissingArgumentError",
    "DependencyInstallError",
    "BinaryNotFoundError",
    "MalformedRegistryError",
    "RegistryIOError",

    # Service Registry
    "ServiceRegistry",
    "get_registry",
    "upsert",
    "remove",
    "delete_registry",

    # Smoke probe
    "verify",

    # Orchestrators
    "BridgeInstaller",
    "InstallResult",
    "BridgeUninstaller",
    "UninstallReport",
]
