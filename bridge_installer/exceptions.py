"""
Bridge Installer Exceptions

Custom exceptions for the bridge installer.
"""

from typing import Optional, List
from pathlib import Path


class BridgeInstallerError(Exception):
    """Base exception for all bridge installer errors."""
    pass


class MissingArgumentError(BridgeInstallerError):
    """Raised when a required option is missing or empty."""

    def __init__(self, option: str):
        self.option = option
        super().__init__(f"{option} is required")


class DependencyInstallError(BridgeInstallerError):
    """Raised when a prerequisite (Homebrew, Node, git, npm build) cannot be set up."""

    def __init__(self, step: str, reason: Optional[str] = None):
        self.step = step
        self.reason = reason
        msg = f"Dependency step failed: {step}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class BinaryNotFoundError(BridgeInstallerError):
    """Raised when the bridge executable is not discoverable after install."""

    def __init__(self, command: str, searched_dirs: Optional[List[Path]] = None):
        self.command = command
        self.searched_dirs = searched_dirs or []
        msg = f"{command} not found after install"
        if self.searched_dirs:
            msg += f" (searched PATH and {[str(d) for d in self.searched_dirs]})"
        super().__init__(msg)


class MalformedRegistryError(BridgeInstallerError):
    """Raised when the existing config file is not a JSON object we can safely rewrite."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        msg = f"Malformed MCP config at {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RegistryIOError(BridgeInstallerError):
    """Raised when the config file or one of its backups cannot be read or written."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        msg = f"Could not update {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
