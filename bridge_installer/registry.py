"""
Bridge Installer Service Registry

Read-modify-write access to Claude Desktop's MCP server config with
backups and atomic replacement.
"""

import fcntl
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Dict, Any, Iterator, List, Tuple, Union

from .config import get_config
from .exceptions import MalformedRegistryError, RegistryIOError
from .models import ServiceEntry, BackupSnapshot, BACKUP_MARKER
from .utils import atomic_write_text, utc_timestamp


SERVERS_KEY = "mcpServers"

PathLike = Union[str, Path]


class ServiceRegistry:
    """
    The MCP config file seen as a map of service name -> ServiceEntry.

    Every mutation runs under an advisory lock, snapshots the current file
    to ``<name>.bak.<UTC stamp>`` and replaces the file atomically. Top-level
    keys and entries this class doesn't touch are written back unchanged.

    Features:
        - Upsert keyed by service name (overwrite in place, never append)
        - No-op removal of unknown names
        - Refuses to rewrite a file it cannot parse
        - Explicit backup listing, pruning and restore

    Example:
        registry = ServiceRegistry(Path("~/claude_desktop_config.json").expanduser())
        entry = registry.upsert("OutlookMCP", "ws://host:1111/mcp/a@b.com")
        registry.remove("OutlookMCP")
    """

    def __init__(self, path: Optional[PathLike] = None, bridge_command: Optional[str] = None):
        """
        Initialize the registry.

        Args:
            path: Config file location (defaults to the configured Claude Desktop path)
            bridge_command: Executable to register (defaults to claude-bridge)
        """
        config = get_config()
        self._path = Path(path) if path is not None else config.config_path
        self._bridge_command = bridge_command or config.bridge_command

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    def exists(self) -> bool:
        return self._path.is_file()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> Dict[str, Any]:
        """
        Parse the config file.

        Returns:
            The whole document, or an empty service map if the file is absent

        Raises:
            MalformedRegistryError: If the file is not a JSON object
        """
        if not self.exists():
            return {SERVERS_KEY: {}}
        _, document = self._read()
        return document

    def get(self, service_name: str) -> Optional[ServiceEntry]:
        """Get the entry registered under a name."""
        return self.entries().get(service_name)

    def entries(self) -> Dict[str, ServiceEntry]:
        """All well-formed entries, in file order."""
        servers = self.load().get(SERVERS_KEY) or {}
        return {
            name: ServiceEntry.from_dict(value)
            for name, value in servers.items()
            if isinstance(value, dict)
        }

    def __contains__(self, service_name: str) -> bool:
        return service_name in (self.load().get(SERVERS_KEY) or {})

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def ensure_exists(self) -> bool:
        """
        Create the file with an empty service map if it is missing.

        Returns:
            True if the file was created
        """
        if self.exists():
            return False
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self._path, self._serialize({SERVERS_KEY: {}}))
        except OSError as e:
            raise RegistryIOError(self._path, str(e))
        return True

    def upsert(self, service_name: str, websocket_url: str) -> ServiceEntry:
        """
        Register (or re-register) the bridge under a service name.

        Args:
            service_name: Key under mcpServers, used literally
            websocket_url: Endpoint handed to the bridge, not validated here

        Returns:
            The entry now stored under service_name

        Raises:
            ValueError: If service_name is empty
            MalformedRegistryError: If the existing file can't be parsed (file untouched)
            RegistryIOError: If the file or its backup can't be written
        """
        if not service_name:
            raise ValueError("service_name must not be empty")

        entry = ServiceEntry.for_websocket(websocket_url, self._bridge_command)

        with self._locked():
            self.ensure_exists()
            raw, document = self._read()
            self._backup_bytes(raw)

            # null is treated like a missing key
            if document.get(SERVERS_KEY) is None:
                document[SERVERS_KEY] = {}
            document[SERVERS_KEY][service_name] = entry.to_dict()
            self._write(document)

        return entry

    def remove(self, service_name: str) -> Optional[ServiceEntry]:
        """
        Remove one entry. Absent file or name is a no-op.

        Returns:
            The removed entry, or None if nothing was registered under the name

        Raises:
            MalformedRegistryError: If the existing file can't be parsed
            RegistryIOError: If the file or its backup can't be written
        """
        with self._locked():
            if not self.exists():
                return None
            raw, document = self._read()
            servers = document.get(SERVERS_KEY)
            if not servers or service_name not in servers:
                return None

            self._backup_bytes(raw)
            removed = servers.pop(service_name)
            entry = ServiceEntry.from_dict(removed if isinstance(removed, dict) else {})
            self._write(document)

        return entry

    def delete(self) -> Optional[Path]:
        """
        Delete the whole config file, after taking a backup.

        This drops every MCP server, not just ours.

        Returns:
            Path of the backup taken, or None if there was no file
        """
        with self._locked():
            if not self.exists():
                return None
            backup_path = self._backup_bytes(self._read_bytes())
            try:
                self._path.unlink()
            except OSError as e:
                raise RegistryIOError(self._path, str(e))
        return backup_path

    def restore(self, backup_path: PathLike) -> Optional[Path]:
        """
        Put a backup back in place of the current file.

        The current file (if any) is backed up first, so a restore can be undone.

        Args:
            backup_path: Backup file to restore

        Returns:
            Backup of the file that was replaced, or None if there was none

        Raises:
            MalformedRegistryError: If the backup itself isn't a JSON object
            RegistryIOError: If any file can't be read or written
        """
        backup_path = Path(backup_path)
        try:
            raw = backup_path.read_bytes()
        except OSError as e:
            raise RegistryIOError(backup_path, str(e))
        document = self._parse(raw, backup_path)

        with self._locked():
            previous = None
            if self.exists():
                previous = self._backup_bytes(self._read_bytes())
            self._write(document)
        return previous

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def backup_path_for(self, stamp: str) -> Path:
        return self._path.with_name(f"{self._path.name}{BACKUP_MARKER}{stamp}")

    def list_backups(self) -> List[BackupSnapshot]:
        """Backups of this file, oldest first."""
        directory = self._path.parent
        if not directory.is_dir():
            return []
        prefix = self._path.name + BACKUP_MARKER
        snapshots = []
        for candidate in directory.iterdir():
            if not candidate.name.startswith(prefix) or not candidate.is_file():
                continue
            if snapshot := BackupSnapshot.from_path(candidate):
                snapshots.append(snapshot)
        return sorted(snapshots, key=lambda s: s.taken_at)

    def prune_backups(self, keep: int) -> List[Path]:
        """
        Delete all but the newest `keep` backups.

        Args:
            keep: Number of most recent backups to retain (>= 0)

        Returns:
            Paths that were deleted
        """
        if keep < 0:
            raise ValueError("keep must be >= 0")
        snapshots = self.list_backups()
        doomed = snapshots[:-keep] if keep else snapshots
        removed = []
        for snapshot in doomed:
            try:
                snapshot.path.unlink()
            except OSError as e:
                raise RegistryIOError(snapshot.path, str(e))
            removed.append(snapshot.path)
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Exclusive advisory lock on the sidecar .lock file."""
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_path, "a")
        except OSError as e:
            raise RegistryIOError(self.lock_path, str(e))

        with handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _read_bytes(self) -> bytes:
        try:
            return self._path.read_bytes()
        except OSError as e:
            raise RegistryIOError(self._path, str(e))

    def _read(self) -> Tuple[bytes, Dict[str, Any]]:
        raw = self._read_bytes()
        return raw, self._parse(raw, self._path)

    @staticmethod
    def _parse(raw: bytes, source: Path) -> Dict[str, Any]:
        try:
            document = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise MalformedRegistryError(source, str(e))

        if not isinstance(document, dict):
            raise MalformedRegistryError(
                source, f"top level is {type(document).__name__}, expected an object"
            )
        servers = document.get(SERVERS_KEY)
        if servers is not None and not isinstance(servers, dict):
            raise MalformedRegistryError(
                source, f"{SERVERS_KEY} is {type(servers).__name__}, expected an object"
            )
        return document

    def _backup_bytes(self, raw: bytes) -> Path:
        backup_path = self.backup_path_for(utc_timestamp())
        try:
            backup_path.write_bytes(raw)
        except OSError as e:
            raise RegistryIOError(backup_path, str(e))
        return backup_path

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self._path, self._serialize(document))
        except OSError as e:
            raise RegistryIOError(self._path, str(e))

    @staticmethod
    def _serialize(document: Dict[str, Any]) -> str:
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"

    def __repr__(self) -> str:
        return f"ServiceRegistry(path={self._path})"


def get_registry(path: Optional[PathLike] = None) -> ServiceRegistry:
    """
    Get a registry for the given path, or the configured Claude Desktop config.

    Returns:
        ServiceRegistry instance
    """
    return ServiceRegistry(path)


def upsert(registry_path: PathLike, service_name: str, websocket_url: str) -> ServiceEntry:
    """Register the bridge under service_name in the file at registry_path."""
    return ServiceRegistry(registry_path).upsert(service_name, websocket_url)


def remove(registry_path: PathLike, service_name: str) -> Optional[ServiceEntry]:
    """Remove service_name from the file at registry_path (no-op if absent)."""
    return ServiceRegistry(registry_path).remove(service_name)


def delete_registry(registry_path: PathLike) -> Optional[Path]:
    """Back up and delete the whole file at registry_path."""
    return ServiceRegistry(registry_path).delete()
