"""
Bridge Installer Data Models

Core data models for the bridge installer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Any, Dict, List
import json


TRANSPORT_WEBSOCKET = "WEBSOCKET"

# Backup suffix format: <config>.bak.YYYYMMDD-HHMMSS (UTC)
BACKUP_MARKER = ".bak."
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def build_payload(websocket_url: str) -> str:
    """
    Encode the bridge's single JSON-string argument.

    The bridge expects one string argument, so the URL object is embedded
    as a compact JSON string rather than a nested object.
    """
    return json.dumps({"url": websocket_url}, separators=(",", ":"), ensure_ascii=False)


@dataclass
class ServiceEntry:
    """
    One launch definition under mcpServers.

    Attributes:
        command: Executable Claude Desktop launches
        args: Ordered argument list passed to the command
    """
    command: str
    args: List[str] = field(default_factory=list)

    @classmethod
    def for_websocket(cls, websocket_url: str, command: str) -> "ServiceEntry":
        """Build the entry that runs the bridge against a WebSocket endpoint."""
        return cls(command=command, args=[TRANSPORT_WEBSOCKET, build_payload(websocket_url)])

    @property
    def websocket_url(self) -> Optional[str]:
        """The URL embedded in a WEBSOCKET entry, or None for any other shape."""
        if len(self.args) != 2 or self.args[0] != TRANSPORT_WEBSOCKET:
            return None
        try:
            payload = json.loads(self.args[1])
        except json.JSONDecodeError:
            return None
        if isinstance(payload, dict):
            return payload.get("url")
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON persistence."""
        return {
            "command": self.command,
            "args": list(self.args),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ServiceEntry":
        """Deserialize from dictionary. A missing or non-list args reads as []."""
        args = d.get("args")
        if not isinstance(args, list):
            args = []
        command = d.get("command")
        return cls(
            command=command if isinstance(command, str) else "",
            args=[str(a) for a in args],
        )

    def to_json(self) -> str:
        """Pretty JSON for echoing back to the operator."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class BackupSnapshot:
    """
    A timestamped copy of the config taken before a mutation.

    Attributes:
        path: Location of the backup file
        taken_at: UTC time encoded in the file name
    """
    path: Path
    taken_at: datetime

    @classmethod
    def from_path(cls, path: Path) -> Optional["BackupSnapshot"]:
        """Parse a backup file name, returning None for anything that isn't one."""
        _, marker, stamp = path.name.rpartition(BACKUP_MARKER)
        if not marker:
            return None
        try:
            taken_at = datetime.strptime(stamp, BACKUP_TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return cls(path=path, taken_at=taken_at.replace(tzinfo=timezone.utc))

    def __repr__(self) -> str:
        return f"BackupSnapshot({self.path.name})"


class ProbeOutcome(Enum):
    """How the smoke probe ended."""
    EXITED = "exited"         # Process exited on its own within the timeout
    TIMED_OUT = "timed_out"   # Still running at the deadline (killed)
    NOT_FOUND = "not_found"   # Executable could not be launched
    FAILED = "failed"         # Any other launch error


@dataclass
class ProbeResult:
    """
    Diagnostic result of a smoke probe. Never a gate on install success.

    Attributes:
        outcome: How the probe ended
        command: Full command line that was launched
        return_code: Exit status when the process exited
        duration: Wall-clock seconds spent
        detail: Error text for NOT_FOUND / FAILED
    """
    outcome: ProbeOutcome
    command: List[str]
    return_code: Optional[int] = None
    duration: float = 0.0
    detail: Optional[str] = None

    @property
    def launched(self) -> bool:
        """True if the executable actually started."""
        return self.outcome in (ProbeOutcome.EXITED, ProbeOutcome.TIMED_OUT)

    def describe(self) -> str:
        """One-line summary for CLI output."""
        if self.outcome == ProbeOutcome.EXITED:
            return f"bridge exited with code {self.return_code} after {self.duration:.1f}s"
        if self.outcome == ProbeOutcome.TIMED_OUT:
            return f"bridge still running after {self.duration:.1f}s (stopped)"
        return f"bridge could not be launched: {self.detail}"
