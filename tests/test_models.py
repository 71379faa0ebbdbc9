from datetime import datetime, timezone
from pathlib import Path

import pytest

from bridge_installer.models import (
    BackupSnapshot,
    ProbeOutcome,
    ProbeResult,
    ServiceEntry,
    build_payload,
)


def test_build_payload_is_compact_json_string():
    assert build_payload("ws://host:1111/mcp/a@b.com") == '{"url":"ws://host:1111/mcp/a@b.com"}'


def test_for_websocket_shape():
    entry = ServiceEntry.for_websocket("ws://x", "claude-bridge")
    assert entry.to_dict() == {"command": "claude-bridge", "args": ["WEBSOCKET", '{"url":"ws://x"}']}
    assert entry.websocket_url == "ws://x"


def test_websocket_url_for_other_entries():
    assert ServiceEntry("npx", ["-y", "server"]).websocket_url is None
    assert ServiceEntry("claude-bridge", ["WEBSOCKET", "not json"]).websocket_url is None
    assert ServiceEntry("claude-bridge", ["WEBSOCKET", '"just a string"']).websocket_url is None


def test_from_dict_tolerates_missing_fields():
    assert ServiceEntry.from_dict({}) == ServiceEntry("", [])
    assert ServiceEntry.from_dict({"command": "x", "args": [1, "a"]}) == ServiceEntry("x", ["1", "a"])


@pytest.mark.parametrize("args", [None, "WEBSOCKET", {"url": "ws://x"}, 3])
def test_from_dict_non_list_args_read_as_empty(args):
    assert ServiceEntry.from_dict({"command": "x", "args": args}) == ServiceEntry("x", [])


def test_from_dict_non_string_command():
    assert ServiceEntry.from_dict({"command": None, "args": ["a"]}) == ServiceEntry("", ["a"])


def test_backup_snapshot_from_path():
    snapshot = BackupSnapshot.from_path(Path("/tmp/claude_desktop_config.json.bak.20261018-093015"))
    assert snapshot.taken_at == datetime(2026, 10, 18, 9, 30, 15, tzinfo=timezone.utc)

    assert BackupSnapshot.from_path(Path("/tmp/claude_desktop_config.json")) is None
    assert BackupSnapshot.from_path(Path("/tmp/claude_desktop_config.json.bak.yesterday")) is None


def test_probe_result_describe():
    exited = ProbeResult(ProbeOutcome.EXITED, ["claude-bridge"], return_code=1, duration=0.2)
    assert exited.launched
    assert "exited with code 1" in exited.describe()

    timed_out = ProbeResult(ProbeOutcome.TIMED_OUT, ["claude-bridge"], duration=3.0)
    assert timed_out.launched
    assert "still running" in timed_out.describe()

    missing = ProbeResult(ProbeOutcome.NOT_FOUND, ["claude-bridge"], detail="No such file")
    assert not missing.launched
    assert "No such file" in missing.describe()
