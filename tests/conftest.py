# tests/conftest.py
import json
import subprocess
from pathlib import Path

import pytest

from bridge_installer.config import InstallerConfig, set_config, reset_config


class FakeRun:
    """
    Stand-in for subprocess.run.

    Records every command line and answers from a table of
    substring -> (returncode, stdout). First matching key wins.
    """

    def __init__(self):
        self.calls = []
        self.responses = {}

    def respond(self, fragment, returncode=0, stdout=""):
        self.responses[fragment] = (returncode, stdout)
        return self

    def __call__(self, cmd, **kwargs):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        line = " ".join(cmd)
        for fragment, (returncode, stdout) in self.responses.items():
            if fragment in line:
                return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def lines(self):
        return [" ".join(c) for c in self.calls]

    def ran(self, fragment):
        return any(fragment in line for line in self.lines())


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep ~/.zprofile, ~/.npm etc. inside the test's tmp dir."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def config(tmp_path):
    cfg = InstallerConfig(
        config_path=tmp_path / "Claude" / "claude_desktop_config.json",
        clone_dir=tmp_path / "src" / "claude-desktop-transport-bridge",
        brew_prefix=tmp_path / "brew",
        link_dir=tmp_path / "bin",
        probe_timeout=0.5,
    )
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture
def config_path(config):
    return config.config_path


@pytest.fixture
def write_config(config_path):
    """Write raw text (or a dict as JSON) to the config file."""
    def _write(content):
        config_path.parent.mkdir(parents=True, exist_ok=True)
        if not isinstance(content, str):
            content = json.dumps(content, indent=2)
        config_path.write_text(content, encoding="utf-8")
        return config_path
    return _write


@pytest.fixture
def read_config(config_path):
    def _read():
        return json.loads(config_path.read_text(encoding="utf-8"))
    return _read


@pytest.fixture
def timestamps(mocker):
    """Give each backup a distinct, increasing timestamp."""
    stamps = (f"20260101-0000{i:02d}" for i in range(60))
    return mocker.patch(
        "bridge_installer.registry.utc_timestamp",
        side_effect=lambda: next(stamps),
    )


@pytest.fixture
def fake_run(mocker):
    fake = FakeRun()
    mocker.patch("subprocess.run", side_effect=fake)
    return fake


@pytest.fixture
def make_executable():
    def _make(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\nexit 0\n")
        path.chmod(0o755)
        return path
    return _make
