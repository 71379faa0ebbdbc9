import os

import pytest

from bridge_installer import installer as installer_module
from bridge_installer.exceptions import (
    BinaryNotFoundError,
    DependencyInstallError,
    MalformedRegistryError,
    MissingArgumentError,
)
from bridge_installer.installer import BridgeInstaller
from bridge_installer.models import ProbeOutcome, ProbeResult


@pytest.fixture
def bridge_bin(config, make_executable):
    return make_executable(config.link_dir / "claude-bridge")


@pytest.fixture
def node_on_path(config, make_executable, tmp_path):
    node_dir = tmp_path / "nodebin"
    make_executable(node_dir / "node")
    return node_dir


@pytest.fixture
def installer(config, node_on_path):
    inst = BridgeInstaller(config, skip_dependencies=True)
    inst.env["PATH"] = os.pathsep.join([str(node_on_path), str(config.link_dir)])
    return inst


@pytest.fixture
def probe(mocker):
    return mocker.patch(
        "bridge_installer.installer.verify",
        return_value=ProbeResult(ProbeOutcome.TIMED_OUT, ["claude-bridge"], duration=3.0),
    )


def test_full_install_runs_steps_in_order(installer, fake_run, bridge_bin, probe, read_config, config):
    fake_run.respond("node -v", stdout="v20.11.1\n")

    result = installer.install("ws://host:1111/mcp/a@b.com", "OutlookMCP")

    lines = fake_run.lines()
    assert lines[0] == "node -v"
    assert lines[1].startswith("git clone --depth 1 https://github.com/chromecide/")
    assert lines[2:] == ["npm install --include=dev", "npm run build", "npm link"]

    assert result.service_name == "OutlookMCP"
    assert result.binary_path == bridge_bin
    assert result.probe.outcome == ProbeOutcome.TIMED_OUT
    assert read_config()["mcpServers"]["OutlookMCP"]["args"] == [
        "WEBSOCKET",
        '{"url":"ws://host:1111/mcp/a@b.com"}',
    ]
    probe.assert_called_once()


def test_default_service_name(installer, fake_run, bridge_bin, probe, read_config):
    fake_run.respond("node -v", stdout="v22.1.0")

    result = installer.install("ws://x")

    assert result.service_name == "TransportBridgeWS"
    assert "TransportBridgeWS" in read_config()["mcpServers"]


def test_empty_url_fails_before_anything_runs(installer, fake_run, config):
    with pytest.raises(MissingArgumentError):
        installer.install("")
    assert fake_run.calls == []
    assert not config.config_path.exists()


def test_empty_name_fails_before_anything_runs(installer, fake_run, config):
    with pytest.raises(MissingArgumentError, match="--name"):
        installer.install("ws://x", "")
    assert fake_run.calls == []
    assert not config.config_path.exists()


def test_probe_can_be_skipped(config, node_on_path, fake_run, bridge_bin, probe):
    fake_run.respond("node -v", stdout="v20.0.0")
    inst = BridgeInstaller(config, skip_dependencies=True, run_probe=False)
    inst.env["PATH"] = os.pathsep.join([str(node_on_path), str(config.link_dir)])

    result = inst.install("ws://x")

    assert result.probe is None
    probe.assert_not_called()


def test_failed_probe_does_not_fail_install(installer, fake_run, bridge_bin, mocker):
    fake_run.respond("node -v", stdout="v20.0.0")
    mocker.patch(
        "bridge_installer.installer.verify",
        return_value=ProbeResult(ProbeOutcome.NOT_FOUND, ["claude-bridge"], detail="gone"),
    )

    result = installer.install("ws://x")

    assert result.probe.outcome == ProbeOutcome.NOT_FOUND


def test_node_too_old(installer, fake_run):
    fake_run.respond("node -v", stdout="v18.19.0")
    with pytest.raises(DependencyInstallError, match="v20"):
        installer.check_node()


def test_node_missing(config, fake_run):
    inst = BridgeInstaller(config, skip_dependencies=True)
    inst.env["PATH"] = ""
    with pytest.raises(DependencyInstallError, match="node not found"):
        inst.check_node()


def test_malformed_registry_aborts_install(installer, fake_run, bridge_bin, probe, write_config):
    fake_run.respond("node -v", stdout="v20.0.0")
    write_config("{broken")

    with pytest.raises(MalformedRegistryError):
        installer.install("ws://x")
    probe.assert_not_called()


def test_build_uses_npm_ci_with_lockfile(installer, fake_run, config):
    config.clone_dir.mkdir(parents=True)
    (config.clone_dir / "package-lock.json").write_text("{}")

    installer.build()

    assert fake_run.lines() == ["npm ci --include=dev", "npm run build"]


def test_build_failure_is_fatal(installer, fake_run):
    fake_run.respond("npm run build", returncode=2, stdout="shx: command not found")
    with pytest.raises(DependencyInstallError, match="shx"):
        installer.build()


def test_sync_existing_checkout(installer, fake_run, config):
    (config.clone_dir / ".git").mkdir(parents=True)

    installer.sync_source()

    lines = fake_run.lines()
    assert lines[0].endswith("fetch --all --tags --prune")
    assert lines[1].endswith("reset --hard origin/main")
    assert len(lines) == 2


def test_sync_falls_back_to_head(installer, fake_run, config):
    (config.clone_dir / ".git").mkdir(parents=True)
    fake_run.respond("reset --hard origin/main", returncode=128)

    installer.sync_source()

    assert fake_run.lines()[-1].endswith("reset --hard HEAD")


def test_sync_replaces_non_git_directory(installer, fake_run, config):
    config.clone_dir.mkdir(parents=True)
    (config.clone_dir / "stale.txt").write_text("x")

    installer.sync_source()

    assert not (config.clone_dir / "stale.txt").exists()
    assert fake_run.lines()[0].startswith("git clone")


def test_clone_failure_is_fatal(installer, fake_run):
    fake_run.respond("git clone", returncode=128, stdout="could not resolve host")
    with pytest.raises(DependencyInstallError, match="git clone"):
        installer.sync_source()


def test_link_falls_back_to_pack(installer, fake_run):
    fake_run.respond("npm link", returncode=1)
    fake_run.respond("npm pack", stdout="npm notice\nclaude-desktop-transport-bridge-1.0.0.tgz\n")

    installer.link_globally()

    assert fake_run.lines() == [
        "npm link",
        "npm pack",
        "npm install -g ./claude-desktop-transport-bridge-1.0.0.tgz",
    ]


def test_locate_binary_links_from_npm_global_bin(config, fake_run, make_executable, tmp_path):
    npm_prefix = tmp_path / "npm-global"
    make_executable(npm_prefix / "bin" / "claude-bridge")
    fake_run.respond("npm prefix -g", stdout=f"{npm_prefix}\n")
    inst = BridgeInstaller(config, skip_dependencies=True)
    inst.env["PATH"] = ""

    found = inst.locate_binary()

    link = config.link_dir / "claude-bridge"
    assert found == link
    assert link.is_symlink()
    assert link.resolve() == (npm_prefix / "bin" / "claude-bridge").resolve()


def test_locate_binary_not_found(config, fake_run, tmp_path):
    fake_run.respond("npm prefix -g", stdout=f"{tmp_path / 'empty'}\n")
    inst = BridgeInstaller(config, skip_dependencies=True)
    inst.env["PATH"] = ""

    with pytest.raises(BinaryNotFoundError) as exc_info:
        inst.locate_binary()

    assert exc_info.value.command == "claude-bridge"
    assert tmp_path / "empty" / "bin" in exc_info.value.searched_dirs


def test_dependencies_skipped_off_macos(installer, fake_run, mocker):
    mocker.patch.object(installer_module.platform, "system", return_value="Linux")

    installer.ensure_dependencies()

    assert fake_run.calls == []


def test_dependencies_on_macos(config, fake_run, mocker, make_executable, tmp_path, isolated_home):
    mocker.patch.object(installer_module.platform, "system", return_value="Darwin")
    brew = make_executable(config.brew_prefix / "bin" / "brew")
    node_prefix = tmp_path / "cellar" / "node@20"
    make_executable(node_prefix / "bin" / "node")
    make_executable(node_prefix / "bin" / "npm")
    fake_run.respond("--prefix node@20", stdout=f"{node_prefix}\n")

    inst = BridgeInstaller(config)
    inst.env["PATH"] = "/usr/bin"
    inst.ensure_dependencies()
    inst.ensure_dependencies()

    lines = fake_run.lines()
    assert f"{brew} install node@20 git" in lines
    assert not any("Homebrew/install" in line for line in lines)

    assert inst.env["PATH"].split(os.pathsep)[0] == str(node_prefix / "bin")
    assert (config.link_dir / "node").resolve() == (node_prefix / "bin" / "node").resolve()
    assert (config.link_dir / "npm").is_symlink()
    assert not (config.link_dir / "npx").exists()

    zprofile = (isolated_home / ".zprofile").read_text()
    assert zprofile.count("brew shellenv") == 1


def test_homebrew_installed_when_missing(config, fake_run, mocker, tmp_path):
    mocker.patch.object(installer_module.platform, "system", return_value="Darwin")
    fake_run.respond("--prefix node@20", stdout=f"{tmp_path / 'node'}\n")

    inst = BridgeInstaller(config)
    inst.env["PATH"] = ""
    inst.ensure_dependencies()

    assert "Homebrew/install" in fake_run.lines()[0]


def test_command_that_cannot_start(installer, mocker):
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("npm"))
    with pytest.raises(DependencyInstallError, match="npm"):
        installer.build()


def test_locate_binary_uses_npm_bin_when_link_fails(config, fake_run, make_executable, tmp_path, mocker):
    npm_prefix = tmp_path / "npm-global"
    target = make_executable(npm_prefix / "bin" / "claude-bridge")
    fake_run.respond("npm prefix -g", stdout=f"{npm_prefix}\n")
    mocker.patch.object(installer_module, "force_symlink", return_value=False)
    inst = BridgeInstaller(config, skip_dependencies=True)
    inst.env["PATH"] = ""

    found = inst.locate_binary()

    assert found == target
    assert not (config.link_dir / "claude-bridge").exists()
