"""
Tests for install strategies, post-install actions and the subprocess runner.

``_run_subprocess`` is replaced by a recorder so no command is executed.
"""

import os
import subprocess
from pathlib import Path

import pytest

from toolbelt.core.config.loader import load_manifest
from toolbelt.core.data import DEFAULT_MANIFEST
from toolbelt.core.models.tool import ToolDescriptor
from toolbelt.core.services.provision.execution import strategies, subprocess_runner
from toolbelt.core.services.provision.execution.strategies import (
    InstallSession,
    _build_pkg_install_cmd,
    apply_post_install,
    install_tool,
)
from toolbelt.core.services.provision.execution.subprocess_runner import _run_subprocess


class Recorder:
    """Stands in for ``_run_subprocess``; fails commands starting with ``fail_on``."""

    def __init__(self):
        self.calls: list[dict] = []
        self.fail_on: set[str] = set()

    def __call__(self, cmd, **kwargs):
        self.calls.append({"cmd": list(cmd), **kwargs})
        if cmd[0] in self.fail_on:
            return {"ok": False, "error": f"Command failed (exit 1): {cmd[0]}", "stderr": "boom"}
        return {"ok": True, "stdout": ""}

    @property
    def commands(self) -> list[list[str]]:
        return [c["cmd"] for c in self.calls]


@pytest.fixture
def recorder(monkeypatch) -> Recorder:
    rec = Recorder()
    monkeypatch.setattr(strategies, "_run_subprocess", rec)
    return rec


def _tool(name: str, install: dict | None = None, **kwargs) -> ToolDescriptor:
    data = {"name": name, "group": "g", "install": install or {}, **kwargs}
    return ToolDescriptor.model_validate(data)


def _pkg(name: str, **strategy) -> ToolDescriptor:
    return _tool(name, {"_default": {"strategy": "package", "packages": [name], **strategy}})


class TestPackage:
    def test_build_cmd(self):
        assert _build_pkg_install_cmd(["jq", "git"], "apt") == ["apt-get", "install", "-y", "jq", "git"]
        assert _build_pkg_install_cmd(["jq"], "brew") == ["brew", "install", "jq"]
        with pytest.raises(ValueError):
            _build_pkg_install_cmd(["jq"], "pacman")

    def test_apt_refresh_once_per_run(self, recorder, linux_platform):
        session = InstallSession(platform=linux_platform)
        for name in ("jq", "tree", "htop"):
            assert install_tool(_pkg(name), linux_platform, session=session)["ok"]

        assert recorder.commands.count(["apt-get", "update"]) == 1
        assert recorder.commands[0] == ["apt-get", "update"]
        installs = [c for c in recorder.calls if c["cmd"][:2] == ["apt-get", "install"]]
        assert len(installs) == 3
        assert all(c["needs_sudo"] for c in installs)

    def test_brew_no_sudo(self, recorder, mac_platform):
        result = install_tool(_pkg("jq"), mac_platform)
        assert result["ok"]
        assert recorder.commands == [["brew", "update"], ["brew", "install", "jq"]]
        assert not recorder.calls[1]["needs_sudo"]

    def test_brew_tap_once(self, recorder, mac_platform):
        session = InstallSession(platform=mac_platform)
        tool = _pkg("tea", tap="gitea/tap")
        install_tool(tool, mac_platform, session=session)
        install_tool(tool, mac_platform, session=session)
        assert recorder.commands.count(["brew", "tap", "gitea/tap"]) == 1

    def test_install_failure_propagates(self, recorder, linux_platform):
        recorder.fail_on.add("apt-get")
        result = install_tool(_pkg("jq"), linux_platform)
        assert not result["ok"]
        assert "exit 1" in result["error"]
        assert result["stderr"] == "boom"

    def test_no_strategy_for_platform(self, recorder, mac_platform):
        tool = _tool("nvm", {"debian": {"strategy": "package", "packages": ["x"]}})
        result = install_tool(tool, mac_platform)
        assert not result["ok"]
        assert "No install strategy" in result["error"]
        assert recorder.calls == []

    def test_configured_apt_repository_skipped(self, recorder, linux_platform, monkeypatch):
        class _Present(type(Path())):
            def is_file(self):
                return True

        monkeypatch.setattr(strategies, "Path", _Present)
        tool = _pkg("gh", repository={
            "name": "github-cli",
            "key_url": "https://example.invalid/key.gpg",
            "keyring": "/usr/share/keyrings/githubcli-archive-keyring.gpg",
            "source": "deb [arch={arch}] https://example.invalid stable main",
        })
        assert install_tool(tool, linux_platform)["ok"]
        assert recorder.commands == [["apt-get", "update"], ["apt-get", "install", "-y", "gh"]]


class TestScript:
    def _script_tool(self, **strategy) -> ToolDescriptor:
        return _tool("grype", {"_default": {
            "strategy": "script",
            "url": "https://example.invalid/install.sh",
            "interpreter": "sh",
            **strategy,
        }})

    @pytest.fixture
    def script_file(self, tmp_path, monkeypatch) -> Path:
        path = tmp_path / "toolbelt_script_x.sh"

        def fake_download_script(url, expected_sha256=None, **kwargs):
            path.write_text("#!/bin/sh\n")
            return {"ok": True, "path": str(path), "sha256": "abc"}

        monkeypatch.setattr(strategies, "download_script", fake_download_script)
        return path

    def test_args_and_cleanup(self, recorder, script_file, linux_platform):
        tool = self._script_tool(args=["-b", "/usr/local/bin"], needs_sudo=True)
        result = install_tool(tool, linux_platform)

        assert result["ok"]
        assert result["sha256"] == "abc"
        assert recorder.commands == [["sh", str(script_file), "-b", "/usr/local/bin"]]
        assert recorder.calls[0]["needs_sudo"] is True
        assert not script_file.exists()

    def test_env_prefix_under_sudo(self, recorder, script_file, linux_platform):
        tool = self._script_tool(env={"NONINTERACTIVE": "1"}, needs_sudo=True)
        install_tool(tool, linux_platform)
        assert recorder.commands[0][:2] == ["env", "NONINTERACTIVE=1"]

    def test_env_merged_without_sudo(self, recorder, script_file, linux_platform):
        tool = self._script_tool(env={"PROFILE": "/dev/null"})
        install_tool(tool, linux_platform, env_overrides={"PATH": "/x:$PATH"})
        call = recorder.calls[0]
        assert call["cmd"][0] == "sh"
        assert call["env_overrides"] == {"PATH": "/x:$PATH", "PROFILE": "/dev/null"}

    def test_failed_script_still_cleaned(self, recorder, script_file, linux_platform):
        recorder.fail_on.add("sh")
        result = install_tool(self._script_tool(), linux_platform)
        assert not result["ok"]
        assert not script_file.exists()

    def test_checksum_mismatch(self, recorder, linux_platform, monkeypatch):
        monkeypatch.setattr(
            strategies, "download_script",
            lambda url, expected=None, **kw: {"ok": False, "error": "SHA256 mismatch for x"},
        )
        result = install_tool(self._script_tool(sha256="0" * 64), linux_platform)
        assert not result["ok"]
        assert recorder.calls == []

    def test_dry_run_downloads_nothing(self, recorder, linux_platform, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError("downloaded during dry-run")

        monkeypatch.setattr(strategies, "download_script", boom)
        result = install_tool(self._script_tool(), linux_platform, dry_run=True)
        assert result["ok"] and result["dry_run"]

    def test_homebrew_primes_sudo_first(self, recorder, script_file, mac_platform, not_root):
        brew = load_manifest(DEFAULT_MANIFEST).get("brew")
        result = install_tool(brew, mac_platform)

        assert result["ok"]
        assert recorder.commands == [["sudo", "-v"], ["bash", str(script_file)]]
        assert recorder.calls[1]["needs_sudo"] is False
        assert recorder.calls[1]["env_overrides"] == {"NONINTERACTIVE": "1"}

    def test_failed_sudo_prompt_stops_install(self, recorder, script_file, linux_platform, not_root):
        recorder.fail_on.add("sudo")
        result = install_tool(self._script_tool(prime_sudo=True), linux_platform)
        assert not result["ok"]
        assert recorder.commands == [["sudo", "-v"]]

    def test_no_sudo_prompt_as_root(self, recorder, script_file, linux_platform, monkeypatch):
        monkeypatch.setattr(os, "geteuid", lambda: 0)
        install_tool(self._script_tool(prime_sudo=True), linux_platform)
        assert recorder.commands == [["sh", str(script_file)]]


class TestEcosystem:
    def test_pip(self, recorder, linux_platform):
        tool = _tool("pre-commit", {"_default": {
            "strategy": "ecosystem", "manager": "pip",
            "packages": ["pre-commit"], "args": ["--user"],
        }})
        assert install_tool(tool, linux_platform)["ok"]
        assert recorder.commands == [["pip3", "install", "--user", "pre-commit"]]

    def test_nvm_sources_nvm(self, recorder, linux_platform):
        tool = _tool("node", {"_default": {
            "strategy": "ecosystem", "manager": "nvm", "packages": ["20"],
        }})
        install_tool(tool, linux_platform)
        cmd = recorder.commands[0]
        assert cmd[:2] == ["bash", "-c"]
        assert cmd[2].endswith("&& nvm install 20")
        assert "nvm.sh" in cmd[2]

    def test_npm_through_nvm_when_present(self, recorder, linux_platform, home):
        (home / ".nvm").mkdir()
        (home / ".nvm" / "nvm.sh").write_text("")
        tool = _tool("prettier", {"_default": {
            "strategy": "ecosystem", "manager": "npm", "packages": ["prettier"],
        }})
        install_tool(tool, linux_platform)
        assert recorder.commands[0][2].endswith("npm install -g prettier")

    def test_plain_npm(self, recorder, linux_platform, home):
        tool = _tool("prettier", {"_default": {
            "strategy": "ecosystem", "manager": "npm", "packages": ["prettier"],
        }})
        install_tool(tool, linux_platform)
        assert recorder.commands == [["npm", "install", "-g", "prettier"]]

    def test_dry_run_flag_forwarded(self, recorder, linux_platform):
        tool = _tool("pre-commit", {"_default": {
            "strategy": "ecosystem", "manager": "pip", "packages": ["pre-commit"],
        }})
        install_tool(tool, linux_platform, dry_run=True)
        assert recorder.calls[0]["dry_run"] is True


class TestPostInstall:
    def test_profile_line_templated(self, linux_platform, home):
        tool = _tool("zoxide", post_install={"profile": [
            {"line": 'eval "$(zoxide init {shell})"', "pattern": "zoxide init"},
        ]})
        first = apply_post_install(tool, linux_platform, fresh=True)
        second = apply_post_install(tool, linux_platform, fresh=False)

        assert first["lines_added"] == 1
        assert second["lines_added"] == 0
        assert (home / ".bashrc").read_text() == 'eval "$(zoxide init bash)"\n'

    def test_only_arch(self, linux_platform, mac_platform, home):
        tool = _tool("brew", post_install={"profile": [{
            "line": 'eval "$(/opt/homebrew/bin/brew shellenv)"',
            "target": "login",
            "only_arch": ["arm64"],
        }]})
        assert apply_post_install(tool, linux_platform, fresh=True)["lines_added"] == 0
        assert apply_post_install(tool, mac_platform, fresh=True)["lines_added"] == 1
        assert (home / ".zprofile").exists()

    def test_dry_run_writes_nothing(self, linux_platform, home):
        tool = _tool("zoxide", post_install={"profile": [{"line": "x"}]})
        result = apply_post_install(tool, linux_platform, fresh=True, dry_run=True)
        assert result["ok"]
        assert not (home / ".bashrc").exists()

    def test_symlink_created_once(self, linux_platform, tmp_path):
        source = tmp_path / "fdfind"
        source.write_text("")
        target = tmp_path / "bin" / "fd"
        target.parent.mkdir()
        tool = _tool("fd", post_install={"symlinks": [
            {"source": str(source), "target": str(target)},
        ]})

        assert apply_post_install(tool, linux_platform, fresh=True)["links_created"] == 1
        assert target.is_symlink()
        assert apply_post_install(tool, linux_platform, fresh=False)["links_created"] == 0

    def test_symlink_missing_source_ignored(self, linux_platform, tmp_path):
        tool = _tool("fd", post_install={"symlinks": [
            {"source": str(tmp_path / "nope"), "target": str(tmp_path / "fd")},
        ]})
        result = apply_post_install(tool, linux_platform, fresh=True)
        assert result["ok"] and result["links_created"] == 0

    def test_commands_only_when_fresh(self, recorder, linux_platform):
        tool = _tool("tldr", post_install={"commands": [{"command": ["tldr", "--update"]}]})
        apply_post_install(tool, linux_platform, fresh=False)
        assert recorder.calls == []
        apply_post_install(tool, linux_platform, fresh=True)
        assert recorder.commands == [["tldr", "--update"]]

    def test_command_failure_is_soft(self, recorder, linux_platform, caplog):
        recorder.fail_on.add("tldr")
        tool = _tool("tldr", post_install={"commands": [{"command": ["tldr", "--update"]}]})
        result = apply_post_install(tool, linux_platform, fresh=True)
        assert not result["ok"]
        assert result["warnings"] == ["Command failed (exit 1): tldr"]
        assert "tldr: Command failed" in caplog.text


class TestRunSubprocess:
    def test_success(self):
        result = _run_subprocess(["sh", "-c", "echo hi"])
        assert result["ok"]
        assert result["stdout"].strip() == "hi"

    def test_failure_captures_stderr(self):
        result = _run_subprocess(["sh", "-c", "echo bad >&2; exit 3"])
        assert not result["ok"]
        assert "exit 3" in result["error"]
        assert result["stderr"].strip() == "bad"

    def test_env_overrides_expanded(self, monkeypatch):
        monkeypatch.setenv("TOOLBELT_BASE", "/base")
        result = _run_subprocess(
            ["sh", "-c", 'echo "$EXTRA"'], env_overrides={"EXTRA": "$TOOLBELT_BASE/bin"},
        )
        assert result["stdout"].strip() == "/base/bin"

    def test_sudo_prefix(self, monkeypatch):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen["cmd"] = cmd
            return subprocess.CompletedProcess(cmd, 0, "", "")

        monkeypatch.setattr(os, "geteuid", lambda: 1000)
        monkeypatch.setattr(subprocess_runner.subprocess, "run", fake_run)
        _run_subprocess(["apt-get", "update"], needs_sudo=True)
        assert seen["cmd"] == ["sudo", "apt-get", "update"]

    def test_no_sudo_as_root(self, monkeypatch):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen["cmd"] = cmd
            return subprocess.CompletedProcess(cmd, 0, "", "")

        monkeypatch.setattr(os, "geteuid", lambda: 0)
        monkeypatch.setattr(subprocess_runner.subprocess, "run", fake_run)
        _run_subprocess(["apt-get", "update"], needs_sudo=True)
        assert seen["cmd"] == ["apt-get", "update"]

    def test_timeout(self):
        result = _run_subprocess(["sleep", "5"], timeout=1)
        assert not result["ok"]
        assert "timed out" in result["error"]

    def test_missing_executable(self):
        result = _run_subprocess(["toolbelt-definitely-not-here"])
        assert not result["ok"]
        assert result["error"].startswith("Cannot run")

    def test_dry_run(self, tmp_path):
        marker = tmp_path / "marker"
        result = _run_subprocess(["touch", str(marker)], dry_run=True)
        assert result["ok"] and result["dry_run"]
        assert not marker.exists()
