"""
Shared test fixtures and configuration.

No test touches the network, sudo, or a real package manager: the
``fake_bin`` directory stands in for PATH and installers are patched.
"""

import logging
import os
import stat
import textwrap
from pathlib import Path

import pytest

from toolbelt.core.services.provision.detection.platform import PlatformInfo


@pytest.fixture(autouse=True)
def _isolate_root_logger():
    """Undo what ``setup_logging`` does to the root logger in CLI tests."""
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()
    root.setLevel(level)
    logging.captureWarnings(False)
    logging.raiseExceptions = True


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """Point HOME (and so ``~``) at a temp directory."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("SHELL", "/bin/bash")
    return home_dir


@pytest.fixture
def fake_bin(tmp_path: Path, monkeypatch):
    """A PATH made of one empty directory; returns a ``make(name)`` helper."""
    bin_dir = tmp_path / "fake-bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", str(bin_dir))

    def make(name: str, directory: Path | None = None) -> Path:
        target_dir = directory or bin_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        exe = target_dir / name
        exe.write_text("#!/bin/sh\necho 1.2.3\n")
        exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return exe

    make.dir = bin_dir
    return make


@pytest.fixture
def not_root(monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)


@pytest.fixture
def linux_platform() -> PlatformInfo:
    return PlatformInfo(
        system="Linux",
        family="debian",
        machine="x86_64",
        arch="amd64",
        os="linux",
        distro="ubuntu",
        version="24.04",
        shell="bash",
    )


@pytest.fixture
def mac_platform() -> PlatformInfo:
    return PlatformInfo(
        system="Darwin",
        family="macos",
        machine="arm64",
        arch="arm64",
        os="darwin",
        distro="macos",
        version="14.5",
        shell="zsh",
    )


SMALL_MANIFEST = textwrap.dedent("""\
    version: 1
    groups:
      - id: base
        label: Base
      - id: extras
        label: Extras
    tools:
      - name: alpha
        group: base
        version: "1.0.0"
        install:
          _default:
            strategy: package
            packages: [alpha]
      - name: beta
        group: base
        install:
          debian:
            strategy: package
            packages: [beta]
      - name: gamma
        group: extras
        install:
          _default:
            strategy: package
            packages: [gamma]
        post_install:
          profile:
            - line: 'eval "$(gamma init {shell})"'
              pattern: gamma init
    next_steps:
      _default:
        - "Say hello"
      debian:
        - "Reload: source ~/.bashrc"
""")


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    """A three-tool manifest: alpha, beta (debian only), gamma."""
    path = tmp_path / "toolbelt.yml"
    path.write_text(SMALL_MANIFEST)
    return path
