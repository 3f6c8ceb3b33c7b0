"""
Tests for manifest loading — YAML parsing, deduplication, resolution.
"""

import logging
import textwrap
from pathlib import Path

import pytest

from toolbelt.core.config.loader import (
    ConfigError,
    find_manifest_file,
    load_manifest,
    resolve_manifest_path,
)
from toolbelt.core.data import DEFAULT_MANIFEST
from toolbelt.core.models.tool import DownloadStrategy, PackageStrategy


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "toolbelt.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestLoadManifest:
    def test_load_small_manifest(self, manifest_file: Path):
        manifest = load_manifest(manifest_file)
        assert [t.name for t in manifest.tools] == ["alpha", "beta", "gamma"]
        assert manifest.group_label("extras") == "Extras"
        assert manifest.next_steps["_default"] == ["Say hello"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_manifest(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write(tmp_path, "tools: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_manifest(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_manifest(path)

    def test_schema_error(self, tmp_path: Path):
        path = _write(tmp_path, """\
            groups: [{id: base}]
            tools:
              - name: broken
                group: base
                install:
                  debian:
                    strategy: teleport
                    packages: [x]
        """)
        with pytest.raises(ConfigError, match="Invalid manifest"):
            load_manifest(path)

    def test_unknown_checksum_algorithm(self, tmp_path: Path):
        path = _write(tmp_path, """\
            groups: [{id: base}]
            tools:
              - name: age
                group: base
                install:
                  debian:
                    strategy: download
                    url: https://example.invalid/age.tar.gz
                    binaries: [age]
                    checksum: "sha265:abcd"
        """)
        with pytest.raises(ConfigError, match="unsupported checksum algorithm"):
            load_manifest(path)

    def test_unknown_group(self, tmp_path: Path):
        path = _write(tmp_path, """\
            groups: [{id: base}]
            tools:
              - name: lost
                group: elsewhere
        """)
        with pytest.raises(ConfigError, match="unknown group"):
            load_manifest(path)


class TestDeduplication:
    def test_identical_duplicate_dropped(self, tmp_path: Path, caplog):
        path = _write(tmp_path, """\
            groups: [{id: base}]
            tools:
              - name: lazygit
                group: base
                version: "0.44.1"
                install:
                  _default: {strategy: package, packages: [lazygit]}
              - name: lazygit
                group: base
                version: "0.44.1"
                install:
                  _default: {strategy: package, packages: [lazygit]}
        """)
        with caplog.at_level(logging.WARNING):
            manifest = load_manifest(path)
        assert [t.name for t in manifest.tools] == ["lazygit"]
        assert "duplicate" in caplog.text

    def test_conflicting_duplicate_rejected(self, tmp_path: Path):
        path = _write(tmp_path, """\
            groups: [{id: base}]
            tools:
              - name: lazygit
                group: base
                version: "0.44.1"
              - name: lazygit
                group: base
                version: "0.40.0"
        """)
        with pytest.raises(ConfigError, match="defined twice"):
            load_manifest(path)


class TestResolution:
    def test_find_walks_up(self, tmp_path: Path):
        (tmp_path / "toolbelt.yml").write_text("version: 1\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_manifest_file(nested) == (tmp_path / "toolbelt.yml").resolve()

    def test_find_none(self, tmp_path: Path):
        assert find_manifest_file(tmp_path) is None

    def test_explicit_path_wins(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TOOLBELT_MANIFEST", "/elsewhere.yml")
        explicit = tmp_path / "x.yml"
        assert resolve_manifest_path(explicit) == explicit

    def test_env_var(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TOOLBELT_MANIFEST", str(tmp_path / "env.yml"))
        assert resolve_manifest_path() == tmp_path / "env.yml"

    def test_bundled_fallback(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("TOOLBELT_MANIFEST", raising=False)
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            "toolbelt.core.config.loader.find_manifest_file", lambda start_dir=None: None,
        )
        assert resolve_manifest_path() == DEFAULT_MANIFEST


class TestBundledManifest:
    """The manifest shipped with the package must load and be coherent."""

    @pytest.fixture(scope="class")
    def manifest(self):
        return load_manifest(DEFAULT_MANIFEST)

    def test_loads(self, manifest):
        assert len(manifest.tools) > 50

    def test_names_unique(self, manifest):
        names = [t.name for t in manifest.tools]
        assert len(names) == len(set(names))

    def test_lazygit_once(self, manifest):
        assert sum(1 for t in manifest.tools if t.name == "lazygit") == 1

    def test_kubectl_latest(self, manifest):
        kubectl = manifest.get("kubectl")
        strategy = kubectl.strategy_for("debian")
        assert kubectl.version == "latest"
        assert isinstance(strategy, DownloadStrategy)
        assert strategy.version_url.endswith("stable.txt")

    def test_cilium_checksums(self, manifest):
        strategy = manifest.get("cilium").strategy_for("debian")
        assert strategy.checksum_url.endswith(".sha256sum")

    def test_gh_repository(self, manifest):
        strategy = manifest.get("gh").strategy_for("debian")
        assert isinstance(strategy, PackageStrategy)
        assert strategy.repository.keyring.endswith("githubcli-archive-keyring.gpg")

    def test_bootstrap_first(self, manifest):
        assert manifest.tools_for("debian")[0].name == "base-dependencies"
        assert manifest.tools_for("macos")[0].name == "brew"

    def test_both_platforms_populated(self, manifest):
        debian = {t.name for t in manifest.tools_for("debian")}
        macos = {t.name for t in manifest.tools_for("macos")}
        assert "nvm" in debian and "nvm" not in macos
        assert "brew" in macos and "brew" not in debian
        assert {"kubectl", "podman", "gh", "tea", "trivy"} <= debian & macos
