"""
L4 Execution — Install strategy executors.

Each ``_install_*`` function handles one strategy variant.  All of
them return a result dict (``{"ok": True, ...}`` or ``{"ok": False,
"error": ...}``) and use ``_run_subprocess`` for command execution.
``install_tool`` dispatches on the descriptor's strategy for the
current platform.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from toolbelt.core.models.tool import (
    AptRepository,
    DownloadStrategy,
    EcosystemStrategy,
    PackageStrategy,
    ScriptStrategy,
    ToolDescriptor,
)
from toolbelt.core.services.provision.detection.platform import PlatformInfo
from toolbelt.core.services.provision.execution.config import (
    _render_template,
    template_inputs,
)
from toolbelt.core.services.provision.execution.download import (
    _verify_checksum,
    download_file,
    download_script,
    extract_archive,
    fetch_text,
    parse_checksum_file,
)
from toolbelt.core.services.provision.execution.shell_profile import (
    ensure_line_present,
    read_profile,
    resolve_profile_path,
)
from toolbelt.core.services.provision.execution.subprocess_runner import _run_subprocess

logger = logging.getLogger(__name__)

_NVM_SCRIPT = "~/.nvm/nvm.sh"
_NVM_SOURCE = 'export NVM_DIR="$HOME/.nvm"; . "$NVM_DIR/nvm.sh"'


@dataclass
class InstallSession:
    """Per-run state shared by every install step.

    Package indexes are refreshed at most once per run and ``latest``
    versions are resolved at most once per tool.
    """

    platform: PlatformInfo
    dry_run: bool = False
    refreshed: set[str] = field(default_factory=set)
    tapped: set[str] = field(default_factory=set)
    resolved_versions: dict[str, str] = field(default_factory=dict)


# ── Package managers ────────────────────────────────────────────


def _package_manager(strategy: PackageStrategy, platform: PlatformInfo) -> str:
    if strategy.manager:
        return strategy.manager
    return "brew" if platform.family == "macos" else "apt"


def _build_pkg_install_cmd(packages: list[str], pm: str) -> list[str]:
    """Build a package-install command for a list of packages."""
    if pm == "apt":
        return ["apt-get", "install", "-y"] + packages
    if pm == "brew":
        return ["brew", "install"] + packages
    raise ValueError(f"No install command for package manager: {pm}")


def _refresh_index(
    pm: str,
    session: InstallSession,
    *,
    env_overrides: dict[str, str] | None,
    timeout: int,
) -> dict[str, Any]:
    """``apt-get update`` / ``brew update``, once per run."""
    if pm in session.refreshed:
        return {"ok": True, "skipped": True}

    cmd = ["apt-get", "update"] if pm == "apt" else ["brew", "update"]
    result = _run_subprocess(
        cmd,
        needs_sudo=(pm == "apt"),
        timeout=timeout,
        env_overrides=env_overrides,
        dry_run=session.dry_run,
    )
    if result["ok"]:
        session.refreshed.add(pm)
    return result


def _setup_apt_repository(
    repo: AptRepository,
    session: InstallSession,
    *,
    env_overrides: dict[str, str] | None,
    timeout: int,
) -> dict[str, Any]:
    """Install a signing key and source list for a third-party apt repo."""
    list_path = Path(f"/etc/apt/sources.list.d/{repo.name}.list")
    if Path(repo.keyring).is_file() and list_path.is_file():
        logger.debug("apt repository %s already configured", repo.name)
        return {"ok": True, "skipped": True}

    source = _render_template(repo.source, template_inputs(session.platform))

    if session.dry_run:
        logger.info("[dry-run] add apt key %s → %s", repo.key_url, repo.keyring)
        logger.info("[dry-run] write %s: %s", list_path, source)
        return {"ok": True, "dry_run": True}

    tmp_dir = Path(tempfile.mkdtemp(prefix="toolbelt_repo_"))
    try:
        key_file = tmp_dir / "key"
        fetched = download_file(repo.key_url, key_file)
        if not fetched["ok"]:
            return fetched

        # ASCII-armored keys are dearmored first
        if key_file.read_bytes().lstrip().startswith(b"-----BEGIN"):
            dearmored = tmp_dir / "key.gpg"
            result = _run_subprocess(
                ["gpg", "--dearmor", "-o", str(dearmored), str(key_file)],
                timeout=timeout,
                env_overrides=env_overrides,
            )
            if not result["ok"]:
                return result
            key_file = dearmored

        list_file = tmp_dir / "source.list"
        list_file.write_text(source + "\n", encoding="utf-8")

        for src, dest in ((key_file, repo.keyring), (list_file, str(list_path))):
            result = _run_subprocess(
                ["install", "-D", "-m", "0644", str(src), dest],
                needs_sudo=True,
                timeout=timeout,
                env_overrides=env_overrides,
            )
            if not result["ok"]:
                return result
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)

    # The new source needs a fresh index
    session.refreshed.discard("apt")
    return {"ok": True, "message": f"Repository {repo.name} configured"}


def _install_package(
    descriptor: ToolDescriptor,
    strategy: PackageStrategy,
    session: InstallSession,
    *,
    env_overrides: dict[str, str] | None = None,
) -> dict[str, Any]:
    pm = _package_manager(strategy, session.platform)

    if strategy.repository and pm == "apt":
        result = _setup_apt_repository(
            strategy.repository, session,
            env_overrides=env_overrides, timeout=strategy.timeout,
        )
        if not result["ok"]:
            return result

    if strategy.tap and pm == "brew" and strategy.tap not in session.tapped:
        result = _run_subprocess(
            ["brew", "tap", strategy.tap],
            timeout=strategy.timeout,
            env_overrides=env_overrides,
            dry_run=session.dry_run,
        )
        if not result["ok"]:
            return result
        session.tapped.add(strategy.tap)

    result = _refresh_index(
        pm, session, env_overrides=env_overrides, timeout=strategy.timeout,
    )
    if not result["ok"]:
        return result

    result = _run_subprocess(
        _build_pkg_install_cmd(strategy.packages, pm),
        needs_sudo=(pm == "apt"),
        timeout=strategy.timeout,
        env_overrides=env_overrides,
        dry_run=session.dry_run,
    )
    if result["ok"]:
        result["strategy"] = "package"
        result["packages"] = strategy.packages
    return result


# ── Direct download ─────────────────────────────────────────────


def _resolve_version(
    descriptor: ToolDescriptor,
    strategy: DownloadStrategy,
    session: InstallSession,
) -> dict[str, Any]:
    """Turn the manifest version into a concrete one (``latest`` → stable.txt)."""
    if descriptor.version != "latest":
        return {"ok": True, "version": descriptor.version}

    cached = session.resolved_versions.get(descriptor.name)
    if cached:
        return {"ok": True, "version": cached}

    if session.dry_run:
        return {"ok": True, "version": "latest"}

    fetched = fetch_text(strategy.version_url or "")
    if not fetched["ok"]:
        return fetched
    version = fetched["text"].splitlines()[0].strip() if fetched["text"] else ""
    if not version:
        return {"ok": False, "error": f"Empty version from {strategy.version_url}"}

    session.resolved_versions[descriptor.name] = version
    logger.info("Resolved %s latest → %s", descriptor.name, version)
    return {"ok": True, "version": version}


def _asset_name(url: str) -> str:
    return unquote(urlparse(url).path.rsplit("/", 1)[-1]) or "download"


def _install_download(
    descriptor: ToolDescriptor,
    strategy: DownloadStrategy,
    session: InstallSession,
    *,
    env_overrides: dict[str, str] | None = None,
) -> dict[str, Any]:
    resolved = _resolve_version(descriptor, strategy, session)
    if not resolved["ok"]:
        return resolved
    version = resolved["version"]

    inputs = template_inputs(
        session.platform,
        version=version,
        arch_map=strategy.arch_map,
        os_map=strategy.os_map,
    )
    url = _render_template(strategy.url, inputs)
    install_dir = Path(os.path.expanduser(_render_template(strategy.install_dir, inputs)))
    needs_sudo = strategy.needs_sudo
    if needs_sudo is None:
        needs_sudo = not os.access(install_dir, os.W_OK)

    if session.dry_run:
        logger.info("[dry-run] download %s", url)
        for binary in strategy.binaries:
            logger.info("[dry-run] install %s → %s", binary.name, install_dir / binary.name)
        if strategy.run:
            logger.info("[dry-run] run %s", shlex.join(strategy.run))
        return {"ok": True, "dry_run": True, "strategy": "download", "version": version}

    tmp_dir = Path(tempfile.mkdtemp(prefix="toolbelt_"))
    try:
        asset = tmp_dir / _asset_name(url)
        result = download_file(url, asset)
        if not result["ok"]:
            return result

        expected = strategy.checksum
        if not expected and strategy.checksum_url:
            sums = fetch_text(_render_template(strategy.checksum_url, inputs))
            if not sums["ok"]:
                return sums
            expected = parse_checksum_file(sums["text"], asset.name)
            if not expected:
                return {"ok": False, "error": f"No checksum for {asset.name} in checksum file"}
        if expected:
            if not _verify_checksum(asset, expected):
                return {"ok": False, "error": f"Checksum mismatch for {asset.name}"}
            logger.debug("Checksum verified for %s", asset.name)

        extract_dir = tmp_dir / "extracted"
        result = extract_archive(asset, extract_dir)
        if not result["ok"]:
            return result

        if strategy.run:
            result = _run_subprocess(
                [_render_template(arg, inputs) for arg in strategy.run],
                timeout=strategy.timeout,
                env_overrides=env_overrides,
                cwd=str(extract_dir),
            )
            if not result["ok"]:
                return result

        installed: list[str] = []
        for binary in strategy.binaries:
            src = extract_dir / _render_template(binary.path, inputs)
            if not src.is_file():
                available = [p.name for p in extract_dir.rglob("*") if p.is_file()]
                return {
                    "ok": False,
                    "error": f"Binary '{binary.path}' not found in {asset.name}",
                    "available_files": available[:10],
                }
            target = install_dir / binary.name
            if needs_sudo:
                result = _run_subprocess(
                    ["install", "-m", "0755", str(src), str(target)],
                    needs_sudo=True,
                    timeout=strategy.timeout,
                    env_overrides=env_overrides,
                )
                if not result["ok"]:
                    return result
            else:
                install_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, target)
                os.chmod(target, 0o755)
            installed.append(str(target))
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)

    return {"ok": True, "strategy": "download", "version": version, "paths": installed}


# ── Remote installer script ─────────────────────────────────────


def _install_script(
    descriptor: ToolDescriptor,
    strategy: ScriptStrategy,
    session: InstallSession,
    *,
    env_overrides: dict[str, str] | None = None,
) -> dict[str, Any]:
    inputs = template_inputs(session.platform, version=descriptor.version)
    url = _render_template(strategy.url, inputs)
    args = [_render_template(a, inputs) for a in strategy.args]

    if session.dry_run:
        logger.info("[dry-run] %s <(%s) %s", strategy.interpreter, url, shlex.join(args))
        return {"ok": True, "dry_run": True, "strategy": "script"}

    if strategy.prime_sudo and os.geteuid() != 0:
        primed = _run_subprocess(["sudo", "-v"], timeout=strategy.timeout)
        if not primed["ok"]:
            return primed

    fetched = download_script(url, strategy.sha256)
    if not fetched["ok"]:
        return fetched

    script_path = fetched["path"]
    try:
        cmd = [strategy.interpreter, script_path] + args
        env = dict(env_overrides or {})
        if strategy.env:
            if strategy.needs_sudo:
                # sudo resets the environment; pass variables explicitly
                cmd = ["env"] + [f"{k}={v}" for k, v in strategy.env.items()] + cmd
            else:
                env.update(strategy.env)
        result = _run_subprocess(
            cmd,
            needs_sudo=strategy.needs_sudo,
            timeout=strategy.timeout,
            env_overrides=env or None,
        )
    finally:
        Path(script_path).unlink(missing_ok=True)

    if result["ok"]:
        result["strategy"] = "script"
        result["sha256"] = fetched["sha256"]
    return result


# ── Language ecosystems ─────────────────────────────────────────


def _install_ecosystem(
    descriptor: ToolDescriptor,
    strategy: EcosystemStrategy,
    session: InstallSession,
    *,
    env_overrides: dict[str, str] | None = None,
) -> dict[str, Any]:
    words = shlex.join(strategy.args + strategy.packages)

    if strategy.manager == "pip":
        cmd = ["pip3", "install"] + strategy.args + strategy.packages
    elif strategy.manager == "nvm":
        cmd = ["bash", "-c", f"{_NVM_SOURCE} && nvm install {words}"]
    elif Path(os.path.expanduser(_NVM_SCRIPT)).is_file():
        # npm lives inside the nvm-managed node
        cmd = ["bash", "-c", f"{_NVM_SOURCE} && npm install -g {words}"]
    else:
        cmd = ["npm", "install", "-g"] + strategy.args + strategy.packages

    result = _run_subprocess(
        cmd,
        needs_sudo=strategy.needs_sudo,
        timeout=strategy.timeout,
        env_overrides=env_overrides,
        dry_run=session.dry_run,
    )
    if result["ok"]:
        result["strategy"] = "ecosystem"
        result["manager"] = strategy.manager
    return result


# ── Dispatch ────────────────────────────────────────────────────

_EXECUTORS = {
    "package": _install_package,
    "download": _install_download,
    "script": _install_script,
    "ecosystem": _install_ecosystem,
}


def install_tool(
    descriptor: ToolDescriptor,
    platform: PlatformInfo,
    *,
    dry_run: bool = False,
    env_overrides: dict[str, str] | None = None,
    session: InstallSession | None = None,
) -> dict[str, Any]:
    """Install one tool with the strategy declared for this platform.

    Args:
        descriptor: Tool to install.
        platform: Detected host platform.
        dry_run: Log every action instead of performing it.
        env_overrides: Accumulated ``post_env`` of earlier steps.
        session: Run-wide state; a fresh one is created when omitted.

    Returns:
        ``{"ok": True, "strategy": "...", ...}`` on success,
        ``{"ok": False, "error": "...", ...}`` on failure.
    """
    if session is None:
        session = InstallSession(platform=platform, dry_run=dry_run)

    strategy = descriptor.strategy_for(platform.family or "")
    if strategy is None:
        return {
            "ok": False,
            "error": f"No install strategy for {descriptor.name} on {platform.family}",
        }

    logger.info("Installing %s via %s", descriptor.name, strategy.strategy)
    try:
        return _EXECUTORS[strategy.strategy](
            descriptor, strategy, session, env_overrides=env_overrides,
        )
    except (OSError, ValueError) as e:
        logger.debug("Install of %s raised", descriptor.name, exc_info=True)
        return {"ok": False, "error": f"{descriptor.name}: {e}"}


# ── Post-install actions ────────────────────────────────────────


def apply_post_install(
    descriptor: ToolDescriptor,
    platform: PlatformInfo,
    *,
    fresh: bool,
    dry_run: bool = False,
    env_overrides: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Ensure profile lines and symlinks; run commands after a fresh install.

    Every failure here is soft: it is collected in ``warnings`` and the
    remaining actions still run.

    Returns:
        ``{"ok": bool, "warnings": [...], "lines_added": N, "links_created": N}``
    """
    post = descriptor.post_install
    inputs = template_inputs(platform, version=descriptor.version)
    warnings: list[str] = []
    lines_added = 0
    links_created = 0

    for entry in post.profile:
        if entry.only_arch and platform.arch not in entry.only_arch:
            continue
        path = resolve_profile_path(platform.shell, entry.file, target=entry.target)
        line = _render_template(entry.line, inputs)
        pattern = _render_template(entry.search, inputs)
        if dry_run:
            try:
                present = pattern in read_profile(path)
            except OSError as e:
                warnings.append(f"Could not read {path}: {e}")
                continue
            if not present:
                logger.info("[dry-run] append to %s: %s", path, line)
            continue
        try:
            if ensure_line_present(path, line, pattern):
                lines_added += 1
        except (OSError, ValueError) as e:
            warnings.append(f"Could not update {path}: {e}")

    for link in post.symlinks:
        source = Path(os.path.expanduser(link.source))
        target = Path(os.path.expanduser(link.target))
        if not source.exists() or target.exists() or target.is_symlink():
            continue
        if dry_run:
            logger.info("[dry-run] ln -s %s %s", source, target)
            continue
        needs_sudo = link.needs_sudo and not os.access(target.parent, os.W_OK)
        if needs_sudo:
            result = _run_subprocess(
                ["ln", "-s", str(source), str(target)],
                needs_sudo=True,
                timeout=30,
            )
            if not result["ok"]:
                warnings.append(result["error"])
                continue
        else:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.symlink_to(source)
            except OSError as e:
                warnings.append(f"Could not link {target} → {source}: {e}")
                continue
        logger.info("Linked %s → %s", target, source)
        links_created += 1

    if fresh:
        for command in post.commands:
            result = _run_subprocess(
                [_render_template(arg, inputs) for arg in command.command],
                needs_sudo=command.needs_sudo,
                timeout=command.timeout,
                env_overrides=env_overrides,
                dry_run=dry_run,
            )
            if not result["ok"]:
                warnings.append(result["error"])

    for warning in warnings:
        logger.warning("%s: %s", descriptor.name, warning)

    return {
        "ok": not warnings,
        "warnings": warnings,
        "lines_added": lines_added,
        "links_created": links_created,
    }
