"""
L3 Detection — Host platform and run preconditions.

Answers "which platform table applies here?" and refuses to start a
run the host cannot complete: running as root, a requested platform
that does not match the kernel, an unsupported OS, macOS older than
Monterey, or missing Xcode Command Line Tools.
"""

from __future__ import annotations

import logging
import os
import platform
import subprocess
from dataclasses import asdict, dataclass

from toolbelt.core.services.provision.data.constants import (
    _FAMILY_MAP,
    _IARCH_MAP,
    _OS_MAP,
    MIN_MACOS_MAJOR,
)

logger = logging.getLogger(__name__)


class PreconditionError(Exception):
    """The host cannot run the provisioning workflow."""


@dataclass
class PlatformInfo:
    """What the install templates and platform gate need to know."""

    system: str                 # platform.system(): "Linux" | "Darwin"
    family: str | None          # "debian" | "macos" | None (unsupported)
    machine: str                # raw uname -m
    arch: str                   # Go-style: amd64 | arm64
    os: str                     # asset naming: linux | darwin
    distro: str = ""
    version: str = ""           # macOS product version or VERSION_ID
    shell: str = "bash"

    def to_dict(self) -> dict:
        return asdict(self)


def _read_os_release(path: str = "/etc/os-release") -> dict[str, str]:
    fields: dict[str, str] = {}
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                key, sep, value = line.strip().partition("=")
                if sep:
                    fields[key] = value.strip('"')
    except (FileNotFoundError, OSError):
        pass
    return fields


def detect_platform() -> PlatformInfo:
    """Inspect the running host."""
    system = platform.system()
    machine = platform.machine()
    shell = os.path.basename(os.environ.get("SHELL", "/bin/bash")) or "bash"

    info = PlatformInfo(
        system=system,
        family=None,
        machine=machine,
        arch=_IARCH_MAP.get(machine, machine.lower()),
        os=_OS_MAP.get(system, system.lower()),
        shell=shell,
    )

    if system == "Darwin":
        info.family = "macos"
        info.distro = "macos"
        info.version = platform.mac_ver()[0]
    elif system == "Linux":
        release = _read_os_release()
        distro_id = release.get("ID", "")
        like = release.get("ID_LIKE", "").split()
        info.distro = distro_id or "linux"
        info.version = release.get("VERSION_ID", "")
        if distro_id in ("debian", "ubuntu") or "debian" in like or "ubuntu" in like:
            info.family = "debian"

    logger.debug("Detected platform: %s", info)
    return info


def _macos_major(version: str) -> int:
    try:
        return int(version.split(".")[0])
    except (ValueError, IndexError):
        return 0


def ensure_command_line_tools(*, dry_run: bool = False) -> None:
    """Require Xcode Command Line Tools on macOS.

    When they are missing the GUI installer is launched and the run
    stops; the operator re-runs once the installer has finished.
    """
    try:
        result = subprocess.run(
            ["xcode-select", "-p"],
            capture_output=True, text=True, timeout=30,
        )
        if result.returncode == 0:
            return
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass

    if not dry_run:
        logger.info("Launching the Xcode Command Line Tools installer")
        try:
            subprocess.run(["xcode-select", "--install"], timeout=60)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning("Could not launch xcode-select --install: %s", e)

    raise PreconditionError(
        "Xcode Command Line Tools are not installed. "
        "Complete the installer, then run toolbelt again."
    )


def check_preconditions(
    info: PlatformInfo,
    requested: str | None = None,
    *,
    dry_run: bool = False,
) -> str:
    """Validate the host before any install step runs.

    Args:
        info: Result of ``detect_platform()``.
        requested: Platform family forced with ``--platform``.
        dry_run: Do not launch the Xcode CLT installer.

    Returns:
        The platform family to provision.

    Raises:
        PreconditionError: On the first violated precondition.
    """
    if os.geteuid() == 0:
        raise PreconditionError(
            "Do not run toolbelt as root; it asks for sudo when a step needs it"
        )

    if requested:
        kernel_family = _FAMILY_MAP.get(info.system)
        if kernel_family != requested:
            raise PreconditionError(
                f"Platform '{requested}' cannot be provisioned on a {info.system} host"
            )
        family = requested
    else:
        family = info.family

    if family is None:
        raise PreconditionError(
            f"Unsupported operating system: {info.system} ({info.distro or 'unknown'})"
        )

    if family == "macos":
        if _macos_major(info.version) < MIN_MACOS_MAJOR:
            raise PreconditionError(
                f"macOS {MIN_MACOS_MAJOR} (Monterey) or later is required, "
                f"found {info.version or 'unknown'}"
            )
        ensure_command_line_tools(dry_run=dry_run)

    return family
