"""
L3 Detection — Tool probe.

Read-only: "is this tool already on the machine?"  Absence is a
normal outcome, never an error.
"""

from __future__ import annotations

import glob
import logging
import os
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path

from toolbelt.core.models.tool import ToolDescriptor

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    name: str
    found: bool
    path: str | None = None
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def search_path(
    probe_paths: list[str] | None = None,
    env_overrides: dict[str, str] | None = None,
) -> str:
    """Build the PATH string a probe searches.

    ``probe_paths`` entries come first, with ``~`` and globs expanded
    (``~/.nvm/versions/node/*/bin``), followed by the effective PATH
    after ``env_overrides``.
    """
    dirs: list[str] = []
    for entry in probe_paths or []:
        expanded = os.path.expandvars(os.path.expanduser(entry))
        matches = sorted(glob.glob(expanded), reverse=True) if glob.has_magic(expanded) else [expanded]
        dirs.extend(matches)

    base = (env_overrides or {}).get("PATH") or os.environ.get("PATH", "")
    if base:
        dirs.append(base)
    return os.pathsep.join(dirs)


def probe_tool(
    descriptor: ToolDescriptor,
    env_overrides: dict[str, str] | None = None,
) -> ProbeResult:
    """Check whether a descriptor's executables (or marker file) exist.

    Args:
        descriptor: Tool to probe.
        env_overrides: Accumulated ``post_env`` of the current run.

    Returns:
        ``ProbeResult``; ``path`` is the first resolved executable.
    """
    if descriptor.probe_file:
        marker = Path(os.path.expanduser(descriptor.probe_file))
        if marker.exists():
            logger.info("%s is already installed (%s)", descriptor.name, marker)
            return ProbeResult(descriptor.name, True, str(marker))
        logger.debug("%s not found", descriptor.name)
        return ProbeResult(descriptor.name, False, missing=[str(marker)])

    path = search_path(descriptor.probe_paths, env_overrides)
    resolved: list[str] = []
    missing: list[str] = []
    for exe in descriptor.probe:
        hit = shutil.which(exe, path=path)
        if hit:
            resolved.append(hit)
        else:
            missing.append(exe)

    if missing:
        logger.debug("%s not found (missing: %s)", descriptor.name, ", ".join(missing))
        return ProbeResult(descriptor.name, False, resolved[0] if resolved else None, missing)

    logger.info("%s is already installed (%s)", descriptor.name, resolved[0])
    return ProbeResult(descriptor.name, True, resolved[0])
