"""
L3 Detection — Tool version checking.

Read-only probes: runs a tool's version command and extracts the
version number from its output.
"""

from __future__ import annotations

import os
import re
import subprocess

from toolbelt.core.services.provision.detection.probe import search_path

_VERSION_RE = re.compile(r"v?(\d+\.\d+(?:\.\d+)?)")


def get_tool_version(
    cmd: list[str],
    *,
    probe_paths: list[str] | None = None,
    env_overrides: dict[str, str] | None = None,
) -> str | None:
    """Run ``cmd`` and return the first version-looking token.

    Returns:
        Version string (e.g. ``"0.24.0"``) or ``None`` if the command
        is missing, fails, or prints nothing recognisable.
    """
    if not cmd:
        return None

    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)
    env["PATH"] = search_path(probe_paths, env_overrides)

    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, timeout=10, env=env,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None

    # Some tools write their version to stderr
    output = (result.stdout or "") + (result.stderr or "")
    match = _VERSION_RE.search(output)
    return match.group(1) if match else None
