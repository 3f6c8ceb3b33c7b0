"""
L4 Execution — Template rendering and environment expansion.

Renders manifest templates with platform-sourced built-in variables
and expands ``$VAR`` references in ``post_env`` values.
"""

from __future__ import annotations

import getpass
import os
import re
from pathlib import Path

from toolbelt.core.services.provision.detection.platform import PlatformInfo

_VAR_RE = re.compile(r"\$(\w+)|\$\{(\w+)\}")


def template_inputs(
    platform: PlatformInfo,
    *,
    version: str = "",
    arch_map: dict[str, str] | None = None,
    os_map: dict[str, str] | None = None,
) -> dict[str, str]:
    """Variables available to a tool's templates on this platform.

    ``arch_map`` / ``os_map`` rename the Go-style defaults for upstreams
    with their own asset naming (``amd64`` → ``x86_64``).
    """
    arch_map = arch_map or {}
    os_map = os_map or {}
    return {
        "version": version,
        "arch": arch_map.get(platform.arch, platform.arch),
        "os": os_map.get(platform.os, platform.os),
        "shell": platform.shell,
        "distro": platform.distro,
    }


def _render_template(template: str, inputs: dict) -> str:
    """Substitute ``{var}`` placeholders with input values.

    Simple string replacement — no Jinja, no escaping.  Unknown
    placeholders are left untouched so shell syntax such as
    ``${KREW_ROOT:-$HOME/.krew}`` passes through.

    **Built-in variables** are merged under ``inputs``:

    - ``{user}`` — current username
    - ``{home}`` — home directory
    - ``{nproc}`` — CPU core count
    """
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    builtins = {
        "user": user,
        "home": str(Path.home()),
        "nproc": str(os.cpu_count() or 1),
    }
    merged = {**builtins, **inputs}

    result = template
    for key, value in merged.items():
        result = result.replace(f"{{{key}}}", str(value))
    return result


def _expand_vars(value: str, env: dict[str, str]) -> str:
    """Expand ``$VAR`` / ``${VAR}`` against ``env``; unknown vars stay literal."""
    def _sub(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        return env.get(name, match.group(0))

    return _VAR_RE.sub(_sub, value)


def merge_post_env(
    env_overrides: dict[str, str],
    post_env: dict[str, str],
) -> dict[str, str]:
    """Fold a tool's ``post_env`` into the run's accumulated overrides.

    Each value is expanded against the environment as it stands *with*
    earlier overrides applied, so ``PATH: $HOME/.krew/bin:$PATH``
    followed by ``PATH: $HOME/.local/bin:$PATH`` keeps both entries.
    """
    merged = dict(env_overrides)
    for key, value in post_env.items():
        current = {**os.environ, **merged}
        merged[key] = _expand_vars(value, current)
    return merged
