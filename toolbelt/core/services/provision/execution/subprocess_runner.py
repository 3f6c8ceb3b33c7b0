"""
L4 Execution — Command runner for install steps.

Every install, post-install and repository command goes through
``_run_subprocess``; executors only build argument lists and read
the result dict back.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from typing import Any

from toolbelt.core.services.provision.data.constants import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


def _run_subprocess(
    cmd: list[str],
    *,
    needs_sudo: bool = False,
    timeout: int = DEFAULT_TIMEOUT,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """Run one install command and report how it went.

    Sudo is a plain ``sudo`` prefix: it prompts on the controlling
    terminal and caches credentials for the rest of the run.  stdout
    and stderr are captured; stdin is inherited for that prompt.

    Args:
        cmd: Argument list, without any ``sudo`` prefix.
        needs_sudo: Prefix ``sudo`` unless already running as root.
        timeout: Seconds before the step counts as failed.
        env_overrides: ``post_env`` values layered over ``os.environ``;
            ``$VAR`` references in them are expanded.
        cwd: Working directory for the command.
        dry_run: Log the command and report success without running it.

    Returns:
        ``ok`` plus ``stdout`` and ``elapsed_ms``; failures add ``error``
        and, when the command ran, its ``stderr`` tail.
    """
    if needs_sudo and os.geteuid() != 0:
        cmd = ["sudo"] + cmd

    if dry_run:
        logger.info("[dry-run] %s", shlex.join(cmd))
        return {"ok": True, "dry_run": True, "stdout": "", "elapsed_ms": 0}

    env = os.environ.copy()
    if env_overrides:
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    logger.debug("Running: %s", shlex.join(cmd))

    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if result.returncode == 0:
            return {
                "ok": True,
                "stdout": result.stdout[-2000:] if result.stdout else "",
                "elapsed_ms": elapsed_ms,
            }

        return {
            "ok": False,
            "error": f"Command failed (exit {result.returncode}): {shlex.join(cmd)}",
            "stderr": result.stderr[-2000:] if result.stderr else "",
            "stdout": result.stdout[-2000:] if result.stdout else "",
            "elapsed_ms": elapsed_ms,
        }

    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s): {shlex.join(cmd)}"}
    except OSError as e:
        logger.debug("Subprocess error: %s", cmd, exc_info=True)
        return {"ok": False, "error": f"Cannot run {cmd[0]}: {e}"}
