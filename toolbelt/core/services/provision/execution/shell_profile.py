"""
L4 Execution — Shell startup file edits.

The single "ensure line present" primitive.  Every PATH export and
shell hook goes through ``ensure_line_present`` so repeated runs never
duplicate a line.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from toolbelt.core.services.provision.data.profile_maps import _PROFILE_MAP

logger = logging.getLogger(__name__)


def resolve_profile_path(
    shell: str,
    file: str | None = None,
    *,
    target: str = "rc",
) -> Path:
    """Pick the startup file a line belongs in.

    Args:
        shell: Shell name (basename of ``$SHELL``).
        file: Explicit path; wins over the shell mapping.
        target: ``"rc"`` (interactive) or ``"login"`` profile.
    """
    if file:
        return Path(os.path.expanduser(file))
    info = _PROFILE_MAP.get(shell, _PROFILE_MAP["sh"])
    key = "login_profile" if target == "login" else "rc_file"
    return Path(os.path.expanduser(info[key]))


def read_profile(path: Path) -> str:
    """Current content of a startup file, "" when it does not exist.

    Bytes that are not UTF-8 (a Latin-1 comment) survive as surrogate
    escapes so the substring check still works on the rest.
    """
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def ensure_line_present(path: Path, line: str, pattern: str | None = None) -> bool:
    """Append ``line`` to ``path`` unless ``pattern`` already occurs in it.

    Args:
        path: Startup file; it and its parent directory are created if
            missing.
        line: Line to append (without trailing newline).
        pattern: Substring that counts as "already present"; defaults
            to ``line`` itself.

    Returns:
        True if the file was written, False if the line was present.

    Raises:
        OSError: If the file cannot be read or written.
    """
    needle = pattern or line
    existing = read_profile(path)

    if needle in existing:
        logger.debug("%s already contains %r", path, needle)
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(f"{line}\n")

    logger.info("Added to %s: %s", path, line)
    return True
