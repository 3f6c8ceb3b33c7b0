"""
L0 Data — Shell profile/rc file mappings.

Maps shell types to their startup file paths.
"""

from __future__ import annotations

_PROFILE_MAP: dict[str, dict[str, str]] = {
    "bash": {"rc_file": "~/.bashrc", "login_profile": "~/.bash_profile"},
    "zsh": {"rc_file": "~/.zshrc", "login_profile": "~/.zprofile"},
    "sh": {"rc_file": "~/.profile", "login_profile": "~/.profile"},
    "dash": {"rc_file": "~/.profile", "login_profile": "~/.profile"},
}
