"""
L0 Data — Module-level constants.

Pure data. No logic. No imports beyond stdlib.
"""

from __future__ import annotations

# Architecture name normalization.
#
# Release assets are named Go-style by default (amd64/arm64).  Tools
# that publish raw ``uname -m`` names (x86_64/aarch64) declare an
# ``arch_map`` on their download strategy, applied after this map.
_IARCH_MAP: dict[str, str] = {
    "x86_64": "amd64",
    "AMD64": "amd64",      # Windows / WSL2
    "aarch64": "arm64",
    "arm64": "arm64",      # macOS (Darwin reports arm64)
    "armv7l": "armhf",
    "i686": "i386",
    "i386": "i386",
}

# platform.system() → lowercase name used in asset URLs.
_OS_MAP: dict[str, str] = {
    "Linux": "linux",
    "Darwin": "darwin",
}

# Kernel name → platform family the manifest is keyed on.
_FAMILY_MAP: dict[str, str] = {
    "Linux": "debian",
    "Darwin": "macos",
}

# Oldest supported macOS major release (Monterey).
MIN_MACOS_MAJOR = 12

# Seconds before a single install command is abandoned.
DEFAULT_TIMEOUT = 600

# Socket timeout for HTTP fetches (seconds).
HTTP_TIMEOUT = 60

USER_AGENT = "toolbelt/0.1"
