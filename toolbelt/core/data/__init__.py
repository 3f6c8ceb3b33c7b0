"""
Bundled static data.

``manifest.yml`` is the version manifest shipped with the package: every
tool, its pinned version and its per-platform install strategy.
"""

from __future__ import annotations

from pathlib import Path

_DATA_DIR = Path(__file__).parent

DEFAULT_MANIFEST: Path = _DATA_DIR / "manifest.yml"
