"""
Manifest loader — reads the version manifest into domain models.

This is the primary entry point for loading tool configuration.
It reads YAML, deduplicates repeated tool entries, validates against
Pydantic schemas, and returns a typed ``Manifest``.

Resolution order for the manifest file:
    --manifest flag  >  TOOLBELT_MANIFEST  >  ./toolbelt.yml (walking up)
    >  manifest bundled with the package
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from toolbelt.core.data import DEFAULT_MANIFEST
from toolbelt.core.models.tool import Manifest

logger = logging.getLogger(__name__)

# Default override filename
MANIFEST_FILE = "toolbelt.yml"

MANIFEST_ENV = "TOOLBELT_MANIFEST"


class ConfigError(Exception):
    """Raised when the manifest is invalid or missing."""


def find_manifest_file(start_dir: Path | None = None) -> Path | None:
    """Search for toolbelt.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to toolbelt.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / MANIFEST_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def resolve_manifest_path(path: Path | None = None) -> Path:
    """Pick the manifest file to load (see module docstring for order)."""
    if path is not None:
        return path
    env_path = os.environ.get(MANIFEST_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return find_manifest_file() or DEFAULT_MANIFEST


def _dedupe_tools(tools: list) -> list:
    """Drop repeated tool entries.

    An identical repeat is dropped with a warning; a conflicting
    redefinition of the same name is a configuration error.
    """
    seen: dict[str, dict] = {}
    unique: list = []
    for entry in tools:
        if not isinstance(entry, dict) or "name" not in entry:
            unique.append(entry)  # let the schema report it
            continue
        name = entry["name"]
        if name in seen:
            if seen[name] != entry:
                raise ConfigError(f"Tool '{name}' is defined twice with different settings")
            logger.warning("Ignoring duplicate manifest entry for '%s'", name)
            continue
        seen[name] = entry
        unique.append(entry)
    return unique


def load_manifest(path: Path | None = None) -> Manifest:
    """Load and validate the version manifest.

    Args:
        path: Explicit path to a manifest. If None, see
            ``resolve_manifest_path``.

    Returns:
        Validated Manifest model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    path = resolve_manifest_path(path)

    if not path.is_file():
        raise ConfigError(f"Manifest file not found: {path}")

    logger.debug("Loading manifest from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    if isinstance(data.get("tools"), list):
        data["tools"] = _dedupe_tools(data["tools"])

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid manifest {path}: {e}") from e

    logger.info("Loaded manifest %s with %d tools", path, len(manifest.tools))
    return manifest
