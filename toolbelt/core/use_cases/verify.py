"""
Verify use case — report which manifest tools are on this machine.

Read-only: no preconditions beyond knowing which platform table to use.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from toolbelt.core.config.loader import ConfigError, load_manifest
from toolbelt.core.models.tool import PLATFORM_FAMILIES, Manifest
from toolbelt.core.services.provision import (
    VerificationReport,
    build_report,
    detect_platform,
)


def _resolve_family(platform_name: str | None) -> str | None:
    if platform_name:
        return platform_name
    return detect_platform().family


@dataclass
class VerifyResult:
    family: str = ""
    report: VerificationReport | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        result: dict = {"family": self.family}
        if self.report:
            result.update(self.report.to_dict())
        return result


def verify(
    manifest_path: Path | None = None,
    *,
    platform_name: str | None = None,
    with_versions: bool = False,
) -> VerifyResult:
    """Probe every tool of the platform table."""
    result = VerifyResult()

    family = _resolve_family(platform_name)
    if family not in PLATFORM_FAMILIES:
        result.error = "Unsupported operating system; pass --platform debian|macos"
        return result
    result.family = family

    try:
        manifest = load_manifest(manifest_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.report = build_report(manifest.tools_for(family), with_versions=with_versions)
    return result


@dataclass
class ListResult:
    family: str = ""
    manifest: Manifest | None = None
    error: str | None = None

    @property
    def rows(self) -> list[dict]:
        if self.manifest is None:
            return []
        rows = []
        for tool in self.manifest.tools_for(self.family):
            strategy = tool.strategy_for(self.family)
            rows.append({
                "name": tool.name,
                "version": tool.version or "-",
                "strategy": strategy.strategy if strategy else f"via {tool.provided_by}",
                "group": tool.group,
                "group_label": self.manifest.group_label(tool.group),
                "optional": tool.optional,
            })
        return rows

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"family": self.family, "tools": self.rows}


def list_tools(
    manifest_path: Path | None = None,
    *,
    platform_name: str | None = None,
) -> ListResult:
    """The platform table as the installer would walk it."""
    result = ListResult()

    family = _resolve_family(platform_name)
    if family not in PLATFORM_FAMILIES:
        result.error = "Unsupported operating system; pass --platform debian|macos"
        return result
    result.family = family

    try:
        result.manifest = load_manifest(manifest_path)
    except ConfigError as e:
        result.error = str(e)
    return result
