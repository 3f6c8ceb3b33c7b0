"""
L3 Detection — Verification report.

Re-probes every descriptor of a platform table and records one entry
per tool.  Never raises, never changes the caller's exit status.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from toolbelt.core.models.tool import ToolDescriptor
from toolbelt.core.services.provision.detection.probe import probe_tool
from toolbelt.core.services.provision.detection.tool_version import get_tool_version

logger = logging.getLogger(__name__)


@dataclass
class ReportEntry:
    name: str
    group: str
    found: bool
    path: str | None = None
    version: str | None = None
    optional: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class VerificationReport:
    entries: list[ReportEntry] = field(default_factory=list)

    @property
    def missing(self) -> list[str]:
        return [e.name for e in self.entries if not e.found]

    @property
    def all_found(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict:
        return {
            "all_found": self.all_found,
            "missing": self.missing,
            "tools": [e.to_dict() for e in self.entries],
        }


def build_report(
    tools: list[ToolDescriptor],
    *,
    env_overrides: dict[str, str] | None = None,
    with_versions: bool = False,
) -> VerificationReport:
    """Probe every descriptor and collect the results in table order."""
    report = VerificationReport()
    for tool in tools:
        result = probe_tool(tool, env_overrides)
        version = None
        if with_versions and result.found and tool.version_cmd:
            version = get_tool_version(
                tool.version_cmd,
                probe_paths=tool.probe_paths,
                env_overrides=env_overrides,
            )
        report.entries.append(ReportEntry(
            name=tool.name,
            group=tool.group,
            found=result.found,
            path=result.path,
            version=version,
            optional=tool.optional,
        ))

    logger.info(
        "Verification: %d/%d tools present",
        len(report.entries) - len(report.missing), len(report.entries),
    )
    return report
