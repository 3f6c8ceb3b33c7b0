"""
L5 Orchestration — The probe-then-install loop.

Walks a platform table in install order: probe each tool, install the
absent ones, fold ``post_env`` into the environment of every later
step, and stop at the first hard failure.  The verification report is
built whatever happened.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from toolbelt.core.models.tool import Manifest, ToolDescriptor
from toolbelt.core.services.provision.detection.platform import PlatformInfo
from toolbelt.core.services.provision.detection.probe import probe_tool
from toolbelt.core.services.provision.detection.verification import (
    VerificationReport,
    build_report,
)
from toolbelt.core.services.provision.execution.config import merge_post_env
from toolbelt.core.services.provision.execution.strategies import (
    InstallSession,
    apply_post_install,
    install_tool,
)

logger = logging.getLogger(__name__)

# Step statuses
PRESENT = "present"
INSTALLED = "installed"
PROVIDED = "provided"
WARNING = "warning"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class StepOutcome:
    name: str
    group: str
    status: str
    group_label: str = ""
    path: str | None = None
    error: str | None = None
    stderr: str | None = None
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        d = {
            "name": self.name,
            "group": self.group,
            "group_label": self.group_label or self.group,
            "status": self.status,
            "elapsed_ms": self.elapsed_ms,
        }
        for key in ("path", "error", "stderr"):
            value = getattr(self, key)
            if value:
                d[key] = value
        if self.warnings:
            d["warnings"] = self.warnings
        if self.notes:
            d["notes"] = self.notes
        return d


@dataclass
class RunReport:
    family: str
    dry_run: bool = False
    steps: list[StepOutcome] = field(default_factory=list)
    verification: VerificationReport | None = None
    env_overrides: dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> StepOutcome | None:
        for step in self.steps:
            if step.status == FAILED:
                return step
        return None

    @property
    def ok(self) -> bool:
        return self.failed is None

    def count(self, status: str) -> int:
        return sum(1 for s in self.steps if s.status == status)

    def to_dict(self) -> dict:
        failed = self.failed
        return {
            "ok": self.ok,
            "family": self.family,
            "dry_run": self.dry_run,
            "failed": failed.name if failed else None,
            "steps": [s.to_dict() for s in self.steps],
            "verification": self.verification.to_dict() if self.verification else None,
        }


def _provision_one(
    tool: ToolDescriptor,
    platform: PlatformInfo,
    session: InstallSession,
    env_overrides: dict[str, str],
) -> tuple[StepOutcome, dict[str, str]]:
    """Probe one tool and install it if absent.

    Returns the outcome and the environment overrides for later steps.
    """
    outcome = StepOutcome(name=tool.name, group=tool.group, status=PRESENT)
    probe = probe_tool(tool, env_overrides)

    if probe.found:
        outcome.path = probe.path
        env_overrides = merge_post_env(env_overrides, tool.post_env)
        post = apply_post_install(
            tool, platform, fresh=False,
            dry_run=session.dry_run, env_overrides=env_overrides,
        )
        if not post["ok"]:
            outcome.status = WARNING
            outcome.warnings = post["warnings"]
        return outcome, env_overrides

    if tool.provided_by:
        outcome.status = PROVIDED
        outcome.warnings = [f"expected from {tool.provided_by}, not found on PATH"]
        logger.warning("%s should come with %s but was not found", tool.name, tool.provided_by)
        return outcome, env_overrides

    result = install_tool(
        tool, platform,
        dry_run=session.dry_run,
        env_overrides=env_overrides or None,
        session=session,
    )
    if not result["ok"]:
        outcome.error = result.get("error", "install failed")
        outcome.stderr = result.get("stderr") or None
        if tool.optional:
            outcome.status = WARNING
            logger.warning("Optional tool %s failed to install: %s", tool.name, outcome.error)
        else:
            outcome.status = FAILED
            logger.error("Failed to install %s: %s", tool.name, outcome.error)
        return outcome, env_overrides

    outcome.status = INSTALLED
    env_overrides = merge_post_env(env_overrides, tool.post_env)

    if not session.dry_run:
        reprobe = probe_tool(tool, env_overrides)
        outcome.path = reprobe.path
        if not reprobe.found:
            outcome.status = WARNING
            outcome.warnings.append(
                f"installed but not found on PATH (missing: {', '.join(reprobe.missing)})"
            )

    post = apply_post_install(
        tool, platform, fresh=True,
        dry_run=session.dry_run, env_overrides=env_overrides,
    )
    if not post["ok"]:
        outcome.status = WARNING
        outcome.warnings.extend(post["warnings"])

    outcome.notes = list(tool.notes)
    for note in tool.notes:
        logger.warning("%s: %s", tool.name, note)

    return outcome, env_overrides


def run_provisioning(
    manifest: Manifest,
    platform: PlatformInfo,
    *,
    family: str | None = None,
    dry_run: bool = False,
    only: list[str] | None = None,
    on_step: Callable[[StepOutcome], None] | None = None,
) -> RunReport:
    """Provision every tool of the platform table.

    Args:
        manifest: Loaded version manifest.
        platform: Detected host platform.
        family: Platform family to provision (default: ``platform.family``).
        dry_run: Log every action instead of performing it.
        only: Restrict the run to these tool names.
        on_step: Called with each ``StepOutcome`` as it is decided.

    Returns:
        ``RunReport``; ``ok`` is False if any hard failure happened.
    """
    family = family or platform.family or ""
    table = manifest.tools_for(family, only)
    session = InstallSession(platform=platform, dry_run=dry_run)
    report = RunReport(family=family, dry_run=dry_run)
    env_overrides: dict[str, str] = {}

    logger.info("Provisioning %d tools for %s%s", len(table), family, " (dry run)" if dry_run else "")

    aborted = False
    for tool in table:
        if aborted:
            outcome = StepOutcome(name=tool.name, group=tool.group, status=SKIPPED)
        else:
            start = time.monotonic()
            outcome, env_overrides = _provision_one(tool, platform, session, env_overrides)
            outcome.elapsed_ms = int((time.monotonic() - start) * 1000)
            aborted = outcome.status == FAILED
        outcome.group_label = manifest.group_label(tool.group)

        report.steps.append(outcome)
        if on_step:
            on_step(outcome)

    report.env_overrides = env_overrides
    report.verification = build_report(table, env_overrides=env_overrides)

    if aborted:
        logger.error("Provisioning stopped at %s", report.failed.name)
    return report
