"""
Provision use case — gate the host, load the manifest, run the loop.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from toolbelt.core.config.loader import ConfigError, load_manifest
from toolbelt.core.models.tool import DEFAULT_KEY, Manifest
from toolbelt.core.services.provision import (
    PlatformInfo,
    PreconditionError,
    RunReport,
    StepOutcome,
    check_preconditions,
    detect_platform,
    run_provisioning,
)


@dataclass
class ProvisionResult:
    """Outcome of ``toolbelt install``."""

    family: str = ""
    platform: PlatformInfo | None = None
    run: RunReport | None = None
    next_steps: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.run is not None and self.run.ok

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
            return result
        result["platform"] = self.platform.to_dict() if self.platform else None
        if self.run:
            result.update(self.run.to_dict())
            result["ok"] = self.ok
        result["next_steps"] = self.next_steps
        return result


def next_steps_for(manifest: Manifest, family: str) -> list[str]:
    """Reminder lines for a platform: shared ones first."""
    return list(manifest.next_steps.get(DEFAULT_KEY, [])) + list(
        manifest.next_steps.get(family, [])
    )


def provision(
    manifest_path: Path | None = None,
    *,
    platform_name: str | None = None,
    dry_run: bool = False,
    only: list[str] | None = None,
    on_step: Callable[[StepOutcome], None] | None = None,
    info: PlatformInfo | None = None,
) -> ProvisionResult:
    """Provision the workstation.

    Args:
        manifest_path: Explicit manifest (default: resolution order of
            the loader).
        platform_name: Platform family forced with ``--platform``.
        dry_run: Log every action instead of performing it.
        only: Restrict the run to these tool names.
        on_step: Progress callback, see ``run_provisioning``.
        info: Pre-detected platform (default: ``detect_platform()``).

    Returns:
        ProvisionResult; ``error`` is set when the run never started.
    """
    result = ProvisionResult()
    info = info or detect_platform()
    result.platform = info

    try:
        family = check_preconditions(info, platform_name, dry_run=dry_run)
    except PreconditionError as e:
        result.error = str(e)
        return result
    result.family = family

    try:
        manifest = load_manifest(manifest_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if only:
        unknown = [name for name in only if manifest.get(name) is None]
        if unknown:
            result.error = f"Unknown tool(s): {', '.join(unknown)}"
            return result

    result.run = run_provisioning(
        manifest, info,
        family=family,
        dry_run=dry_run,
        only=only,
        on_step=on_step,
    )
    result.next_steps = next_steps_for(manifest, family)
    return result
