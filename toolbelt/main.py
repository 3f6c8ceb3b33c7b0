"""
toolbelt — CLI entrypoint.

Usage:
    toolbelt --help
    toolbelt install --dry-run
    toolbelt verify --versions
    toolbelt list --platform macos
    toolbelt assistant check .claude/settings.json
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from toolbelt import __version__
from toolbelt.core.models.tool import PLATFORM_FAMILIES
from toolbelt.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)

_STATUS_STYLE = {
    "present": ("✓", "green"),
    "installed": ("⬇", "green"),
    "provided": ("↳", "cyan"),
    "warning": ("⚠", "yellow"),
    "failed": ("✗", "red"),
    "skipped": ("⏭", "white"),
}

platform_option = click.option(
    "--platform",
    "platform_name",
    type=click.Choice(PLATFORM_FAMILIES),
    default=None,
    help="Platform table to use (default: detect).",
)


@click.group()
@click.version_option(version=__version__, prog_name="toolbelt")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--manifest",
    "-m",
    "manifest_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to the version manifest (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    manifest_path: str | None,
) -> None:
    """toolbelt — provision a developer workstation from one manifest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["manifest_path"] = Path(manifest_path) if manifest_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )


def _print_verification(report, *, quiet: bool = False) -> None:
    click.echo()
    click.secho("🔍 Verification", fg="cyan", bold=True)
    for entry in report.entries:
        if entry.found:
            if quiet:
                continue
            version = f" {entry.version}" if entry.version else ""
            click.echo("   ", nl=False)
            click.secho("✓", fg="green", nl=False)
            click.echo(f" {entry.name}{version}")
        else:
            click.echo("   ", nl=False)
            click.secho("✗", fg="red", nl=False)
            suffix = " (optional)" if entry.optional else ""
            click.echo(f" {entry.name}{suffix}")

    total = len(report.entries)
    present = total - len(report.missing)
    color = "green" if report.all_found else "yellow"
    click.secho(f"\n   {present}/{total} tools present", fg=color)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Show what would run without changing anything.")
@platform_option
@click.option("--only", multiple=True, help="Provision only this tool (repeatable).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    dry_run: bool,
    platform_name: str | None,
    only: tuple[str, ...],
    as_json: bool,
) -> None:
    """Probe every manifest tool and install the missing ones."""
    from toolbelt.core.use_cases.provision import provision

    quiet = ctx.obj.get("quiet", False)
    current_group: list[str] = []

    def _on_step(outcome) -> None:
        if as_json:
            return
        if not current_group or current_group[-1] != outcome.group:
            current_group.append(outcome.group)
            click.secho(f"\n📦 {outcome.group_label or outcome.group}", fg="cyan", bold=True)
        if quiet and outcome.status == "present":
            return
        mark, color = _STATUS_STYLE.get(outcome.status, ("•", "white"))
        click.echo("   ", nl=False)
        click.secho(mark, fg=color, nl=False)
        where = f"  → {outcome.path}" if outcome.path and outcome.status != "skipped" else ""
        click.echo(f" {outcome.name} [{outcome.status}]{where}")
        if outcome.error:
            click.secho(f"       {outcome.error}", fg=color)
        if outcome.stderr:
            for line in outcome.stderr.strip().splitlines()[-5:]:
                click.echo(f"       │ {line}")
        for warning in outcome.warnings:
            click.secho(f"       ⚠️  {warning}", fg="yellow")
        for note in outcome.notes:
            click.echo(f"       💡 {note}")

    if not as_json:
        label = " (dry run)" if dry_run else ""
        click.secho(f"\n⚡ Provisioning workstation{label}", fg="cyan", bold=True)

    result = provision(
        ctx.obj.get("manifest_path"),
        platform_name=platform_name,
        dry_run=dry_run,
        only=list(only) or None,
        on_step=_on_step,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    run = result.run
    assert run is not None  # guaranteed after error check above
    if run.verification:
        _print_verification(run.verification, quiet=quiet)

    click.echo()
    summary = (
        f"   installed {run.count('installed')}, present {run.count('present')}, "
        f"warnings {run.count('warning')}, skipped {run.count('skipped')}"
    )
    if run.ok:
        click.secho("✅ Provisioning complete", fg="green", bold=True)
        click.echo(summary)
    else:
        failed = run.failed
        click.secho(f"❌ Provisioning stopped at {failed.name}", fg="red", bold=True)
        click.echo(summary)
        click.echo("   Fix the problem and run 'toolbelt install' again.")

    if result.next_steps and not quiet:
        click.echo()
        click.secho("📝 Next steps:", fg="white", bold=True)
        for step in result.next_steps:
            click.echo(f"   • {step}")

    click.echo()
    if not run.ok:
        sys.exit(1)


@cli.command()
@platform_option
@click.option("--versions", "with_versions", is_flag=True, help="Also report installed versions.")
@click.option("--strict", is_flag=True, help="Exit 1 when any tool is missing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(
    ctx: click.Context,
    platform_name: str | None,
    with_versions: bool,
    strict: bool,
    as_json: bool,
) -> None:
    """Report which manifest tools are installed."""
    from toolbelt.core.use_cases.verify import verify as run_verify

    result = run_verify(
        ctx.obj.get("manifest_path"),
        platform_name=platform_name,
        with_versions=with_versions,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.error:
        click.secho(f"❌ {result.error}", fg="red")
    else:
        assert result.report is not None
        _print_verification(result.report, quiet=ctx.obj.get("quiet", False))
        click.echo()

    if result.error:
        sys.exit(1)
    if strict and result.report and not result.report.all_found:
        sys.exit(1)


@cli.command("list")
@platform_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, platform_name: str | None, as_json: bool) -> None:
    """Show the platform table in install order."""
    from toolbelt.core.use_cases.verify import list_tools

    result = list_tools(ctx.obj.get("manifest_path"), platform_name=platform_name)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n🔧 Tools for {result.family}:", fg="cyan", bold=True)
    group = None
    for row in result.rows:
        if row["group"] != group:
            group = row["group"]
            click.echo()
            click.secho(f"   [{row['group_label']}]", fg="white", bold=True)
        optional = " (optional)" if row["optional"] else ""
        click.echo(f"     {row['name']:<20} {row['version']:<10} {row['strategy']}{optional}")
    click.echo()


# ── Register sub-command groups from toolbelt/ui/cli/ ─────────────

from toolbelt.ui.cli.assistant import assistant  # noqa: E402

cli.add_command(assistant)


if __name__ == "__main__":
    cli()
