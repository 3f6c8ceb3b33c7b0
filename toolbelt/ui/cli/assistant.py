"""
CLI commands for the AI-assistant settings file.

Thin wrappers over ``toolbelt.core.use_cases.assistant_check``.

Usage::

    toolbelt assistant check .claude/settings.json
    toolbelt assistant check .claude/settings.json --json --strict
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click


@click.group()
def assistant() -> None:
    """AI assistant — check the tools its settings depend on."""


@assistant.command("check")
@click.argument("settings_path", type=click.Path(exists=False, dir_okay=False))
@click.option("--strict", is_flag=True, help="Exit 1 when a referenced executable is missing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, settings_path: str, strict: bool, as_json: bool) -> None:
    """Validate SETTINGS_PATH and probe every executable it references."""
    from toolbelt.core.use_cases.assistant_check import check_assistant_settings

    result = check_assistant_settings(
        Path(settings_path),
        manifest_path=ctx.obj.get("manifest_path") if ctx.obj else None,
    )
    failed = not result.valid or (strict and bool(result.missing))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if failed else 0)

    if not result.valid:
        click.secho("❌ Settings errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")
        sys.exit(1)

    click.secho(f"\n🤖 {settings_path}", fg="cyan", bold=True)
    if not result.executables:
        click.echo("   No executables referenced.")
    for exe in result.executables:
        click.echo("   ", nl=False)
        if exe.found:
            click.secho("✓", fg="green", nl=False)
            click.echo(f" {exe.name}  → {exe.path}")
        else:
            click.secho("✗", fg="red", nl=False)
            hint = f"  (toolbelt install --only {exe.manifest_tool})" if exe.manifest_tool else ""
            click.echo(f" {exe.name}{hint}")
        click.echo(f"       used by: {', '.join(exe.sources)}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if failed:
        sys.exit(1)
