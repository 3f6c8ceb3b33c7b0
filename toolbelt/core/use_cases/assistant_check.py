"""
Assistant check use case — validate an AI-assistant settings file and
probe the executables it relies on.

Executables are taken from three places:

- ``permissions``: ``Bash(kubectl get:*)`` → ``kubectl``
- ``hooks``: first word of each command hook
- ``mcpServers``: each server's ``command``
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from toolbelt.core.config.loader import ConfigError, load_manifest
from toolbelt.core.models.assistant import AssistantSettings
from toolbelt.core.models.tool import Manifest, ToolDescriptor
from toolbelt.core.services.provision.detection.probe import search_path

logger = logging.getLogger(__name__)

_BASH_RULE_RE = re.compile(r"^Bash\((?P<body>.+)\)$")

# Shell words that are not executables to provision
_SHELL_BUILTINS = frozenset({
    ".", ":", "[", "cd", "echo", "eval", "exec", "exit", "export",
    "false", "printf", "read", "set", "source", "test", "true", "unset",
})


@dataclass
class ExecutableStatus:
    name: str
    sources: list[str] = field(default_factory=list)
    found: bool = False
    path: str | None = None
    manifest_tool: str | None = None   # manifest entry that installs it

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "sources": self.sources,
            "found": self.found,
            "path": self.path,
            "manifest_tool": self.manifest_tool,
        }


@dataclass
class AssistantCheckResult:
    settings_path: Path | None = None
    valid: bool = False
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    executables: list[ExecutableStatus] = field(default_factory=list)

    @property
    def missing(self) -> list[ExecutableStatus]:
        return [e for e in self.executables if not e.found]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "settings_path": str(self.settings_path) if self.settings_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "executables": [e.to_dict() for e in self.executables],
            "missing": [e.name for e in self.missing],
        }


def _command_word(command: str) -> str | None:
    """First executable word of a shell command, or None.

    Leading ``VAR=value`` assignments and ``sudo`` are skipped; script
    paths and builtins are not provisionable tools.
    """
    try:
        words = shlex.split(command)
    except ValueError:
        return None
    for word in words:
        if "=" in word and not word.startswith("="):
            continue
        if word == "sudo":
            continue
        if "/" in word or "$" in word or word in _SHELL_BUILTINS:
            return None
        return word
    return None


def permission_executable(rule: str) -> str | None:
    """``Bash(kubectl get:*)`` → ``kubectl``; non-Bash rules → None."""
    match = _BASH_RULE_RE.match(rule.strip())
    if not match:
        return None
    body = match.group("body").strip()
    # "cmd sub:*" prefix rules
    if body.endswith(":*"):
        body = body[:-2]
    return _command_word(body.rstrip("*").strip())


def extract_executables(settings: AssistantSettings) -> dict[str, list[str]]:
    """Map each referenced executable to where it was referenced."""
    found: dict[str, list[str]] = {}

    def _add(name: str | None, source: str) -> None:
        if name:
            sources = found.setdefault(name, [])
            if source not in sources:
                sources.append(source)

    perms = settings.permissions
    for kind, rules in (("allow", perms.allow), ("ask", perms.ask)):
        for rule in rules:
            _add(permission_executable(rule), f"permissions.{kind}")

    for event, matchers in settings.hooks.items():
        for matcher in matchers:
            for hook in matcher.hooks:
                if hook.type == "command":
                    _add(_command_word(hook.command), f"hooks.{event}")

    for server_name, server in settings.mcp_servers.items():
        if server.command:
            _add(_command_word(server.command), f"mcpServers.{server_name}")

    return found


def _manifest_tool_for(manifest: Manifest | None, exe: str) -> ToolDescriptor | None:
    if manifest is None:
        return None
    for tool in manifest.tools:
        if exe in tool.probe or tool.name == exe:
            return tool
    return None


def check_assistant_settings(
    settings_path: Path,
    manifest_path: Path | None = None,
) -> AssistantCheckResult:
    """Validate settings JSON and probe every executable it references.

    Args:
        settings_path: Assistant settings file (JSON).
        manifest_path: Manifest used to tell which executables toolbelt
            can install.

    Returns:
        AssistantCheckResult; ``valid`` is False when the file cannot be
        parsed or does not match the settings schema.
    """
    result = AssistantCheckResult(settings_path=settings_path)

    try:
        raw = json.loads(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        result.errors.append(f"Settings file not found: {settings_path}")
        return result
    except (OSError, json.JSONDecodeError) as e:
        result.errors.append(f"Invalid JSON in {settings_path}: {e}")
        return result

    if not isinstance(raw, dict):
        result.errors.append(f"Expected a JSON object in {settings_path}")
        return result

    try:
        settings = AssistantSettings.model_validate(raw)
    except ValidationError as e:
        result.errors.append(f"Invalid settings {settings_path}: {e}")
        return result
    result.valid = True

    try:
        manifest = load_manifest(manifest_path)
    except ConfigError as e:
        manifest = None
        result.warnings.append(f"Manifest unavailable, install hints disabled: {e}")

    for name, sources in sorted(extract_executables(settings).items()):
        tool = _manifest_tool_for(manifest, name)
        path = shutil.which(name, path=search_path(tool.probe_paths if tool else None))
        status = ExecutableStatus(
            name=name,
            sources=sources,
            found=path is not None,
            path=path,
            manifest_tool=tool.name if tool else None,
        )
        if not status.found:
            logger.info("Assistant settings reference missing executable %s", name)
            if tool is None:
                result.warnings.append(f"{name} is not in the manifest; install it manually")
        result.executables.append(status)

    return result
