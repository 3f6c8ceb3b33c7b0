"""
AI-assistant settings model.

The assistant reads a JSON settings file with three groups the
provisioned binaries are referenced from:

- ``permissions``: allow / deny / ask lists of command-prefix rules
  such as ``Bash(kubectl get:*)``
- ``mcpServers``: named auxiliary servers started by command
- ``hooks``: lifecycle event → matchers → shell commands
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Permissions(BaseModel):
    model_config = ConfigDict(extra="allow")

    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)
    ask: list[str] = Field(default_factory=list)


class McpServer(BaseModel):
    model_config = ConfigDict(extra="allow")

    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    type: str | None = None
    url: str | None = None


class HookCommand(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "command"
    command: str = ""
    timeout: int | None = None


class HookMatcher(BaseModel):
    model_config = ConfigDict(extra="allow")

    matcher: str = ""
    hooks: list[HookCommand] = Field(default_factory=list)


class AssistantSettings(BaseModel):
    """Top-level settings object; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    permissions: Permissions = Field(default_factory=Permissions)
    mcp_servers: dict[str, McpServer] = Field(default_factory=dict, alias="mcpServers")
    hooks: dict[str, list[HookMatcher]] = Field(default_factory=dict)
