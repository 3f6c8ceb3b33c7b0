"""
Domain models — Pydantic types for toolbelt.

All models are re-exported here for convenient access:

    from toolbelt.core.models import Manifest, ToolDescriptor, AssistantSettings
"""

from toolbelt.core.models.assistant import (
    AssistantSettings,
    HookCommand,
    HookMatcher,
    McpServer,
    Permissions,
)
from toolbelt.core.models.tool import (
    AptRepository,
    BinarySpec,
    DownloadStrategy,
    EcosystemStrategy,
    Manifest,
    PackageStrategy,
    PostCommand,
    PostInstall,
    ProfileLine,
    ScriptStrategy,
    Symlink,
    ToolDescriptor,
    ToolGroup,
)

__all__ = [
    "AptRepository",
    # assistant.py
    "AssistantSettings",
    "BinarySpec",
    "DownloadStrategy",
    "EcosystemStrategy",
    "HookCommand",
    "HookMatcher",
    # tool.py
    "Manifest",
    "McpServer",
    "PackageStrategy",
    "Permissions",
    "PostCommand",
    "PostInstall",
    "ProfileLine",
    "ScriptStrategy",
    "Symlink",
    "ToolDescriptor",
    "ToolGroup",
]
