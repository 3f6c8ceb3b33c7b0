"""
Tool models — the version manifest and its tool descriptors.

A ``ToolDescriptor`` says *what* to provision (name, pinned version,
group) and *how*, per platform family, through exactly one install
strategy.  Strategies are a tagged variant discriminated on the
``strategy`` field:

    package    →  apt / brew (optionally with an apt repo or brew tap)
    download   →  versioned release artifact fetched from a URL template
    script     →  remote installer script run through an interpreter
    ecosystem  →  pip / npm / nvm global install
"""

from __future__ import annotations

import hashlib
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Platform families a manifest may key install strategies on.
PLATFORM_FAMILIES = ("debian", "macos")
DEFAULT_KEY = "_default"


# ── Install strategies ──────────────────────────────────────────


class AptRepository(BaseModel):
    """Third-party apt repository (signing key + source list)."""

    name: str                   # basename of /etc/apt/sources.list.d/<name>.list
    key_url: str
    keyring: str                # absolute path of the dearmored keyring
    source: str                 # deb line, may use {arch}


class PackageStrategy(BaseModel):
    """Install through the platform package manager."""

    strategy: Literal["package"] = "package"
    packages: list[str]
    manager: Literal["apt", "brew"] | None = None   # None = platform default
    tap: str | None = None                          # brew tap, e.g. "gitea/tap"
    repository: AptRepository | None = None
    timeout: int = 600


class BinarySpec(BaseModel):
    """One executable to lift out of a downloaded artifact."""

    path: str                   # member path inside the archive (templated)
    name: str                   # installed file name

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data):
        # "kubeseal" is shorthand for {path: kubeseal, name: kubeseal}
        if isinstance(data, str):
            return {"path": data, "name": data.rsplit("/", 1)[-1]}
        return data


class DownloadStrategy(BaseModel):
    """Fetch a release artifact and place its binaries on the search path."""

    strategy: Literal["download"] = "download"
    url: str
    checksum: str | None = None          # "sha256:<hex>"
    checksum_url: str | None = None      # detached sha256sum file
    binaries: list[BinarySpec] = Field(default_factory=list)
    install_dir: str = "/usr/local/bin"
    needs_sudo: bool | None = None       # None = "install_dir not writable"
    version_url: str | None = None       # resolves version "latest"
    arch_map: dict[str, str] = Field(default_factory=dict)
    os_map: dict[str, str] = Field(default_factory=dict)
    run: list[str] = Field(default_factory=list)
    timeout: int = 600

    @field_validator("checksum")
    @classmethod
    def _checksum_format(cls, v: str | None) -> str | None:
        if v is not None and ":" not in v:
            raise ValueError("checksum must look like 'sha256:<hex>'")
        if v is not None and v.split(":", 1)[0].lower() not in hashlib.algorithms_available:
            raise ValueError(f"unsupported checksum algorithm in {v!r}")
        return v

    @model_validator(mode="after")
    def _has_payload(self) -> DownloadStrategy:
        if not self.binaries and not self.run:
            raise ValueError("download strategy needs 'binaries' or 'run'")
        return self


class ScriptStrategy(BaseModel):
    """Run a remote installer script."""

    strategy: Literal["script"] = "script"
    url: str
    interpreter: Literal["bash", "sh"] = "bash"
    args: list[str] = Field(default_factory=list)
    needs_sudo: bool = False
    sha256: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    # script runs unprivileged but calls `sudo -n` itself
    prime_sudo: bool = False
    timeout: int = 600


class EcosystemStrategy(BaseModel):
    """Install global tooling through a language package manager."""

    strategy: Literal["ecosystem"] = "ecosystem"
    manager: Literal["pip", "npm", "nvm"]
    packages: list[str]
    args: list[str] = Field(default_factory=list)
    needs_sudo: bool = False
    timeout: int = 600


InstallStrategy = Annotated[
    PackageStrategy | DownloadStrategy | ScriptStrategy | EcosystemStrategy,
    Field(discriminator="strategy"),
]


# ── Post-install actions ────────────────────────────────────────


class ProfileLine(BaseModel):
    """A line that must be present in a shell startup file."""

    line: str
    pattern: str | None = None    # substring that counts as "present"
    file: str | None = None       # explicit path, wins over target
    target: Literal["rc", "login"] = "rc"   # which startup file of $SHELL
    only_arch: list[str] = Field(default_factory=list)

    @property
    def search(self) -> str:
        return self.pattern or self.line


class Symlink(BaseModel):
    source: str
    target: str
    needs_sudo: bool = True


class PostCommand(BaseModel):
    command: list[str]
    needs_sudo: bool = False
    timeout: int = 600


class PostInstall(BaseModel):
    profile: list[ProfileLine] = Field(default_factory=list)
    symlinks: list[Symlink] = Field(default_factory=list)
    commands: list[PostCommand] = Field(default_factory=list)


# ── Descriptor ──────────────────────────────────────────────────


class ToolDescriptor(BaseModel):
    """One provisionable tool."""

    name: str
    version: str = ""
    group: str
    description: str = ""

    probe: list[str] = Field(default_factory=list)
    probe_paths: list[str] = Field(default_factory=list)
    probe_file: str | None = None

    install: dict[str, InstallStrategy] = Field(default_factory=dict)
    provided_by: str | None = None

    post_install: PostInstall = Field(default_factory=PostInstall)
    post_env: dict[str, str] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)
    optional: bool = False
    version_cmd: list[str] = Field(default_factory=list)

    @field_validator("probe", mode="before")
    @classmethod
    def _probe_list(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("install")
    @classmethod
    def _install_keys(cls, v: dict) -> dict:
        unknown = set(v) - {*PLATFORM_FAMILIES, DEFAULT_KEY}
        if unknown:
            raise ValueError(f"unknown platform key(s): {sorted(unknown)}")
        return v

    @model_validator(mode="after")
    def _defaults(self) -> ToolDescriptor:
        if not self.probe:
            self.probe = [self.name]
        if self.provided_by and self.install:
            raise ValueError("a tool cannot both be 'provided_by' and declare 'install'")
        if self.version == "latest":
            downloads = [
                s for s in self.install.values()
                if isinstance(s, DownloadStrategy) and s.version_url
            ]
            if not downloads:
                raise ValueError("version 'latest' requires a download strategy with version_url")
        return self

    def strategy_for(self, family: str) -> InstallStrategy | None:
        """Pick the install strategy for a platform family (``_default`` fallback)."""
        return self.install.get(family) or self.install.get(DEFAULT_KEY)

    def applies_to(self, family: str) -> bool:
        """Whether this tool is part of the given platform's table."""
        if self.provided_by:
            return True
        return self.strategy_for(family) is not None


class ToolGroup(BaseModel):
    id: str
    label: str = ""


class Manifest(BaseModel):
    """The single version manifest shared by every platform."""

    version: int = 1
    groups: list[ToolGroup] = Field(default_factory=list)
    tools: list[ToolDescriptor] = Field(default_factory=list)
    next_steps: dict[str, list[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _references(self) -> Manifest:
        group_ids = {g.id for g in self.groups}
        names = {t.name for t in self.tools}
        for tool in self.tools:
            if tool.group not in group_ids:
                raise ValueError(f"tool '{tool.name}' references unknown group '{tool.group}'")
            if tool.provided_by and tool.provided_by not in names:
                raise ValueError(
                    f"tool '{tool.name}' is provided_by unknown tool '{tool.provided_by}'"
                )
        return self

    def get(self, name: str) -> ToolDescriptor | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def group_label(self, group_id: str) -> str:
        for group in self.groups:
            if group.id == group_id:
                return group.label or group.id
        return group_id

    def tools_for(self, family: str, only: list[str] | None = None) -> list[ToolDescriptor]:
        """Platform table in install order: group order first, then manifest order."""
        order = {g.id: i for i, g in enumerate(self.groups)}
        selected = [
            t for t in self.tools
            if t.applies_to(family) and (not only or t.name in only)
        ]
        return sorted(selected, key=lambda t: order.get(t.group, len(order)))
