"""Workspace and package configuration.

Configuration lives in the workspace's root Cargo.toml and is read through
``cargo metadata``::

    [workspace.metadata.workspaces]
    version = "1.2.0"            # lockstep version of the default group
    allow_branch = "main"
    no_individual_tags = false

    [[workspace.metadata.workspaces.groups]]
    name = "plugins"
    members = ["plugins/*"]
    version = "0.4.0"            # optional lockstep version for the group

    [workspace.metadata.workspaces.exclude]
    members = ["examples/*"]

Per-package settings go under ``[package.metadata.workspaces]`` and are kept
opaque here.
"""

from __future__ import annotations

import fnmatch
from typing import Annotated, Any

import semver
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from .errors import BadMetadataError


def member_matches(pattern: str, rel_path: str) -> bool:
    """Check a member glob against a workspace-relative package path.

    ``*`` matches across ``/`` (``crates/*`` matches ``crates/a/b``), and
    trailing slashes on either side are ignored.
    """
    return fnmatch.fnmatchcase(rel_path.rstrip("/"), pattern.rstrip("/"))


def _check_semver(value: str) -> str:
    semver.Version.parse(value)
    return value


SemverStr = Annotated[str, AfterValidator(_check_semver)]


class GroupConfig(BaseModel):
    """One custom group: a name, ordered member globs and an optional version."""

    name: str
    members: list[str] = Field(default_factory=list)
    version: SemverStr | None = None


class ExcludeConfig(BaseModel):
    members: list[str] = Field(default_factory=list)


class WorkspaceConfig(BaseModel):
    """Settings from ``[workspace.metadata.workspaces]``.

    Attributes:
        version: Lockstep version for the default group, if any.
        allow_branch: Branch glob releases may run from (default ``master``).
        no_individual_tags: Never create per-package tags.
        groups: Custom groups, in declaration order.
        exclude: Packages left out of versioning and publishing.
    """

    version: SemverStr | None = None
    allow_branch: str | None = None
    no_individual_tags: bool = False
    groups: list[GroupConfig] = Field(default_factory=list)
    exclude: ExcludeConfig | None = None


class PackageConfig(BaseModel):
    """Settings from ``[package.metadata.workspaces]``, passed through untouched."""

    model_config = ConfigDict(extra="allow", frozen=True)


def read_workspace_config(workspace_metadata: dict[str, Any] | None) -> WorkspaceConfig:
    """Build the WorkspaceConfig from the workspace's ``metadata`` table."""
    raw = (workspace_metadata or {}).get("workspaces", {})
    try:
        return WorkspaceConfig.model_validate(raw)
    except ValidationError as exc:
        raise BadMetadataError(f"[workspace.metadata.workspaces]: {exc}") from exc


def read_package_config(package_metadata: dict[str, Any] | None) -> PackageConfig:
    """Build a PackageConfig from a package's ``metadata`` table."""
    raw = (package_metadata or {}).get("workspaces", {})
    try:
        return PackageConfig.model_validate(raw)
    except ValidationError as exc:
        raise BadMetadataError(f"[package.metadata.workspaces]: {exc}") from exc
