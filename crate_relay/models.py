"""Data models for crate-relay.

These Pydantic models represent the core data structures used throughout
the release pipeline. Packages are built once per run from workspace
metadata and never change afterwards.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from functools import total_ordering
from pathlib import Path

import semver
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import PackageConfig, SemverStr
from .errors import InvalidGroupNameError, ReservedGroupNameError


@total_ordering
class Package(BaseModel):
    """A single crate in the workspace.

    Attributes:
        id: Cargo's package id, unique per run.
        name: Crate name, unique within the workspace.
        version: Current version from Cargo.toml.
        location: Absolute path of the package directory.
        path: Directory relative to the workspace root ("." for the root crate).
        manifest_path: Absolute path of the package's Cargo.toml.
        publish: Registries the crate may be published to; None means any.
        private: True iff ``publish`` is an explicit empty list.
        dependencies: Names of dependencies that affect publish order.
        config: Opaque ``[package.metadata.workspaces]`` settings.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    version: SemverStr
    location: Path
    path: Path
    manifest_path: Path
    publish: tuple[str, ...] | None = None
    private: bool = False
    dependencies: tuple[str, ...] = ()
    config: PackageConfig = Field(default_factory=PackageConfig)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Package):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def _sort_key(self) -> tuple[str, semver.Version, str]:
        return self.name, semver.Version.parse(self.version), str(self.path)


class GroupKind(str, Enum):
    DEFAULT = "default"
    EXCLUDED = "excluded"
    CUSTOM = "custom"


class GroupName(BaseModel):
    """Identity of a package group: default, excluded, or a named custom group.

    Use the constructors rather than building instances by hand; a custom
    name is validated when the value is created, so an invalid or reserved
    name can never exist as a GroupName.
    """

    model_config = ConfigDict(frozen=True)

    kind: GroupKind
    name: str

    @model_validator(mode="after")
    def _check_name(self) -> GroupName:
        if self.kind is GroupKind.CUSTOM:
            if self.name in (GroupKind.DEFAULT.value, GroupKind.EXCLUDED.value):
                raise ReservedGroupNameError(self.name)
            if ":" in self.name:
                raise InvalidGroupNameError(self.name, "invalid character `:`")
            if " " in self.name:
                raise InvalidGroupNameError(self.name, "unexpected space")
        elif self.name != self.kind.value:
            raise ValueError(f"{self.kind.value} group cannot be named {self.name!r}")
        return self

    @classmethod
    def default(cls) -> GroupName:
        return cls(kind=GroupKind.DEFAULT, name=GroupKind.DEFAULT.value)

    @classmethod
    def excluded(cls) -> GroupName:
        return cls(kind=GroupKind.EXCLUDED, name=GroupKind.EXCLUDED.value)

    @classmethod
    def custom(cls, name: str) -> GroupName:
        """Create a custom group name.

        Raises:
            ReservedGroupNameError: For ``default`` or ``excluded``.
            InvalidGroupNameError: If the name contains ``:`` or a space.
        """
        return cls(kind=GroupKind.CUSTOM, name=name)

    @classmethod
    def parse(cls, text: str) -> GroupName:
        """Parse user input, mapping the reserved names to their groups."""
        if text == GroupKind.DEFAULT.value:
            return cls.default()
        if text == GroupKind.EXCLUDED.value:
            return cls.excluded()
        return cls.custom(text)

    def sort_key(self) -> tuple[int, str]:
        """Default first, then custom groups by name, then excluded."""
        rank = {GroupKind.DEFAULT: 0, GroupKind.CUSTOM: 1, GroupKind.EXCLUDED: 2}
        return rank[self.kind], self.name

    def __str__(self) -> str:
        return self.name


class Group(BaseModel):
    """Packages of one group plus the group's lockstep version, if any."""

    version: str | None = None
    packages: list[Package] = Field(default_factory=list)


class WorkspaceGroups(BaseModel):
    """All workspace packages partitioned into groups.

    The default and excluded groups always exist, even when empty.
    """

    groups: dict[GroupName, Group] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ensure_reserved_groups(self) -> WorkspaceGroups:
        self.groups.setdefault(GroupName.default(), Group())
        self.groups.setdefault(GroupName.excluded(), Group())
        return self

    def __getitem__(self, name: GroupName) -> Group:
        return self.groups[name]

    def names(self) -> list[GroupName]:
        """Group names in iteration order."""
        return sorted(self.groups, key=GroupName.sort_key)

    def iter_packages(self) -> Iterator[tuple[GroupName, str | None, Package]]:
        """Yield ``(group, group version, package)``.

        Default group first, custom groups next, excluded last; packages are
        already sorted by name inside each group.
        """
        for name in self.names():
            group = self.groups[name]
            for pkg in group.packages:
                yield name, group.version, pkg


class VersionBump(BaseModel):
    """Records a version change for a package.

    A version plan is a ``dict[str, VersionBump]`` keyed by package name.
    When publishing from the current state, ``old == new``.

    Attributes:
        package: The package being released.
        old: The version before bumping.
        new: The version being released.
    """

    model_config = ConfigDict(frozen=True)

    package: Package
    old: str
    new: str


class GitState(BaseModel):
    """Branch and tags left behind by a versioning run that hasn't pushed yet."""

    branch: str | None = None
    tags: list[str] = Field(default_factory=list)
