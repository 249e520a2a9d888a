"""Partition workspace members into groups.

Each package lands in exactly one group:

1. ``excluded`` if any exclude pattern matches its path (this wins over
   everything else).
2. The single custom group whose member patterns match it. Within a group
   only the first matching pattern is recorded; across groups every match is
   collected, and more than one is a conflict.
3. ``default`` otherwise.

A package that inherits the workspace version can't join a custom group at
all, since custom groups are versioned independently of the workspace.

Every declared pattern has to match something. Misses are collected across
all groups and reported together so the user can fix them in one go.
"""

from __future__ import annotations

from pathlib import Path

from .config import WorkspaceConfig, member_matches, read_package_config
from .errors import (
    DuplicateGroupNameError,
    EmptyGroupError,
    EmptyWorkspaceError,
    PackageInMultipleGroupsError,
    PackageNotInWorkspaceError,
    UnmatchedExcludePatternError,
    UnmatchedGroupPatternError,
)
from .metadata import MetadataPackage, WorkspaceMetadata
from .models import Group, GroupName, Package, WorkspaceGroups
from .shell import warn
from .toml import inherits_workspace_version


def declared_groups(config: WorkspaceConfig) -> dict[GroupName, Group]:
    """Create the empty group table, validating every group declaration.

    Raises:
        ReservedGroupNameError: A group is called ``default`` or ``excluded``.
        InvalidGroupNameError: A group name contains ``:`` or a space.
        DuplicateGroupNameError: Two groups share a name.
        EmptyGroupError: A group declares no member patterns.
    """
    groups = {
        GroupName.default(): Group(version=config.version),
        GroupName.excluded(): Group(),
    }
    for spec in config.groups:
        name = GroupName.custom(spec.name)
        if name in groups:
            raise DuplicateGroupNameError(spec.name)
        if not spec.members:
            raise EmptyGroupError(spec.name)
        groups[name] = Group(version=spec.version)
    return groups


def make_package(meta: MetadataPackage, workspace_root: Path) -> Package:
    """Build a Package from its metadata entry."""
    try:
        rel = meta.manifest_path.parent.relative_to(workspace_root)
    except ValueError:
        raise PackageNotInWorkspaceError(meta.id, str(workspace_root)) from None

    return Package(
        id=meta.id,
        name=meta.name,
        version=meta.version,
        location=workspace_root / rel,
        path=rel,
        manifest_path=meta.manifest_path,
        publish=meta.publish,
        private=meta.publish is not None and len(meta.publish) == 0,
        dependencies=tuple(meta.ordering_dependencies()),
        config=read_package_config(meta.metadata),
    )


def _rel_path(pkg: Package) -> str:
    return pkg.path.as_posix()


def _match_exclude(pkg: Package, config: WorkspaceConfig) -> str | None:
    if config.exclude is None:
        return None
    for pattern in config.exclude.members:
        if member_matches(pattern, _rel_path(pkg)):
            return pattern
    return None


def _match_groups(pkg: Package, config: WorkspaceConfig) -> list[tuple[GroupName, str]]:
    matched: list[tuple[GroupName, str]] = []
    for spec in config.groups:
        for pattern in spec.members:
            if member_matches(pattern, _rel_path(pkg)):
                # Only the first pattern of a group is recorded.
                matched.append((GroupName.custom(spec.name), pattern))
                break
    return matched


def assign_group(pkg: Package, config: WorkspaceConfig) -> tuple[GroupName, str | None]:
    """Pick the group for one package.

    Returns:
        The group and the member pattern that put the package there (None
        for the default group).

    Raises:
        PackageInMultipleGroupsError: The package inherits the workspace
            version and matched a custom group, or matched several groups.
    """
    excluded_by = _match_exclude(pkg, config)
    if excluded_by is not None:
        return GroupName.excluded(), excluded_by

    matched = _match_groups(pkg, config)

    if matched and inherits_workspace_version(pkg.manifest_path):
        raise PackageInMultipleGroupsError(
            pkg.name,
            _rel_path(pkg),
            [str(name) for name, _ in matched],
            inherits=True,
        )

    if not matched:
        return GroupName.default(), None
    if len(matched) == 1:
        return matched[0]
    raise PackageInMultipleGroupsError(
        pkg.name,
        _rel_path(pkg),
        [str(name) for name, _ in matched],
        inherits=False,
    )


def _check_unmatched(
    config: WorkspaceConfig, matched_patterns: dict[GroupName, set[str]]
) -> None:
    unmatched_groups: dict[str, list[str]] = {}
    for spec in config.groups:
        seen = matched_patterns.get(GroupName.custom(spec.name), set())
        missing = [p for p in spec.members if p not in seen]
        if missing:
            unmatched_groups[spec.name] = missing
    if unmatched_groups:
        raise UnmatchedGroupPatternError(unmatched_groups)

    if config.exclude is not None:
        seen = matched_patterns.get(GroupName.excluded(), set())
        missing = [p for p in config.exclude.members if p not in seen]
        if missing:
            raise UnmatchedExcludePatternError(missing)


def classify(
    metadata: WorkspaceMetadata,
    config: WorkspaceConfig,
    include_private: bool = False,
) -> WorkspaceGroups:
    """Assign every workspace member to a group.

    Args:
        metadata: Output of ``cargo metadata``.
        config: Group and exclude declarations.
        include_private: Keep packages with ``publish = false`` in the result.

    Returns:
        WorkspaceGroups with packages sorted by name in each group.

    Raises:
        ConfigurationError: For any invalid declaration, conflicting match,
            unmatched pattern, or a workspace with nothing to release.
    """
    groups = declared_groups(config)
    matched_patterns: dict[GroupName, set[str]] = {}
    classified_any = False

    for package_id in metadata.workspace_members:
        meta = metadata.find(package_id)
        if meta is None:
            warn(f"unable to find package {package_id}")
            continue

        pkg = make_package(meta, metadata.workspace_root)
        group_name, pattern = assign_group(pkg, config)
        if group_name != GroupName.excluded():
            classified_any = True

        groups[group_name].packages.append(pkg)
        if pattern is not None:
            matched_patterns.setdefault(group_name, set()).add(pattern)

    if not classified_any:
        raise EmptyWorkspaceError()

    _check_unmatched(config, matched_patterns)

    for group in groups.values():
        group.packages = sorted(
            (p for p in group.packages if include_private or not p.private),
            key=lambda p: p.name,
        )

    return WorkspaceGroups(groups=groups)
