"""Version planning and manifest rewriting.

Produces the version plan the git and publish steps work from:

1. Classify the workspace into groups.
2. Compute new versions. Groups with a version (the default group takes the
   workspace ``version``) move in lockstep; everything else is bumped per
   package. Excluded packages are never versioned.
3. Rewrite every affected Cargo.toml, including requirements on the bumped
   crates elsewhere in the workspace.
4. Refresh Cargo.lock, then commit and tag.
"""

from __future__ import annotations

import re
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

import tomlkit

from .config import read_workspace_config
from .errors import LockfileUpdateError
from .git import GitOptions, GitReleaser
from .groups import classify
from .metadata import WorkspaceMetadata, load_metadata
from .models import GitState, GroupName, VersionBump, WorkspaceGroups
from .shell import Context, cargo, info, step
from .toml import load_manifest, save_manifest
from .versions import BumpSpec

DEPENDENCY_TABLES = ("dependencies", "dev-dependencies", "build-dependencies")

# Leading comparison operator of a version requirement (e.g. "^", "=", ">=").
_REQ_OPERATOR_RE = re.compile(r"^\s*(>=|<=|[=^~<>])?")


def plan_versions(
    groups: WorkspaceGroups, bump: BumpSpec
) -> tuple[str | None, dict[str, VersionBump], dict[GroupName, str]]:
    """Work out the new version of every package.

    Args:
        groups: Classified workspace.
        bump: Bump level or exact version.

    Returns:
        Tuple of (lockstep version of the default group or None, version plan
        keyed and sorted by package name, new version of each lockstep group).
    """
    step("Planning versions")

    plan: dict[str, VersionBump] = {}
    group_versions: dict[GroupName, str] = {}

    for name in groups.names():
        if name == GroupName.excluded():
            continue
        group = groups[name]
        if not group.packages:
            continue

        if group.version is not None:
            new = bump.apply(group.version)
            group_versions[name] = new
            for pkg in group.packages:
                plan[pkg.name] = VersionBump(package=pkg, old=pkg.version, new=new)
        else:
            for pkg in group.packages:
                plan[pkg.name] = VersionBump(
                    package=pkg, old=pkg.version, new=bump.apply(pkg.version)
                )

    for name, b in sorted(plan.items()):
        info(name, f"{b.old} → {b.new}")

    return group_versions.get(GroupName.default()), dict(sorted(plan.items())), group_versions


def retain_operator(req: str, version: str) -> str:
    """Point a version requirement at a new version, keeping its operator.

    Examples:
        retain_operator("1.0.0", "1.1.0") → "1.1.0"
        retain_operator("=1.0.0", "1.1.0") → "=1.1.0"
        retain_operator("^0.3", "0.4.0") → "^0.4.0"
    """
    match = _REQ_OPERATOR_RE.match(req)
    op = match.group(1) if match and match.group(1) else ""
    return f"{op}{version}"


def _update_dep_table(table: Any, new_versions: dict[str, str]) -> bool:
    """Rewrite requirements on bumped crates in one dependency table."""
    if not isinstance(table, MutableMapping):
        return False
    changed = False
    for key, spec in table.items():
        if not isinstance(spec, MutableMapping) or "version" not in spec:
            continue
        # `foo = { package = "real-name", ... }` renames the dependency.
        crate = str(spec.get("package", key))
        if crate in new_versions:
            spec["version"] = retain_operator(str(spec["version"]), new_versions[crate])
            changed = True
    return changed


def update_dependency_requirements(
    doc: tomlkit.TOMLDocument, new_versions: dict[str, str]
) -> bool:
    """Update requirements on bumped crates throughout a manifest.

    Covers ``[dependencies]``, ``[dev-dependencies]``, ``[build-dependencies]``,
    their ``[target.'cfg(...)'.*]`` variants and ``[workspace.dependencies]``.

    Returns:
        True if anything changed.
    """
    changed = False
    for name in DEPENDENCY_TABLES:
        changed |= _update_dep_table(doc.get(name), new_versions)
    for target in doc.get("target", {}).values():
        if isinstance(target, MutableMapping):
            for name in DEPENDENCY_TABLES:
                changed |= _update_dep_table(target.get(name), new_versions)
    workspace = doc.get("workspace")
    if isinstance(workspace, MutableMapping):
        changed |= _update_dep_table(workspace.get("dependencies"), new_versions)
    return changed


def _set_group_versions(doc: tomlkit.TOMLDocument, group_versions: dict[GroupName, str]) -> bool:
    """Record lockstep versions in ``[workspace.metadata.workspaces]``."""
    settings = doc.get("workspace", {}).get("metadata", {}).get("workspaces")
    if not isinstance(settings, MutableMapping):
        return False
    changed = False
    default = group_versions.get(GroupName.default())
    if default is not None and "version" in settings:
        settings["version"] = default
        changed = True
    for group in settings.get("groups", []):
        new = group_versions.get(GroupName.custom(str(group["name"])))
        if new is not None and "version" in group:
            group["version"] = new
            changed = True
    return changed


def rewrite_manifests(
    metadata: WorkspaceMetadata,
    plan: dict[str, VersionBump],
    group_versions: dict[GroupName, str],
) -> list[Path]:
    """Write the planned versions into every Cargo.toml that needs them.

    A crate with ``version.workspace = true`` is bumped by rewriting
    ``[workspace.package].version`` in the root manifest instead.

    Returns:
        The manifests that were modified.
    """
    step("Writing new versions")

    new_versions = {name: b.new for name, b in plan.items()}
    root_manifest = metadata.workspace_root / "Cargo.toml"
    docs: dict[Path, tomlkit.TOMLDocument] = {}
    dirty: set[Path] = set()

    def doc_for(path: Path) -> tomlkit.TOMLDocument:
        if path not in docs:
            docs[path] = load_manifest(path)
        return docs[path]

    inherited_version: str | None = None
    for meta in metadata.packages:
        path = meta.manifest_path
        doc = doc_for(path)

        if meta.name in plan:
            package = doc["package"]
            version = package.get("version")  # type: ignore[union-attr]
            if isinstance(version, MutableMapping) and version.get("workspace"):
                inherited_version = plan[meta.name].new
            else:
                package["version"] = plan[meta.name].new  # type: ignore[index]
                dirty.add(path)

        if update_dependency_requirements(doc, new_versions):
            dirty.add(path)

    root = doc_for(root_manifest)
    if inherited_version is not None:
        root["workspace"]["package"]["version"] = inherited_version  # type: ignore[index]
        dirty.add(root_manifest)
    if update_dependency_requirements(root, new_versions):
        dirty.add(root_manifest)
    if _set_group_versions(root, group_versions):
        dirty.add(root_manifest)

    for path in sorted(dirty):
        save_manifest(path, docs[path])
        info("updated", str(path.relative_to(metadata.workspace_root)))
    return sorted(dirty)


def update_lockfile(ctx: Context) -> None:
    """Refresh workspace entries in Cargo.lock, if the workspace has one."""
    if not (ctx.root / "Cargo.lock").exists():
        return
    result = cargo(ctx, "update", "--workspace")
    if not result.ok:
        raise LockfileUpdateError(result)


def apply_versions(
    ctx: Context,
    metadata: WorkspaceMetadata,
    groups: WorkspaceGroups,
    releaser: GitReleaser,
    bump: BumpSpec,
    *,
    push: bool = True,
) -> tuple[str | None, dict[str, VersionBump], GitState]:
    """Plan, write, commit and tag new versions for a classified workspace.

    The repository is validated before any file is touched.

    Args:
        ctx: Run context.
        metadata: Workspace metadata the groups were built from.
        groups: Classified workspace.
        releaser: Git releaser for validate/commit/tag/push.
        bump: How to move versions.
        push: Push the commit and tags at the end. The publish pipeline
            passes False and pushes once every crate is up.

    Returns:
        Tuple of (lockstep version or None, version plan, git state).
    """
    new_version, plan, group_versions = plan_versions(groups, bump)
    branch = releaser.validate()

    if not plan:
        info("version", "no packages to version")
        return new_version, plan, GitState(branch=branch)

    rewrite_manifests(metadata, plan, group_versions)
    update_lockfile(ctx)
    releaser.commit(new_version, plan, branch)
    tags = releaser.tag(new_version, plan)
    if push:
        releaser.push(branch, tags)
    return new_version, plan, GitState(branch=branch, tags=tags)


def run_version(
    ctx: Context,
    git_options: GitOptions,
    bump: BumpSpec,
    *,
    include_private: bool = False,
) -> tuple[str | None, dict[str, VersionBump], GitState]:
    """Execute a full versioning run: bump, commit, tag and push.

    Args:
        ctx: Run context.
        git_options: Commit/tag/push behaviour.
        bump: How to move versions.
        include_private: Also version packages with ``publish = false``.
    """
    metadata = load_metadata(ctx)
    config = read_workspace_config(metadata.metadata)
    groups = classify(metadata, config, include_private)
    releaser = GitReleaser(ctx, git_options, config)
    return apply_versions(ctx, metadata, groups, releaser, bump)
