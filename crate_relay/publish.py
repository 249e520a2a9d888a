"""Publish pipeline: version → order → publish → wait → push.

This module orchestrates a crate-relay release:
1. Classify the workspace and build a version plan (bumping versions, or
   taking the current ones with ``--from-git``)
2. Order the plan so every crate comes after its workspace dependencies
3. For each public crate, skip it if the registry already has that version,
   otherwise ``cargo publish`` it and wait for the registry index to show it
4. Push the release commit and tags, if versioning created any

A failure stops the run at the failing crate. Everything before it stays
published, and because already-published versions are skipped a re-run picks
up where the last one stopped.
"""

from __future__ import annotations

from pydantic import BaseModel

from .config import read_workspace_config
from .errors import PublishError
from .git import GitOptions, GitReleaser
from .graph import dependency_order
from .groups import classify
from .metadata import load_metadata
from .models import GitState, GroupName, Package, VersionBump, WorkspaceGroups
from .registry import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PUBLISH_TIMEOUT,
    RegistryIndex,
    resolve_index_url,
)
from .shell import CommandResult, Context, cargo, info, step
from .versioning import apply_versions
from .versions import BumpSpec


class PublishOptions(BaseModel):
    """Options for ``cargo publish`` and the registry wait.

    Attributes:
        from_git: Publish the versions already on disk instead of bumping.
        no_verify: Pass ``--no-verify`` to cargo.
        allow_dirty: Pass ``--allow-dirty`` to cargo.
        registry: Registry to publish to (default: each crate's own, else crates.io).
        token: API token passed to cargo.
        publish_timeout: Seconds to wait for a published version to appear.
        poll_interval: Seconds between index queries while waiting.
    """

    from_git: bool = False
    no_verify: bool = False
    allow_dirty: bool = False
    registry: str | None = None
    token: str | None = None
    publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL


class PublishOutcome(BaseModel):
    """What ``cargo publish`` reported for one crate."""

    uploaded: bool
    error: str | None = None


def parse_publish_output(result: CommandResult) -> PublishOutcome:
    """Decide whether a ``cargo publish`` run uploaded the crate.

    Success needs a zero exit status, cargo's ``Uploading`` line, and no
    ``error:`` line anywhere in stderr.
    """
    if not result.ok:
        return PublishOutcome(uploaded=False, error=f"exit status {result.returncode}")
    for line in result.stderr.splitlines():
        if "error:" in line:
            return PublishOutcome(uploaded=False, error=line.strip())
    if "Uploading" not in result.stderr:
        return PublishOutcome(uploaded=False, error="no upload reported")
    return PublishOutcome(uploaded=True)


def is_publishable(pkg: Package) -> bool:
    """A crate without ``publish`` or with a non-empty registry list can be published."""
    return pkg.publish is None or len(pkg.publish) > 0


def target_registry(pkg: Package, options: PublishOptions) -> str | None:
    """Registry a crate goes to; None means crates.io."""
    if options.registry:
        return options.registry
    if pkg.publish:
        return pkg.publish[0]
    return None


def index_token(registry: str | None, options: PublishOptions) -> str | None:
    """Token to read a registry's index with; crates.io's index is public."""
    if registry is None or registry == "crates-io":
        return None
    return options.token


def publish_args(bump: VersionBump, options: PublishOptions) -> list[str]:
    """Arguments for ``cargo publish`` of one crate."""
    args = ["publish"]
    if options.no_verify:
        args.append("--no-verify")
    if options.allow_dirty:
        args.append("--allow-dirty")
    if options.registry:
        args.extend(["--registry", options.registry])
    if options.token:
        args.extend(["--token", options.token])
    args.extend(["--manifest-path", str(bump.package.manifest_path)])
    return args


def current_plan(groups: WorkspaceGroups) -> dict[str, VersionBump]:
    """Version plan that releases every non-excluded crate at its current version."""
    plan = {
        pkg.name: VersionBump(package=pkg, old=pkg.version, new=pkg.version)
        for group, _, pkg in groups.iter_packages()
        if group != GroupName.excluded()
    }
    return dict(sorted(plan.items()))


def publish_plan(
    ctx: Context,
    plan: dict[str, VersionBump],
    options: PublishOptions,
    *,
    indexes: dict[str | None, RegistryIndex] | None = None,
    releaser: GitReleaser | None = None,
    git_state: GitState | None = None,
) -> list[str]:
    """Publish every crate in the plan, dependencies first.

    Args:
        ctx: Run context.
        plan: Crates and the versions to publish.
        options: Publish flags and wait settings.
        indexes: Registry index clients by registry name (None is
            crates.io); missing ones are created on demand.
        releaser: Git releaser used for the final push.
        git_state: Branch and tags from versioning, pushed after the
            last crate is published.

    Returns:
        Names of the crates published by this run, in publish order.

    Raises:
        PublishError: ``cargo publish`` failed for a crate.
        PublishTimeoutError: A published crate never showed up in the index.
    """
    lookup, order = dependency_order(plan.values())
    order = [path for path in order if is_publishable(lookup[path].package)]

    step(f"Publishing {len(order)} packages")

    indexes = {} if indexes is None else indexes
    owned: list[RegistryIndex] = []
    published: list[str] = []

    try:
        for path in order:
            bump = lookup[path]
            name = bump.package.name
            name_ver = f"{name} v{bump.new}"

            registry = target_registry(bump.package, options)
            if registry not in indexes:
                index = RegistryIndex(
                    resolve_index_url(ctx, registry), token=index_token(registry, options)
                )
                indexes[registry] = index
                owned.append(index)
            index = indexes[registry]

            if index.is_published(name, bump.new):
                info("already published", name_ver)
                continue

            print(f"\n  {name_ver} ({bump.package.path})")
            result = cargo(ctx, *publish_args(bump, options))
            outcome = parse_publish_output(result)
            if not outcome.uploaded:
                raise PublishError(name, result)

            attempts = index.wait_until_published(
                ctx,
                name,
                bump.new,
                timeout=options.publish_timeout,
                interval=options.poll_interval,
            )
            info("published", f"{name_ver} (visible after {attempts} index checks)")
            published.append(name)
    finally:
        for index in owned:
            index.close()

    if git_state is not None and releaser is not None and (git_state.branch or git_state.tags):
        branch = releaser.validate()
        releaser.push(branch, git_state.tags)

    return published


def run_publish(
    ctx: Context,
    options: PublishOptions,
    git_options: GitOptions,
    bump: BumpSpec | None = None,
) -> list[str]:
    """Execute the full publish pipeline.

    Args:
        ctx: Run context.
        options: Publish options; ``from_git`` skips versioning.
        git_options: Commit/tag/push behaviour of the versioning step.
        bump: How to move versions; required unless ``from_git``.

    Returns:
        Names of the crates published by this run.
    """
    metadata = load_metadata(ctx)
    config = read_workspace_config(metadata.metadata)
    groups = classify(metadata, config, include_private=True)

    if options.from_git:
        published = publish_plan(ctx, current_plan(groups), options)
    else:
        if bump is None:
            raise ValueError("a version bump is required unless publishing from git")
        releaser = GitReleaser(ctx, git_options, config)
        _, plan, git_state = apply_versions(ctx, metadata, groups, releaser, bump, push=False)
        published = publish_plan(ctx, plan, options, releaser=releaser, git_state=git_state)

    print(f"\n{'=' * 60}\nDone! Published {len(published)} packages.\n{'=' * 60}")
    return published
