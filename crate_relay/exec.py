"""Run an arbitrary command in every crate of the workspace.

Crates are visited in publish order, dependencies first, so a command like
``cargo test`` reaches each crate only after the crates it builds on. Every
member is visited, including private and excluded ones.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence

from .errors import ExecError
from .graph import dependency_order
from .groups import make_package
from .metadata import WorkspaceMetadata, load_metadata
from .models import Package, VersionBump
from .shell import Context, redact, run, step, warn


def workspace_order(metadata: WorkspaceMetadata) -> list[Package]:
    """All workspace members, dependencies before dependents."""
    bumps = []
    for package_id in metadata.workspace_members:
        meta = metadata.find(package_id)
        if meta is None:
            warn(f"no metadata for workspace member {package_id}")
            continue
        pkg = make_package(meta, metadata.workspace_root)
        bumps.append(VersionBump(package=pkg, old=pkg.version, new=pkg.version))

    lookup, order = dependency_order(bumps)
    return [lookup[path].package for path in order]


def exec_each(
    ctx: Context,
    metadata: WorkspaceMetadata,
    command: Sequence[str],
    *,
    no_bail: bool = False,
) -> list[str]:
    """Run ``command`` in each crate's directory.

    Args:
        ctx: Run context; each command runs in the crate directory instead
            of ``ctx.root``.
        metadata: Workspace metadata.
        command: Program and its arguments.
        no_bail: Keep going after a crate's command exits non-zero.

    Returns:
        Names of the crates where the command failed (only ever non-empty
        with ``no_bail``).

    Raises:
        ExecError: The command failed in a crate and ``no_bail`` is off.
    """
    if not command:
        raise ValueError("a command is required")
    program, *args = command

    packages = workspace_order(metadata)
    step(f"Running `{redact(command)}` in {len(packages)} packages")

    failures: list[str] = []
    for pkg in packages:
        print(f"\n  {pkg.name} ({pkg.path})")
        result = run(ctx.model_copy(update={"root": pkg.location}), program, *args)
        if result.stdout:
            print(result.stdout)
        if result.stderr:
            print(result.stderr, file=sys.stderr)
        if result.ok:
            continue
        if not no_bail:
            raise ExecError(pkg.name, result)
        warn(f"{pkg.name}: exit status {result.returncode}")
        failures.append(pkg.name)

    return failures


def run_exec(ctx: Context, command: Sequence[str], *, no_bail: bool = False) -> list[str]:
    """Load the workspace and run ``command`` in every crate."""
    return exec_each(ctx, load_metadata(ctx), command, no_bail=no_bail)
