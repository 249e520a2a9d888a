"""Dependency graph utilities.

Provides topological ordering for publishing a workspace. Crates must be
published in dependency order: when crate A depends on crate B, cargo
resolves B from the registry while publishing A, so B has to go first.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from .errors import ConfigurationError, DependencyCycleError
from .models import VersionBump


def dependency_order(
    bumps: Iterable[VersionBump],
) -> tuple[dict[Path, VersionBump], list[Path]]:
    """Order packages so that dependencies come before dependents.

    Uses a depth-first walk that appends a package only after all of its
    dependencies (post-order). Packages and their dependencies are visited
    alphabetically, so the result is the same on every run.

    Only dependencies on other packages in ``bumps`` create edges; anything
    else is assumed to be resolvable from the registry already.

    Args:
        bumps: The packages to order, with the versions being released.

    Returns:
        Tuple of (manifest path → VersionBump lookup, manifest paths in
        publish order).

    Raises:
        DependencyCycleError: If packages depend on each other in a loop.

    Example:
        If A depends on B, and B depends on C:
        dependency_order([A, B, C]) → [C, B, A]
    """
    by_name: dict[str, VersionBump] = {}
    for bump in bumps:
        name = bump.package.name
        if name in by_name:
            raise ConfigurationError(f"package {name} appears more than once")
        by_name[name] = bump

    lookup = {b.package.manifest_path: b for b in by_name.values()}
    order: list[Path] = []
    done: set[str] = set()
    # Packages on the current DFS path, in visiting order.
    path: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in path:
            raise DependencyCycleError([*path[path.index(name) :], name])

        path.append(name)
        deps = sorted(d for d in by_name[name].package.dependencies if d in by_name)
        for dep in deps:
            visit(dep)
        path.pop()

        done.add(name)
        order.append(by_name[name].package.manifest_path)

    for name in sorted(by_name):
        visit(name)

    return lookup, order
