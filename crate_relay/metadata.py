"""Workspace metadata from ``cargo metadata``.

Cargo already knows every workspace member, its manifest, dependencies and
publish settings; we ask it once per run rather than re-parsing manifests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .errors import BadMetadataError, ProcessError
from .shell import Context, cargo, step


class MetadataDependency(BaseModel):
    name: str
    req: str = "*"
    kind: str | None = None
    path: str | None = None


class MetadataPackage(BaseModel):
    id: str
    name: str
    version: str
    manifest_path: Path
    dependencies: list[MetadataDependency] = Field(default_factory=list)
    publish: list[str] | None = None
    metadata: dict[str, Any] | None = None

    def ordering_dependencies(self) -> list[str]:
        """Names of dependencies that must be published before this package.

        Normal and build dependencies always count. Dev-dependencies count
        only when they carry a version requirement: path-only ones are
        stripped by ``cargo publish`` and commonly point back at dependents.
        """
        names: list[str] = []
        for dep in self.dependencies:
            if dep.kind == "dev" and dep.req == "*":
                continue
            if dep.name not in names:
                names.append(dep.name)
        return names


class WorkspaceMetadata(BaseModel):
    """The subset of ``cargo metadata --format-version 1`` we rely on."""

    packages: list[MetadataPackage]
    workspace_members: list[str]
    workspace_root: Path
    metadata: dict[str, Any] | None = None

    def find(self, package_id: str) -> MetadataPackage | None:
        return next((p for p in self.packages if p.id == package_id), None)


def parse_metadata(output: str) -> WorkspaceMetadata:
    """Validate the JSON printed by ``cargo metadata``."""
    try:
        return WorkspaceMetadata.model_validate_json(output)
    except ValidationError as exc:
        raise BadMetadataError(str(exc)) from exc


def load_metadata(ctx: Context) -> WorkspaceMetadata:
    """Run ``cargo metadata`` in the workspace root and parse its output."""
    step("Reading workspace metadata")
    result = cargo(ctx, "metadata", "--format-version", "1", "--no-deps")
    if not result.ok:
        raise ProcessError("unable to read cargo metadata", result)
    metadata = parse_metadata(result.stdout)
    print(f"  {len(metadata.workspace_members)} members in {metadata.workspace_root}")
    return metadata
