"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import tomlkit

from crate_relay.metadata import MetadataDependency, MetadataPackage, WorkspaceMetadata
from crate_relay.models import Package, VersionBump
from crate_relay.shell import CommandResult, Context


class CargoWorkspace:
    """Writes a Cargo workspace to disk and describes it like ``cargo metadata``."""

    def __init__(self, root: Path, version: str = "1.0.0") -> None:
        self.root = root
        self.version = version
        self.config: dict[str, Any] = {}
        self.packages: list[MetadataPackage] = []
        self.extra_members: list[str] = []

    def add(
        self,
        rel: str,
        name: str,
        version: str = "1.0.0",
        *,
        deps: dict[str, str] | None = None,
        dev_deps: dict[str, str] | None = None,
        publish: list[str] | None = None,
        inherit: bool = False,
    ) -> Path:
        """Add a crate at ``rel`` depending on ``deps`` (name → requirement)."""
        location = self.root / rel
        location.mkdir(parents=True, exist_ok=True)
        manifest = location / "Cargo.toml"

        doc = tomlkit.document()
        package = tomlkit.table()
        package["name"] = name
        if inherit:
            inherited = tomlkit.inline_table()
            inherited["workspace"] = True
            package["version"] = inherited
            version = self.version
        else:
            package["version"] = version
        if publish is not None:
            package["publish"] = publish if publish else False
        doc["package"] = package

        dependencies: list[MetadataDependency] = []
        for table, kind, specs in (
            ("dependencies", None, deps or {}),
            ("dev-dependencies", "dev", dev_deps or {}),
        ):
            if not specs:
                continue
            section = tomlkit.table()
            for dep, req in specs.items():
                inline = tomlkit.inline_table()
                inline["path"] = f"../{dep}"
                if req != "*":
                    inline["version"] = req
                section[dep] = inline
                dependencies.append(
                    MetadataDependency(name=dep, req=req, kind=kind, path=str(self.root / dep))
                )
            doc[table] = section

        manifest.write_text(tomlkit.dumps(doc))
        self.packages.append(
            MetadataPackage(
                id=f"path+file://{location}#{name}@{version}",
                name=name,
                version=version,
                manifest_path=manifest,
                dependencies=dependencies,
                publish=publish,
            )
        )
        return manifest

    def write_root(self) -> Path:
        doc = tomlkit.document()
        workspace = tomlkit.table()
        workspace["members"] = sorted(
            p.manifest_path.parent.relative_to(self.root).as_posix() for p in self.packages
        )
        package = tomlkit.table()
        package["version"] = self.version
        workspace["package"] = package
        if self.config:
            workspace["metadata"] = {"workspaces": self.config}
        doc["workspace"] = workspace
        manifest = self.root / "Cargo.toml"
        manifest.write_text(tomlkit.dumps(doc))
        return manifest

    def metadata(self) -> WorkspaceMetadata:
        self.write_root()
        return WorkspaceMetadata(
            packages=self.packages,
            workspace_members=[p.id for p in self.packages] + self.extra_members,
            workspace_root=self.root,
            metadata={"workspaces": self.config} if self.config else None,
        )


@pytest.fixture
def cargo_workspace(tmp_path: Path) -> CargoWorkspace:
    """An empty Cargo workspace rooted at tmp_path."""
    return CargoWorkspace(tmp_path)


@pytest.fixture
def ctx(tmp_path: Path) -> Context:
    return Context(root=tmp_path)


def make_bump(
    name: str,
    old: str = "1.0.0",
    new: str = "1.1.0",
    deps: tuple[str, ...] = (),
    *,
    root: Path = Path("/ws"),
    publish: tuple[str, ...] | None = None,
) -> VersionBump:
    """A VersionBump for a crate at ``<root>/<name>`` without touching disk."""
    return VersionBump(
        package=Package(
            id=f"{name} {old}",
            name=name,
            version=old,
            location=root / name,
            path=Path(name),
            manifest_path=root / name / "Cargo.toml",
            publish=publish,
            private=publish == (),
            dependencies=deps,
        ),
        old=old,
        new=new,
    )


def ok(stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(args=(), returncode=0, stdout=stdout, stderr=stderr)


def failed(stderr: str = "", returncode: int = 1, stdout: str = "") -> CommandResult:
    return CommandResult(args=(), returncode=returncode, stdout=stdout, stderr=stderr)

