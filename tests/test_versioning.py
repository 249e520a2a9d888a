"""Tests for crate_relay.versioning."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import tomlkit
from conftest import CargoWorkspace, failed, ok

from crate_relay.config import read_workspace_config
from crate_relay.errors import BranchNotAllowedError, LockfileUpdateError
from crate_relay.groups import classify
from crate_relay.models import GroupName, WorkspaceGroups
from crate_relay.shell import Context
from crate_relay.toml import load_manifest
from crate_relay.versioning import (
    apply_versions,
    plan_versions,
    retain_operator,
    rewrite_manifests,
    update_dependency_requirements,
    update_lockfile,
)
from crate_relay.versions import BumpSpec

MINOR = BumpSpec(level="minor")


def _groups(ws: CargoWorkspace) -> WorkspaceGroups:
    metadata = ws.metadata()
    return classify(metadata, read_workspace_config(metadata.metadata))


def _version(path: Path) -> str:
    return str(load_manifest(path)["package"]["version"])  # type: ignore[index]


@pytest.fixture
def layered(cargo_workspace: CargoWorkspace) -> CargoWorkspace:
    """core (default group), plugin (lockstep group), demo (excluded)."""
    cargo_workspace.add("crates/core", "core", "1.0.0")
    cargo_workspace.add("plugins/plugin", "plugin", "0.4.0", deps={"core": "^1.0.0"})
    cargo_workspace.add("examples/demo", "demo", "0.1.0", deps={"core": "=1.0.0", "plugin": "0.4"})
    cargo_workspace.config = {
        "version": "1.0.0",
        "groups": [{"name": "plugins", "members": ["plugins/*"], "version": "0.4.0"}],
        "exclude": {"members": ["examples/*"]},
    }
    return cargo_workspace


class TestPlanVersions:
    def test_lockstep_groups(self, layered: CargoWorkspace) -> None:
        new_version, plan, group_versions = plan_versions(_groups(layered), MINOR)

        assert new_version == "1.1.0"
        assert list(plan) == ["core", "plugin"]
        assert plan["core"].new == "1.1.0"
        assert plan["plugin"].old == "0.4.0"
        assert plan["plugin"].new == "0.5.0"
        assert group_versions == {
            GroupName.default(): "1.1.0",
            GroupName.custom("plugins"): "0.5.0",
        }

    def test_independent_packages(self, cargo_workspace: CargoWorkspace) -> None:
        cargo_workspace.add("a", "a", "1.0.0")
        cargo_workspace.add("b", "b", "2.3.4")

        new_version, plan, group_versions = plan_versions(
            _groups(cargo_workspace), BumpSpec(level="patch")
        )

        assert new_version is None
        assert {n: b.new for n, b in plan.items()} == {"a": "1.0.1", "b": "2.3.5"}
        assert group_versions == {}

    def test_custom_version(self, layered: CargoWorkspace) -> None:
        _, plan, _ = plan_versions(_groups(layered), BumpSpec(custom="2.0.0"))
        assert {b.new for b in plan.values()} == {"2.0.0"}


class TestRetainOperator:
    @pytest.mark.parametrize(
        ("req", "expected"),
        [
            ("1.0.0", "1.1.0"),
            ("^1.0", "^1.1.0"),
            ("=1.0.0", "=1.1.0"),
            ("~1.0.0", "~1.1.0"),
            (">=1.0.0", ">=1.1.0"),
        ],
    )
    def test_keeps_operator(self, req: str, expected: str) -> None:
        assert retain_operator(req, "1.1.0") == expected


class TestUpdateDependencyRequirements:
    def test_all_tables(self) -> None:
        doc = tomlkit.parse(
            """\
[dependencies]
core = { path = "../core", version = "1.0.0" }
serde = "1"

[dev-dependencies]
core-test = { path = "../core-test", version = "=1.0.0" }

[build-dependencies]
renamed = { package = "core", path = "../core", version = "^1.0" }

[target.'cfg(unix)'.dependencies]
core = { path = "../core", version = "1.0.0" }

[workspace.dependencies]
core = { path = "crates/core", version = "1.0.0" }
"""
        )

        changed = update_dependency_requirements(doc, {"core": "1.1.0", "core-test": "1.1.0"})

        assert changed
        assert doc["dependencies"]["core"]["version"] == "1.1.0"
        assert doc["dependencies"]["serde"] == "1"
        assert doc["dev-dependencies"]["core-test"]["version"] == "=1.1.0"
        assert doc["build-dependencies"]["renamed"]["version"] == "^1.1.0"
        assert doc["target"]["cfg(unix)"]["dependencies"]["core"]["version"] == "1.1.0"
        assert doc["workspace"]["dependencies"]["core"]["version"] == "1.1.0"

    def test_path_only_dependency_untouched(self) -> None:
        doc = tomlkit.parse('[dependencies]\ncore = { path = "../core" }\n')
        assert not update_dependency_requirements(doc, {"core": "1.1.0"})
        assert "version" not in doc["dependencies"]["core"]


class TestRewriteManifests:
    """Tests for rewrite_manifests()."""

    def test_writes_versions_and_requirements(self, layered: CargoWorkspace) -> None:
        metadata = layered.metadata()
        groups = classify(metadata, read_workspace_config(metadata.metadata))
        _, plan, group_versions = plan_versions(groups, MINOR)

        changed = rewrite_manifests(metadata, plan, group_versions)

        root = layered.root
        assert _version(root / "crates/core/Cargo.toml") == "1.1.0"
        assert _version(root / "plugins/plugin/Cargo.toml") == "0.5.0"
        # Excluded crates keep their version but follow their dependencies.
        demo = load_manifest(root / "examples/demo/Cargo.toml")
        assert demo["package"]["version"] == "0.1.0"
        assert demo["dependencies"]["core"]["version"] == "=1.1.0"
        assert demo["dependencies"]["plugin"]["version"] == "0.5.0"
        plugin = load_manifest(root / "plugins/plugin/Cargo.toml")
        assert plugin["dependencies"]["core"]["version"] == "^1.1.0"

        settings = load_manifest(root / "Cargo.toml")["workspace"]["metadata"]["workspaces"]
        assert settings["version"] == "1.1.0"
        assert settings["groups"][0]["version"] == "0.5.0"
        assert root / "Cargo.toml" in changed

    def test_inherited_version_bumps_workspace_package(
        self, cargo_workspace: CargoWorkspace
    ) -> None:
        cargo_workspace.add("crates/core", "core", inherit=True)
        cargo_workspace.add("crates/cli", "cli", inherit=True)
        metadata = cargo_workspace.metadata()
        groups = classify(metadata, read_workspace_config(metadata.metadata))
        _, plan, group_versions = plan_versions(groups, BumpSpec(custom="1.1.0"))

        changed = rewrite_manifests(metadata, plan, group_versions)

        root_doc = load_manifest(cargo_workspace.root / "Cargo.toml")
        assert root_doc["workspace"]["package"]["version"] == "1.1.0"
        core = load_manifest(cargo_workspace.root / "crates/core/Cargo.toml")
        assert core["package"]["version"]["workspace"] is True
        assert changed == [cargo_workspace.root / "Cargo.toml"]


class TestUpdateLockfile:
    @patch("crate_relay.versioning.cargo")
    def test_no_lockfile(self, mock_cargo: MagicMock, tmp_path: Path) -> None:
        update_lockfile(Context(root=tmp_path))
        mock_cargo.assert_not_called()

    @patch("crate_relay.versioning.cargo")
    def test_updates_workspace_entries(self, mock_cargo: MagicMock, tmp_path: Path) -> None:
        (tmp_path / "Cargo.lock").write_text("version = 3\n")
        ctx = Context(root=tmp_path)
        mock_cargo.return_value = ok()

        update_lockfile(ctx)

        mock_cargo.assert_called_once_with(ctx, "update", "--workspace")

    @patch("crate_relay.versioning.cargo")
    def test_failure(self, mock_cargo: MagicMock, tmp_path: Path) -> None:
        (tmp_path / "Cargo.lock").write_text("version = 3\n")
        mock_cargo.return_value = failed("error: failed to select a version")
        with pytest.raises(LockfileUpdateError):
            update_lockfile(Context(root=tmp_path))


class TestApplyVersions:
    @patch("crate_relay.versioning.update_lockfile")
    def test_full_run(self, mock_lock: MagicMock, layered: CargoWorkspace) -> None:
        metadata = layered.metadata()
        groups = classify(metadata, read_workspace_config(metadata.metadata))
        releaser = MagicMock()
        releaser.validate.return_value = "master"
        releaser.tag.return_value = ["v1.1.0", "core@1.1.0", "plugin@0.5.0"]

        new_version, plan, state = apply_versions(
            Context(root=layered.root), metadata, groups, releaser, MINOR
        )

        assert new_version == "1.1.0"
        assert state.branch == "master"
        assert state.tags == ["v1.1.0", "core@1.1.0", "plugin@0.5.0"]
        releaser.commit.assert_called_once_with("1.1.0", plan, "master")
        releaser.push.assert_called_once_with("master", state.tags)
        assert _version(layered.root / "crates/core/Cargo.toml") == "1.1.0"

    @patch("crate_relay.versioning.update_lockfile")
    def test_push_deferred(self, mock_lock: MagicMock, layered: CargoWorkspace) -> None:
        metadata = layered.metadata()
        groups = classify(metadata, read_workspace_config(metadata.metadata))
        releaser = MagicMock()
        releaser.validate.return_value = "master"
        releaser.tag.return_value = []

        apply_versions(Context(root=layered.root), metadata, groups, releaser, MINOR, push=False)

        releaser.push.assert_not_called()

    def test_nothing_written_when_validation_fails(self, layered: CargoWorkspace) -> None:
        metadata = layered.metadata()
        groups = classify(metadata, read_workspace_config(metadata.metadata))
        releaser = MagicMock()
        releaser.validate.side_effect = BranchNotAllowedError("feature/x", "master")

        with pytest.raises(BranchNotAllowedError):
            apply_versions(Context(root=layered.root), metadata, groups, releaser, MINOR)

        assert _version(layered.root / "crates/core/Cargo.toml") == "1.0.0"
        releaser.commit.assert_not_called()
