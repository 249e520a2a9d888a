"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying Cargo.toml
files. This is important for maintaining readable, diff-friendly manifests.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit
import tomlkit.exceptions


def load_manifest(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a Cargo.toml file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    return tomlkit.parse(path.read_text())


def save_manifest(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def inherits_workspace_version(manifest_path: Path) -> bool:
    """Check whether a crate takes its version from the workspace.

    Only ``[package] version.workspace = true`` counts. A manifest that does
    not parse is treated as not inheriting; cargo has already accepted it, so
    this only happens for syntax tomlkit doesn't support.
    """
    try:
        doc = load_manifest(manifest_path).unwrap()
    except tomlkit.exceptions.ParseError:
        return False
    version = doc.get("package", {}).get("version")
    return isinstance(version, dict) and version.get("workspace") is True
