"""Version parsing and bumping utilities.

Crate versions are full semver (``MAJOR.MINOR.PATCH[-PRE][+BUILD]``), so
unlike Python versions there is no padding of short versions here.
"""

from __future__ import annotations

from typing import Literal

import semver
from pydantic import BaseModel, model_validator

BumpLevel = Literal["major", "minor", "patch", "prerelease"]


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object."""
    return semver.Version.parse(version_str)


def bump_version(version_str: str, level: BumpLevel) -> str:
    """Bump one component and return the new version as a string.

    Examples:
        "1.2.3", "patch" → "1.2.4"
        "1.2.3", "minor" → "1.3.0"
        "1.2.3", "major" → "2.0.0"
        "1.2.3", "prerelease" → "1.2.3-rc.1"
        "1.2.3-rc.1", "prerelease" → "1.2.3-rc.2"
    """
    version = parse_version(version_str)
    if level == "major":
        return str(version.bump_major())
    if level == "minor":
        return str(version.bump_minor())
    if level == "patch":
        return str(version.bump_patch())
    return str(version.bump_prerelease())


class BumpSpec(BaseModel):
    """How to move versions forward: a semver level or an exact version."""

    level: BumpLevel | None = None
    custom: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> BumpSpec:
        if (self.level is None) == (self.custom is None):
            raise ValueError("give either a bump level or a custom version")
        if self.custom is not None:
            parse_version(self.custom)
        return self

    def apply(self, version_str: str) -> str:
        if self.custom is not None:
            return self.custom
        assert self.level is not None
        return bump_version(version_str, self.level)

    def __str__(self) -> str:
        return self.custom or str(self.level)
