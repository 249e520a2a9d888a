"""Error types raised by the release pipeline.

Every failure the pipeline can surface is a subclass of :class:`ReleaseError`,
grouped by kind so callers can tell a bad configuration from a repository in
the wrong state, a failed external command, or a registry that never caught
up. Nothing in the library exits the process; ``cli.py`` turns these into a
non-zero exit.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .shell import CommandResult


def _quoted(items: Sequence[str]) -> str:
    return ", ".join(f"`{item}`" for item in items)


class ReleaseError(Exception):
    """Base class for all pipeline errors."""


# --- Configuration ---------------------------------------------------------


class ConfigurationError(ReleaseError):
    """Group declarations, workspace layout or metadata are unusable."""


class ReservedGroupNameError(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"the group `{name}` is a reserved group name")
        self.name = name


class InvalidGroupNameError(ConfigurationError):
    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"{reason} in group name: `{name}`")
        self.name = name


class DuplicateGroupNameError(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"the group `{name}` is defined multiple times")
        self.name = name


class EmptyGroupError(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"the group `{name}` has no members")
        self.name = name


class PackageInMultipleGroupsError(ConfigurationError):
    """A package was claimed by more than one group.

    ``inherits`` distinguishes the two causes: a package that inherits the
    workspace version matched a custom group at all, or a regular package
    matched several custom groups.
    """

    def __init__(
        self, name: str, rel_path: str, groups: Sequence[str], *, inherits: bool
    ) -> None:
        note = (
            "which inherits the workspace version is also included in these groups"
            if inherits
            else "was matched in multiple groups"
        )
        super().__init__(f"the package `{name}` ({rel_path}) {note}: {_quoted(groups)}")
        self.name = name
        self.rel_path = rel_path
        self.groups = list(groups)
        self.inherits = inherits


class UnmatchedGroupPatternError(ConfigurationError):
    def __init__(self, unmatched: Mapping[str, Sequence[str]]) -> None:
        lines = [
            f"{'':8} - `{group}` : {_quoted(patterns)}"
            for group, patterns in sorted(unmatched.items())
        ]
        super().__init__(
            "these group member patterns matched no packages:\n" + "\n".join(lines)
        )
        self.unmatched = {group: list(patterns) for group, patterns in unmatched.items()}


class UnmatchedExcludePatternError(ConfigurationError):
    def __init__(self, patterns: Sequence[str]) -> None:
        super().__init__(
            f"these excluded member patterns matched no packages: {_quoted(patterns)}"
        )
        self.patterns = list(patterns)


class EmptyWorkspaceError(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("did not find any package")


class PackageNotInWorkspaceError(ConfigurationError):
    def __init__(self, package_id: str, workspace_root: str) -> None:
        super().__init__(f"package {package_id} is not inside workspace {workspace_root}")
        self.package_id = package_id


class DependencyCycleError(ConfigurationError):
    def __init__(self, cycle: Sequence[str]) -> None:
        super().__init__("dependency cycle detected: " + " -> ".join(cycle))
        self.cycle = list(cycle)


class MustContainNameError(ConfigurationError):
    def __init__(self, option: str) -> None:
        super().__init__(f"{option} value must contain '%n'")
        self.option = option


class BadMetadataError(ConfigurationError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"unable to read workspace metadata: {detail}")


# --- Repository state ------------------------------------------------------


class RepositoryStateError(ReleaseError):
    """The git repository is not in a state the release can start from."""


class NotGitError(RepositoryStateError):
    def __init__(self) -> None:
        super().__init__("not a git repository")


class NoCommitsError(RepositoryStateError):
    def __init__(self) -> None:
        super().__init__("no commits in this repository")


class NotBranchError(RepositoryStateError):
    def __init__(self) -> None:
        super().__init__("not on a git branch")


class BranchNotAllowedError(RepositoryStateError):
    def __init__(self, branch: str, pattern: str) -> None:
        super().__init__(
            f"not allowed to run on branch {branch} because it doesn't match pattern {pattern}"
        )
        self.branch = branch
        self.pattern = pattern


class NoRemoteError(RepositoryStateError):
    def __init__(self, remote: str, branch: str) -> None:
        super().__init__(f"remote {remote} not found or branch {branch} not in {remote}")
        self.remote = remote
        self.branch = branch


class BehindRemoteError(RepositoryStateError):
    def __init__(self, branch: str, upstream: str) -> None:
        super().__init__(f"local branch {branch} is behind upstream {upstream}")
        self.branch = branch
        self.upstream = upstream


# --- Process execution -----------------------------------------------------


class ProcessError(ReleaseError):
    """An external command failed or produced output we don't understand.

    The offending :class:`~crate_relay.shell.CommandResult` is kept so the
    raw stdout/stderr can be shown to the user.
    """

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        if result is not None:
            message = (
                f"{message}\n  command: {result.command}"
                f"\n  exit status: {result.returncode}"
                f"\n  stdout: {result.stdout}\n  stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


class CommandNotFoundError(ProcessError):
    def __init__(self, program: str) -> None:
        super().__init__(f"unable to run {program}: executable not found")
        self.program = program


class NotAddedError(ProcessError):
    def __init__(self, result: CommandResult) -> None:
        super().__init__("unable to add files to git index", result)


class NotCommittedError(ProcessError):
    def __init__(self, result: CommandResult) -> None:
        super().__init__("unable to commit to git", result)


class NotTaggedError(ProcessError):
    def __init__(self, tag: str, result: CommandResult) -> None:
        super().__init__(f"unable to tag {tag}", result)
        self.tag = tag


class NotPushedError(ProcessError):
    def __init__(self, result: CommandResult) -> None:
        super().__init__("unable to push to remote", result)


class PublishError(ProcessError):
    def __init__(self, name: str, result: CommandResult | None = None) -> None:
        super().__init__(f"unable to publish package {name}", result)
        self.name = name


class ExecError(ProcessError):
    def __init__(self, name: str, result: CommandResult) -> None:
        super().__init__(f"command failed in package {name}", result)
        self.name = name


class LockfileUpdateError(ProcessError):
    def __init__(self, result: CommandResult) -> None:
        super().__init__("unable to update Cargo.lock", result)


class BadConfigGetOutputError(ProcessError):
    def __init__(self, output: str) -> None:
        super().__init__(f"could not understand 'cargo config get' output: {output}")


class RegistryError(ProcessError):
    """The registry index could not be queried."""


# --- Timeout ---------------------------------------------------------------


class PublishTimeoutError(ReleaseError):
    """The registry never showed a version we just published.

    Everything published so far stays published, so re-running the release
    picks up where this one stopped.
    """

    def __init__(self, name: str, version: str, timeout: float) -> None:
        super().__init__(
            f"publishing has timed out: {name} v{version} was not visible in the "
            f"registry index after {timeout:g}s (re-running will resume the release)"
        )
        self.name = name
        self.version = version


# --- Templating ------------------------------------------------------------


class TemplateError(ReleaseError):
    """A tag message template could not be parsed."""


class UnterminatedTagScopeError(TemplateError):
    def __init__(self, template: str) -> None:
        super().__init__(f"unterminated tag message scope in {template!r}")
        self.template = template
