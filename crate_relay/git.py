"""Git release steps: validate → commit → tag → push.

Each step can be switched off with an option, and ``skip_all`` turns off
every one of them. Every git command's exit status decides success; the
captured output is attached to the error when a step fails.
"""

from __future__ import annotations

import fnmatch

from pydantic import BaseModel, field_validator

from .config import WorkspaceConfig
from .errors import (
    BehindRemoteError,
    BranchNotAllowedError,
    MustContainNameError,
    NoCommitsError,
    NoRemoteError,
    NotAddedError,
    NotBranchError,
    NotCommittedError,
    NotGitError,
    NotPushedError,
    NotTaggedError,
    ProcessError,
)
from .models import VersionBump
from .shell import Context, git, info, step
from .template import parse_tag_message, render_tag_message

DEFAULT_ALLOW_BRANCH = "master"
DEFAULT_COMMIT_MESSAGE = "Release %v"
INDEPENDENT_VERSION = "independent packages"


class GitOptions(BaseModel):
    """Git behaviour for a release run.

    Attributes:
        no_git_commit: Do not commit version changes.
        allow_branch: Branch glob to allow; falls back to the workspace
            config, then ``master`` (which also admits ``main``).
        amend: Amend the previous commit instead of creating one.
        message: Commit message template (``%v`` is the version).
        no_git_tag: Do not create any tags.
        tag_existing: Tag the current commit even without committing.
        no_individual_tags: Do not create per-package tags.
        no_global_tag: Do not create the workspace tag.
        tag_private: Also tag private packages.
        tag_prefix: Prefix of the workspace tag.
        individual_tag_prefix: Prefix of per-package tags; must contain ``%n``.
        tag_msg: Workspace tag message template (see ``template.py``).
        individual_tag_msg: Per-package tag message (``%n`` and ``%v``).
        no_git_push: Do not push the commit and tags.
        git_remote: Remote to push to.
        skip_all: Skip every git step.
    """

    no_git_commit: bool = False
    allow_branch: str | None = None
    amend: bool = False
    message: str | None = None
    no_git_tag: bool = False
    tag_existing: bool = False
    no_individual_tags: bool = False
    no_global_tag: bool = False
    tag_private: bool = False
    tag_prefix: str = "v"
    individual_tag_prefix: str = "%n@"
    tag_msg: str | None = None
    individual_tag_msg: str | None = None
    no_git_push: bool = False
    git_remote: str = "origin"
    skip_all: bool = False

    @field_validator("individual_tag_prefix")
    @classmethod
    def _must_contain_name(cls, value: str) -> str:
        if "%n" not in value:
            raise MustContainNameError("individual_tag_prefix")
        return value

    @field_validator("tag_msg")
    @classmethod
    def _parses(cls, value: str | None) -> str | None:
        # Raises UnterminatedTagScopeError before any file is rewritten.
        if value is not None:
            parse_tag_message(value)
        return value

    @property
    def skip_commit(self) -> bool:
        return self.skip_all or self.no_git_commit

    @property
    def skip_tag(self) -> bool:
        return self.skip_all or self.no_git_tag or (self.no_git_commit and not self.tag_existing)

    @property
    def skip_push(self) -> bool:
        return self.skip_all or self.no_git_push


def commit_message(template: str, new_version: str | None, plan: dict[str, VersionBump]) -> str:
    """Build the release commit message.

    The template is followed by one ``name@version`` line per package, so
    tooling can recover what a release commit contained.
    """
    manifest = "\n".join(f"{name}@{bump.new}" for name, bump in plan.items())
    msg = f"{template}\n\n{manifest}\n\nGenerated by crate-relay"
    return msg.replace("%v", new_version or INDEPENDENT_VERSION)


class GitReleaser:
    """Drives git through a release for one workspace."""

    def __init__(self, ctx: Context, options: GitOptions, config: WorkspaceConfig) -> None:
        self.ctx = ctx
        self.options = options
        self.config = config

    def allow_branch(self) -> str:
        return self.options.allow_branch or self.config.allow_branch or DEFAULT_ALLOW_BRANCH

    def validate(self) -> str | None:
        """Check the repository is ready for a release commit.

        Returns:
            The current branch, or None when no commit will be made.

        Raises:
            RepositoryStateError: Not a repository, no commits, detached
                HEAD, disallowed branch, missing upstream, or behind upstream.
        """
        if self.options.skip_commit:
            return None

        counted = git(self.ctx, "rev-list", "--count", "--all", "--max-count=1")
        if not counted.ok:
            if "not a git repository" in counted.stderr.lower():
                raise NotGitError()
            raise ProcessError("unable to count commits", counted)
        if counted.stdout == "0":
            raise NoCommitsError()

        head = git(self.ctx, "rev-parse", "--abbrev-ref", "HEAD")
        if not head.ok:
            raise ProcessError("unable to read current branch", head)
        branch = head.stdout
        if branch == "HEAD":
            raise NotBranchError()

        pattern = self.allow_branch()
        # `main` is accepted wherever the default `master` is.
        test_branch = "master" if branch == "main" and pattern == "master" else branch
        if not fnmatch.fnmatchcase(test_branch, pattern):
            raise BranchNotAllowedError(branch, pattern)

        if not self.options.skip_push:
            remote = self.options.git_remote
            remote_branch = f"{remote}/{branch}"

            ref = git(self.ctx, "show-ref", "--verify", f"refs/remotes/{remote_branch}")
            if not ref.ok or not ref.stdout:
                raise NoRemoteError(remote, branch)

            updated = git(self.ctx, "remote", "update")
            if not updated.ok:
                raise ProcessError("unable to update remotes", updated)

            behind = git(
                self.ctx, "rev-list", "--left-only", "--count", f"{remote_branch}...{branch}"
            )
            if not behind.ok:
                raise ProcessError("unable to compare with upstream", behind)
            if behind.stdout != "0":
                raise BehindRemoteError(branch, remote_branch)

        return branch

    def commit(
        self,
        new_version: str | None,
        plan: dict[str, VersionBump],
        branch: str | None,
    ) -> None:
        """Stage tracked changes and commit them (or amend the last commit)."""
        if self.options.skip_commit:
            return
        if branch is None:
            raise ValueError("commit requires the branch returned by validate()")

        step("Committing version changes")

        added = git(self.ctx, "add", "-u")
        if not added.ok or added.stdout or added.stderr:
            raise NotAddedError(added)

        if self.options.amend:
            args = ["commit", "--amend", "--no-edit"]
        else:
            template = self.options.message or DEFAULT_COMMIT_MESSAGE
            args = ["commit", "-m", commit_message(template, new_version, plan)]

        committed = git(self.ctx, *args)
        if not committed.ok or committed.stderr or branch not in committed.stdout:
            raise NotCommittedError(committed)
        info("committed", committed.stdout.splitlines()[0])

    def tag(self, new_version: str | None, plan: dict[str, VersionBump]) -> list[str]:
        """Create the workspace tag and per-package tags.

        Tags that already exist are left alone, so re-running a release
        doesn't fail here.

        Returns:
            Names of the tags created by this call.
        """
        if self.options.skip_tag:
            return []

        opts = self.options
        pending: list[tuple[str, str]] = []

        if not opts.no_global_tag and new_version is not None:
            tag = f"{opts.tag_prefix}{new_version}"
            if opts.tag_msg is None:
                msg = tag
            else:
                tokens = parse_tag_message(opts.tag_msg)
                msg = render_tag_message(tokens, new_version, plan.values(), opts.tag_private)
            pending.append((tag, msg))

        if not (opts.no_individual_tags or self.config.no_individual_tags):
            for bump in plan.values():
                pkg = bump.package
                if pkg.private and not opts.tag_private:
                    continue
                tag = opts.individual_tag_prefix.replace("%n", pkg.name) + bump.new
                if opts.individual_tag_msg is None:
                    msg = tag
                else:
                    msg = opts.individual_tag_msg.replace("%n", pkg.name).replace("%v", bump.new)
                pending.append((tag, msg))

        if not pending:
            return []

        step("Tagging release")
        existing = set(self._existing_tags())
        created: list[str] = []
        for tag, msg in pending:
            if tag in existing:
                info("tag already exists", tag)
                continue
            tagged = git(self.ctx, "tag", "-a", tag, "-m", msg)
            if not tagged.ok or tagged.stdout or tagged.stderr:
                raise NotTaggedError(tag, tagged)
            existing.add(tag)
            created.append(tag)
            info("tagged", tag)
        return created

    def _existing_tags(self) -> list[str]:
        listed = git(self.ctx, "tag", "--list")
        if not listed.ok:
            raise ProcessError("unable to list tags", listed)
        return listed.stdout.splitlines()

    def push(self, branch: str | None, tags: list[str]) -> None:
        """Push the branch and the given tags in a single ``git push``."""
        if self.options.skip_push:
            return

        refs = ([branch] if branch else []) + [f"refs/tags/{t}" for t in tags]
        if not refs:
            info("git", "nothing to push")
            return

        step(f"Pushing to {self.options.git_remote}")
        pushed = git(self.ctx, "push", "--no-follow-tags", self.options.git_remote, *refs)
        if not pushed.ok:
            raise NotPushedError(pushed)
        for ref in refs:
            info("pushed", ref)

