"""CLI entry point for crate-relay."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from crate_relay.errors import ReleaseError
from crate_relay.exec import run_exec
from crate_relay.git import GitOptions
from crate_relay.publish import PublishOptions, run_publish
from crate_relay.registry import DEFAULT_POLL_INTERVAL, DEFAULT_PUBLISH_TIMEOUT
from crate_relay.shell import Context, fatal, warn
from crate_relay.versioning import run_version
from crate_relay.versions import BumpSpec

BUMP_LEVELS = ("major", "minor", "patch", "prerelease")

_GIT_FLAGS = (
    ("--no-git-commit", "Do not commit version changes."),
    ("--amend", "Amend the previous commit instead of creating a new one."),
    ("--no-git-tag", "Do not create tags."),
    ("--tag-existing", "Tag the current commit even when not committing."),
    ("--no-individual-tags", "Do not create per-package tags."),
    ("--no-global-tag", "Do not create the workspace tag."),
    ("--tag-private", "Also tag private packages."),
    ("--no-git-push", "Do not push the commit and tags."),
    ("--skip-all", "Skip every git step."),
)


def git_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the git flags shared by ``version`` and ``publish``."""
    for flag, help_text in reversed(_GIT_FLAGS):
        func = click.option(flag, is_flag=True, help=help_text)(func)
    func = click.option("--allow-branch", help="Branch glob to allow (default: master/main).")(func)
    func = click.option("-m", "--message", help="Commit message; %v is the new version.")(func)
    func = click.option("--tag-prefix", default="v", show_default=True, help="Workspace tag prefix.")(func)
    func = click.option(
        "--individual-tag-prefix",
        default="%n@",
        show_default=True,
        help="Per-package tag prefix; must contain %n.",
    )(func)
    func = click.option("--tag-msg", help="Workspace tag message; supports %v and %{...}.")(func)
    func = click.option("--individual-tag-msg", help="Per-package tag message (%n, %v).")(func)
    func = click.option("--git-remote", default="origin", show_default=True, help="Remote to push to.")(func)
    return func


def _git_options(kwargs: dict[str, Any]) -> GitOptions:
    fields = GitOptions.model_fields
    return GitOptions(**{k: kwargs.pop(k) for k in list(kwargs) if k in fields})


def _bump_spec(bump: str | None, custom: str | None) -> BumpSpec:
    try:
        return BumpSpec(level=bump, custom=custom)
    except ValidationError as exc:
        raise click.UsageError(
            "give a bump level (major, minor, patch, prerelease) or --custom VERSION"
        ) from exc


def _context(obj: dict[str, Any]) -> Context:
    return Context(root=obj["root"], verbose=obj["verbose"])


@click.group()
@click.version_option(package_name="crate-relay")
@click.option("-v", "--verbose", is_flag=True, help="Print every command before running it.")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root directory.",
)
@click.pass_context
def cli(click_ctx: click.Context, verbose: bool, root: Path) -> None:
    """Version, tag and publish the crates of a Cargo workspace."""
    click_ctx.ensure_object(dict)
    click_ctx.obj["root"] = root.resolve()
    click_ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("bump", required=False, type=click.Choice(BUMP_LEVELS))
@click.option("--custom", help="Set this exact version instead of bumping.")
@click.option("--include-private", is_flag=True, help="Also version private packages.")
@git_options
@click.pass_obj
def version(
    obj: dict[str, Any],
    bump: str | None,
    custom: str | None,
    include_private: bool,
    **kwargs: Any,
) -> None:
    """Bump versions, commit, tag and push."""
    spec = _bump_spec(bump, custom)
    try:
        options = _git_options(kwargs)
        new_version, plan, _ = run_version(
            _context(obj), options, spec, include_private=include_private
        )
    except ReleaseError as exc:
        fatal(str(exc))
        return

    click.echo(f"\n✓ Versioned {len(plan)} packages ({new_version or 'independent'})")


@cli.command()
@click.argument("bump", required=False, type=click.Choice(BUMP_LEVELS))
@click.option("--custom", help="Set this exact version instead of bumping.")
@click.option("--from-git", is_flag=True, help="Publish current versions without bumping.")
@click.option("--no-verify", is_flag=True, help="Pass --no-verify to cargo publish.")
@click.option("--allow-dirty", is_flag=True, help="Pass --allow-dirty to cargo publish.")
@click.option("--registry", help="Registry to publish to.")
@click.option("--token", help="Registry API token (default: cargo's own credentials).")
@click.option(
    "--publish-timeout",
    type=float,
    default=DEFAULT_PUBLISH_TIMEOUT,
    show_default=True,
    help="Seconds to wait for each crate to appear in the index.",
)
@click.option(
    "--poll-interval",
    type=float,
    default=DEFAULT_POLL_INTERVAL,
    show_default=True,
    help="Seconds between index checks.",
)
@git_options
@click.pass_obj
def publish(
    obj: dict[str, Any],
    bump: str | None,
    custom: str | None,
    from_git: bool,
    no_verify: bool,
    allow_dirty: bool,
    registry: str | None,
    token: str | None,
    publish_timeout: float,
    poll_interval: float,
    **kwargs: Any,
) -> None:
    """Bump versions, publish every crate in dependency order, then push."""
    if from_git and (bump or custom):
        raise click.UsageError("--from-git publishes current versions; drop BUMP/--custom")
    spec = None if from_git else _bump_spec(bump, custom)

    publish_options = PublishOptions(
        from_git=from_git,
        no_verify=no_verify,
        allow_dirty=allow_dirty,
        registry=registry,
        token=token,
        publish_timeout=publish_timeout,
        poll_interval=poll_interval,
    )
    try:
        options = _git_options(kwargs)
        run_publish(_context(obj), publish_options, options, spec)
    except ReleaseError as exc:
        fatal(str(exc))


@cli.command(
    "exec",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("--no-bail", is_flag=True, help="Keep going after a crate's command fails.")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def exec_command(obj: dict[str, Any], no_bail: bool, command: tuple[str, ...]) -> None:
    """Run COMMAND in every crate directory, dependencies first."""
    try:
        failures = run_exec(_context(obj), command, no_bail=no_bail)
    except ReleaseError as exc:
        fatal(str(exc))
        return

    if failures:
        warn(f"command failed in {len(failures)} packages: {', '.join(failures)}")
    else:
        click.echo("\n✓ success")
