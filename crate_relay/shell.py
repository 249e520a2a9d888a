"""Shell, git and cargo utilities.

Provides simple wrappers around subprocess calls for running git and cargo
inside the workspace, plus output formatting helpers. Verbose tracing is
driven by the :class:`Context` handed down from the CLI, not by any global.
"""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from .errors import CommandNotFoundError

SECRET_FLAGS = ("--token",)
REDACTED = "***"


def redact(args: Sequence[str]) -> str:
    """Join a command line for display, hiding the values of secret flags.

    Example:
        redact(["publish", "--token", "abc"]) → "publish --token ***"
    """
    shown: list[str] = []
    hide_next = False
    for arg in args:
        if hide_next:
            shown.append(REDACTED)
            hide_next = False
            continue
        flag, eq, _ = arg.partition("=")
        if flag in SECRET_FLAGS:
            if eq:
                arg = f"{flag}={REDACTED}"
            else:
                hide_next = True
        shown.append(arg)
    return " ".join(shown)


class Context(BaseModel):
    """Per-run settings threaded through every step of the pipeline.

    Attributes:
        root: Workspace root; every command runs in this directory.
        verbose: Print each command before it runs.
    """

    model_config = ConfigDict(frozen=True)

    root: Path
    verbose: bool = False


class CommandResult(BaseModel):
    """Exit status and captured (stripped) output of one command."""

    model_config = ConfigDict(frozen=True)

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        """The command line, safe to print."""
        return redact(self.args)


def run(ctx: Context, program: str, *args: str) -> CommandResult:
    """Run a command in the workspace root and capture its output.

    Args:
        ctx: Run context (working directory, verbosity).
        program: Executable to run (e.g., "git").
        *args: Arguments to pass to the program.

    Returns:
        CommandResult with the exit status and stripped stdout/stderr. A
        non-zero exit is returned, not raised; callers decide what it means.

    Raises:
        CommandNotFoundError: If the executable is not on PATH.
    """
    debug(ctx, program, redact(args))
    try:
        proc = subprocess.run(
            [program, *args],
            cwd=ctx.root,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandNotFoundError(program) from exc
    return CommandResult(
        args=(program, *args),
        returncode=proc.returncode,
        stdout=proc.stdout.strip(),
        stderr=proc.stderr.strip(),
    )


def git(ctx: Context, *args: str) -> CommandResult:
    """Run a git command (e.g., ``git(ctx, "tag", "--list")``)."""
    return run(ctx, "git", *args)


def cargo(ctx: Context, *args: str) -> CommandResult:
    """Run a cargo command (e.g., ``cargo(ctx, "publish", ...)``)."""
    return run(ctx, "cargo", *args)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the release pipeline in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def info(desc: str, value: str) -> None:
    """Print a single progress line, e.g. ``info("published", "foo v1.0.0")``."""
    print(f"  {desc}: {value}")


def debug(ctx: Context, desc: str, value: str) -> None:
    """Like :func:`info`, but only when the run is verbose."""
    if ctx.verbose:
        print(f"  [debug] {desc} {value}")


def warn(msg: str) -> None:
    """Print a non-fatal warning to stderr."""
    print(f"WARNING: {msg}", file=sys.stderr)


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Only the CLI calls this; library code raises ReleaseError instead.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
