"""Tests for crate_relay.shell."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from crate_relay.errors import CommandNotFoundError, ProcessError
from crate_relay.shell import Context, debug, fatal, git, redact, run, step, warn


class TestRun:
    @patch("crate_relay.shell.subprocess.run")
    def test_captures_and_strips_output(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="master\n", stderr="\n"
        )
        ctx = Context(root=tmp_path)

        result = git(ctx, "rev-parse", "--abbrev-ref", "HEAD")

        assert result.ok
        assert result.stdout == "master"
        assert result.stderr == ""
        assert result.args == ("git", "rev-parse", "--abbrev-ref", "HEAD")
        mock_run.assert_called_once_with(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=tmp_path,
            capture_output=True,
            text=True,
            check=False,
        )

    @patch("crate_relay.shell.subprocess.run")
    def test_nonzero_exit_is_returned(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=101, stdout="", stderr="error: nope"
        )
        result = run(Context(root=tmp_path), "cargo", "publish")
        assert not result.ok
        assert result.returncode == 101

    def test_missing_executable(self, tmp_path: Path) -> None:
        with pytest.raises(CommandNotFoundError, match="no-such-program-xyz"):
            run(Context(root=tmp_path), "no-such-program-xyz")


class TestRedact:
    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (["publish", "--token", "abc", "--no-verify"], "publish --token *** --no-verify"),
            (["publish", "--token=abc"], "publish --token=***"),
            (["publish", "--manifest-path", "a=b/Cargo.toml"], "publish --manifest-path a=b/Cargo.toml"),
        ],
    )
    def test_hides_token_values(self, args: list[str], expected: str) -> None:
        assert redact(args) == expected

    @patch("crate_relay.shell.subprocess.run")
    def test_verbose_trace_hides_token(
        self, mock_run: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=101, stdout="", stderr="error: nope"
        )

        result = run(Context(root=tmp_path, verbose=True), "cargo", "publish", "--token", "s3cret")

        assert "s3cret" not in capsys.readouterr().out
        assert result.command == "cargo publish --token ***"
        assert "s3cret" not in str(ProcessError("failed", result))


class TestOutput:
    def test_step(self, capsys: pytest.CaptureFixture[str]) -> None:
        step("Publishing")
        assert "Publishing" in capsys.readouterr().out

    def test_debug_only_when_verbose(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        debug(Context(root=tmp_path), "git", "status")
        assert capsys.readouterr().out == ""

        debug(Context(root=tmp_path, verbose=True), "git", "status")
        assert "git status" in capsys.readouterr().out

    def test_warn_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        warn("careful")
        assert capsys.readouterr().err == "WARNING: careful\n"

    def test_fatal_exits(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            fatal("boom")
        assert exc_info.value.code == 1
        assert "ERROR: boom" in capsys.readouterr().err
