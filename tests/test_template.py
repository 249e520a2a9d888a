"""Tests for crate_relay.template."""

from __future__ import annotations

import pytest
from conftest import make_bump

from crate_relay.errors import UnterminatedTagScopeError
from crate_relay.template import (
    Literal,
    Placeholder,
    Scope,
    parse_tag_message,
    render_tag_message,
)


class TestParseTagMessage:
    def test_plain_text(self) -> None:
        assert parse_tag_message("release") == [Literal(text="release")]

    def test_version_placeholder(self) -> None:
        assert parse_tag_message("Release %v!") == [
            Literal(text="Release "),
            Placeholder(key="v"),
            Literal(text="!"),
        ]

    def test_scope(self) -> None:
        assert parse_tag_message("%v%{ %n=%v}") == [
            Placeholder(key="v"),
            Scope(tokens=[Literal(text=" "), Placeholder(key="n"), Literal(text="="), Placeholder(key="v")]),
        ]

    def test_unknown_sequences_stay_literal(self) -> None:
        assert parse_tag_message("100%x") == [Literal(text="100%x")]

    def test_unterminated_scope(self) -> None:
        with pytest.raises(UnterminatedTagScopeError):
            parse_tag_message("Release %{ %n")

    def test_nested_scope(self) -> None:
        with pytest.raises(UnterminatedTagScopeError):
            parse_tag_message("%{ %n %{ %v } }")


class TestRenderTagMessage:
    """Tests for render_tag_message()."""

    @pytest.fixture
    def bumps(self):
        return [
            make_bump("core", "1.0.0", "1.1.0"),
            make_bump("cli", "1.0.0", "1.1.0"),
            make_bump("xtask", "0.1.0", "0.2.0", publish=()),
        ]

    def test_scope_repeats_per_package(self, bumps) -> None:
        tokens = parse_tag_message("Release %v%{\n- %n %v}")
        assert render_tag_message(tokens, "1.1.0", bumps) == (
            "Release 1.1.0\n- core 1.1.0\n- cli 1.1.0"
        )

    def test_private_packages_only_with_tag_private(self, bumps) -> None:
        tokens = parse_tag_message("%{[%n]}")
        assert render_tag_message(tokens, "1.1.0", bumps) == "[core][cli]"
        assert render_tag_message(tokens, "1.1.0", bumps, tag_private=True) == "[core][cli][xtask]"

    def test_name_outside_scope_is_literal(self, bumps) -> None:
        tokens = parse_tag_message("%n %v")
        assert render_tag_message(tokens, "1.1.0", bumps) == "%n 1.1.0"

    def test_scope_uses_package_version(self) -> None:
        tokens = parse_tag_message("%{%n@%v }")
        bumps = [make_bump("a", "0.1.0", "0.2.0"), make_bump("b", "3.0.0", "3.0.1")]
        assert render_tag_message(tokens, "ignored", bumps) == "a@0.2.0 b@3.0.1 "
