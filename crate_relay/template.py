"""Tag message templates.

A tag message may contain:

- ``%v``: the release version.
- ``%{ ... }``: a scope repeated once per released package, in which
  ``%n`` is the package name and ``%v`` that package's version.

For example ``"Release %v%{\\n- %n %v}"`` renders as::

    Release 1.2.0
    - core 1.2.0
    - cli 1.2.0

``%n`` outside a scope and any other ``%`` sequence are kept verbatim.
Scopes don't nest: ``%{`` inside a scope is an error, as is a scope that is
never closed.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal as LiteralType

from pydantic import BaseModel

from .errors import UnterminatedTagScopeError
from .models import VersionBump


class Literal(BaseModel):
    text: str


class Placeholder(BaseModel):
    key: LiteralType["n", "v"]


class Scope(BaseModel):
    tokens: list[Literal | Placeholder]


Token = Literal | Placeholder | Scope


def _tokenize(text: str) -> list[Literal | Placeholder]:
    tokens: list[Literal | Placeholder] = []
    buf: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == "%" and i + 1 < len(text) and text[i + 1] in "nv":
            if buf:
                tokens.append(Literal(text="".join(buf)))
                buf = []
            tokens.append(Placeholder(key=text[i + 1]))
            i += 2
        else:
            buf.append(text[i])
            i += 1
    if buf:
        tokens.append(Literal(text="".join(buf)))
    return tokens


def parse_tag_message(template: str) -> list[Token]:
    """Split a template into literal, placeholder and scope tokens.

    Raises:
        UnterminatedTagScopeError: A ``%{`` has no matching ``}``, or another
            ``%{`` appears before it is closed.
    """
    tokens: list[Token] = []
    rest = template
    while True:
        head, sep, tail = rest.partition("%{")
        tokens.extend(_tokenize(head))
        if not sep:
            return tokens
        body, closed, rest = tail.partition("}")
        if not closed or "%{" in body:
            raise UnterminatedTagScopeError(template)
        tokens.append(Scope(tokens=_tokenize(body)))


def _render(
    tokens: Iterable[Literal | Placeholder], name: str | None, version: str
) -> str:
    out: list[str] = []
    for token in tokens:
        if isinstance(token, Literal):
            out.append(token.text)
        elif token.key == "v":
            out.append(version)
        elif name is not None:
            out.append(name)
        else:
            out.append("%n")
    return "".join(out)


def render_tag_message(
    tokens: Iterable[Token],
    version: str,
    bumps: Iterable[VersionBump],
    tag_private: bool = False,
) -> str:
    """Render parsed tokens for a release.

    Args:
        tokens: Output of :func:`parse_tag_message`.
        version: The release version substituted for ``%v`` outside scopes.
        bumps: Packages to repeat scopes for, in order.
        tag_private: Also list private packages inside scopes.
    """
    entries = [b for b in bumps if tag_private or not b.package.private]
    out: list[str] = []
    for token in tokens:
        if isinstance(token, Scope):
            for bump in entries:
                out.append(_render(token.tokens, bump.package.name, bump.new))
        else:
            out.append(_render([token], None, version))
    return "".join(out)
