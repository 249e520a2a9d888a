"""Registry index client.

Reads the sparse HTTP index (https://doc.rust-lang.org/cargo/reference/registry-index.html)
that cargo itself resolves dependencies from. Each crate has one file with a
JSON object per published version::

    GET https://index.crates.io/se/rd/serde
    {"name":"serde","vers":"1.0.0",...}
    {"name":"serde","vers":"1.0.1",...}

After ``cargo publish`` returns there is a delay before the new version shows
up in the index. Dependents published in the same run are resolved from the
index, so the pipeline waits here (bounded) before moving on.
"""

from __future__ import annotations

import json
import os
import time
from types import TracebackType
from typing import Final

import httpx

from .errors import BadConfigGetOutputError, ProcessError, PublishTimeoutError, RegistryError
from .shell import Context, cargo, debug

CRATES_IO_INDEX: Final[str] = "https://index.crates.io/"
CRATES_IO_GIT_INDEX: Final[str] = "https://github.com/rust-lang/crates.io-index"

DEFAULT_TIMEOUT: Final[float] = 30.0
DEFAULT_PUBLISH_TIMEOUT: Final[float] = 300.0
DEFAULT_POLL_INTERVAL: Final[float] = 5.0
MIN_POLL_INTERVAL: Final[float] = 0.5


def index_path(name: str) -> str:
    """Path of a crate's file in the index, relative to the index root.

    Examples:
        "a" → "1/a"
        "ab" → "2/ab"
        "abc" → "3/a/abc"
        "Serde" → "se/rd/serde"
    """
    name = name.lower()
    if len(name) <= 2:
        return f"{len(name)}/{name}"
    if len(name) == 3:
        return f"3/{name[0]}/{name}"
    return f"{name[:2]}/{name[2:4]}/{name}"


def parse_config_get_output(output: str) -> str:
    """Extract the value from ``cargo config get`` output.

    Expects a single line like ``registries.my-reg.index = "sparse+https://..."``.

    Raises:
        BadConfigGetOutputError: On any other shape.
    """
    key, sep, value = output.strip().partition("=")
    value = value.strip()
    if not sep or not key.strip() or len(value) < 2 or value[0] != '"' or value[-1] != '"':
        raise BadConfigGetOutputError(output)
    return value[1:-1]


def normalize_index_url(url: str) -> str:
    """Turn a configured index URL into the base URL of a sparse index.

    Raises:
        RegistryError: For git-based indexes other than crates.io's.
    """
    if url.startswith("sparse+"):
        return url.removeprefix("sparse+").rstrip("/") + "/"
    if url.removeprefix("registry+").rstrip("/") == CRATES_IO_GIT_INDEX:
        return CRATES_IO_INDEX
    raise RegistryError(f"only sparse registry indexes are supported, got {url}")


def resolve_index_url(ctx: Context, registry: str | None) -> str:
    """Find the index URL for a named registry, or crates.io for None.

    Looks at ``CARGO_REGISTRIES_<NAME>_INDEX`` first, then asks cargo.
    """
    if registry is None or registry == "crates-io":
        return CRATES_IO_INDEX

    env_key = f"CARGO_REGISTRIES_{registry.upper().replace('-', '_')}_INDEX"
    if env_key in os.environ:
        return normalize_index_url(os.environ[env_key])

    result = cargo(
        ctx, "-Zunstable-options", "config", "get", f"registries.{registry}.index"
    )
    if not result.ok:
        raise ProcessError(f"unable to find the index of registry {registry}", result)
    return normalize_index_url(parse_config_get_output(result.stdout))


class RegistryIndex:
    """Read-only client for one sparse registry index.

    Args:
        url: Base URL of the index (see :func:`resolve_index_url`).
        client: Optional pre-built httpx client (tests pass one with a
            mock transport).
        token: Sent as ``Authorization`` for registries that need auth.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        *,
        client: httpx.Client | None = None,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url.rstrip("/") + "/"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout), follow_redirects=True)
        self._headers = {"Cache-Control": "no-cache"}
        if token:
            self._headers["Authorization"] = token

    def __enter__(self) -> RegistryIndex:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def published_versions(self, name: str) -> set[str]:
        """All versions of a crate listed in the index (yanked ones included).

        Raises:
            RegistryError: The index could not be reached or returned
                something other than an index file.
        """
        url = self.url + index_path(name)
        try:
            response = self._client.get(url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise RegistryError(f"unable to query {url}: {exc}") from exc

        if response.status_code in (404, 410):
            return set()
        if not response.is_success:
            raise RegistryError(f"unable to query {url}: HTTP {response.status_code}")

        versions: set[str] = set()
        for line in response.text.splitlines():
            if not line.strip():
                continue
            try:
                versions.add(json.loads(line)["vers"])
            except (ValueError, KeyError, TypeError) as exc:
                raise RegistryError(f"malformed index entry in {url}: {line!r}") from exc
        return versions

    def is_published(self, name: str, version: str) -> bool:
        return version in self.published_versions(name)

    def wait_until_published(
        self,
        ctx: Context,
        name: str,
        version: str,
        *,
        timeout: float = DEFAULT_PUBLISH_TIMEOUT,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> int:
        """Poll the index until ``name`` ``version`` appears.

        A failed query counts as "not there yet"; only the deadline ends
        the wait.

        Returns:
            Number of index queries it took.

        Raises:
            PublishTimeoutError: The version did not show up within ``timeout``.
        """
        interval = max(interval, MIN_POLL_INTERVAL)
        deadline = time.monotonic() + timeout
        attempt = 0

        while True:
            attempt += 1
            try:
                if self.is_published(name, version):
                    return attempt
                reason = "not in index yet"
            except RegistryError as exc:
                reason = str(exc)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise PublishTimeoutError(name, version, timeout)
            wait = min(interval, remaining)
            debug(ctx, "waiting", f"{name} v{version}: {reason}, retry in {wait:.1f}s")
            time.sleep(wait)
