"""Shared helpers for building requests.

These cover the small policies every request path agrees on: how namespace
paths are normalized, how request ids are drawn, when a body is too large to
inline, and which code the client sends for introspection queries.
"""

from __future__ import annotations

import secrets
from enum import Enum
from typing import Iterable, Union

ROOT_NAMESPACE = "Main"

NamespaceLike = Union[str, Iterable[str], None]


class Sentinel(Enum):
    """Distinguished markers that are never valid payloads."""

    NO_VALUE = "no_value"
    MISS = "miss"

    def __repr__(self) -> str:
        return self.name

    def __bool__(self) -> bool:
        return False


# "Ran and produced nothing", as opposed to "never ran".
NO_VALUE = Sentinel.NO_VALUE
# Cache slot not yet populated.
MISS = Sentinel.MISS


def namespace_path(namespace: NamespaceLike = None) -> list[str]:
    """Normalize a namespace argument into an ordered list of segments.

    Args:
        namespace: ``None`` for the root namespace, a qualified name such as
            ``"Main.Foo.Bar"``, or a sequence of segments.

    Returns:
        The list of segments. Defaults to ``["Main"]``.

    Raises:
        ValueError: If a segment is empty or contains whitespace.

    Examples:
        >>> namespace_path()
        ['Main']
        >>> namespace_path("Main.Foo")
        ['Main', 'Foo']
        >>> namespace_path(["Main", "Foo"])
        ['Main', 'Foo']
    """
    if namespace is None:
        return [ROOT_NAMESPACE]
    if isinstance(namespace, str):
        segments = namespace.split(".")
    else:
        segments = [str(segment) for segment in namespace]
    if not segments:
        return [ROOT_NAMESPACE]
    for segment in segments:
        if not segment or any(ch.isspace() for ch in segment):
            raise ValueError(f"Invalid namespace segment: {segment!r}")
    return segments


def new_request_id() -> str:
    """Draw a random 8-digit hex request id from two 16-bit halves."""
    return f"{secrets.randbits(16):04x}{secrets.randbits(16):04x}"


def needs_tmpfile(code: str, inline_limit: int) -> bool:
    """Check whether a request body is too large to send inline."""
    return len(code.encode("utf-8")) > inline_limit


class CacheSlot(str, Enum):
    """Introspection results cached per connection."""

    BASE_NAMES = "base_names"
    CORE_NAMES = "core_names"


INTROSPECTION_QUERIES: dict[CacheSlot, str] = {
    CacheSlot.BASE_NAMES: "map(string, names(Base))",
    CacheSlot.CORE_NAMES: "map(string, names(Core))",
}
