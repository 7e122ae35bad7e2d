"""
Cache keys derived from resolved paths and query parameters.

A key is the list of non-empty path segments, optionally followed by one
``dict`` holding the query parameters:

    /pets              -> ["pets"]
    /pets?limit=10     -> ["pets", {"limit": 10}]
    /pets/123          -> ["pets", "123"]

Keys compare structurally with ``==``.
"""

from __future__ import annotations

import json
from typing import Any, Callable, List, Mapping, Optional, Sequence

QueryKey = List[Any]


def to_key(resolved_path: str) -> QueryKey:
    """Split on ``/`` and drop empty segments."""
    return [segment for segment in resolved_path.split("/") if segment]


def with_query_params(key: Sequence[Any], query_params: Optional[Mapping[str, Any]]) -> QueryKey:
    """Append the query parameters as a trailing element when there are any."""
    if not query_params:
        return list(key)
    cleaned = {name: value for name, value in query_params.items() if value is not None}
    if not cleaned:
        return list(key)
    return [*key, cleaned]


def normalize(key: Sequence[Any]) -> QueryKey:
    """Drop a trailing query-parameter element; scalar tails are kept."""
    if key and isinstance(key[-1], Mapping):
        return list(key[:-1])
    return list(key)


def is_prefix(prefix: Sequence[Any], key: Sequence[Any]) -> bool:
    """True if ``key`` starts with every element of ``prefix``."""
    if len(prefix) > len(key):
        return False
    return all(a == b for a, b in zip(prefix, key))


def keys_equal(a: Sequence[Any], b: Sequence[Any]) -> bool:
    return len(a) == len(b) and is_prefix(a, b)


class ListKeyMatcher:
    """Predicate selecting a list key and its filtered variants.

    ``["pets"]`` and ``["pets", {"status": "x"}]`` match ``["pets"]``;
    ``["pets", "123"]`` does not.
    """

    def __init__(self, list_key: Sequence[Any]):
        self.list_key = list(list_key)

    def __call__(self, key: Sequence[Any]) -> bool:
        if not key:
            return False
        return keys_equal(normalize(key), self.list_key)

    def __repr__(self) -> str:
        return f"ListKeyMatcher({self.list_key!r})"


def matches_list_key(list_key: Sequence[Any]) -> Callable[[Sequence[Any]], bool]:
    return ListKeyMatcher(list_key)


def hash_key(key: Sequence[Any]) -> str:
    """Canonical string form of a key; dict ordering does not matter."""
    return json.dumps(list(key), sort_keys=True, default=str, separators=(",", ":"))
