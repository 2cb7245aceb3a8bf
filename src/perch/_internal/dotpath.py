"""Dot-path access into nested mappings.

Validator keys and ``Reception.input()`` lookups address nested input
with dot notation: ``"user.address.city"`` walks ``input["user"]
["address"]["city"]``.

Reading never raises: a missing segment, or a segment that lands on a
non-mapping value, resolves to ``None``. Writing goes through
``NestedBuilder``, which owns its tree and creates intermediate levels
on demand.
"""

from collections.abc import Mapping
from typing import Any


def split_path(path: str) -> list[str]:
    """Split a dot-path into its segments. ``"a.b"`` -> ``["a", "b"]``."""
    return path.split(".")


def resolve(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Return the value at *path* in *data*, or *default* when any segment is missing."""
    node: Any = data
    for segment in split_path(path):
        if not isinstance(node, Mapping) or segment not in node:
            return default
        node = node[segment]
    return node


def contains(data: Mapping[str, Any], path: str) -> bool:
    """True if every segment of *path* exists in *data*."""
    sentinel = object()
    return resolve(data, path, sentinel) is not sentinel


class NestedBuilder:
    """Builds a nested dict one dot-path leaf at a time.

    ``prepare(path)`` lays down the skeleton for *path*: every traversed
    level is created (or reused) and the leaf is defaulted to ``None``.
    ``set(path, value)`` writes the leaf.

    An intermediate level that already holds a scalar (because an
    earlier, shorter key wrote a leaf there) is replaced by a dict.

    Usage::

        builder = NestedBuilder()
        builder.set("a.b", 5)
        builder.set("a.c", "x")
        builder.tree  # {"a": {"b": 5, "c": "x"}}
    """

    __slots__ = ("tree",)

    def __init__(self) -> None:
        self.tree: dict[str, Any] = {}

    def _parent(self, segments: list[str]) -> dict[str, Any]:
        node = self.tree
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        return node

    def prepare(self, path: str) -> None:
        """Create the skeleton for *path*, defaulting the leaf to ``None``."""
        segments = split_path(path)
        self._parent(segments)[segments[-1]] = None

    def set(self, path: str, value: Any) -> None:
        """Write *value* at *path*, creating intermediate levels as needed."""
        segments = split_path(path)
        self._parent(segments)[segments[-1]] = value
