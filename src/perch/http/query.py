"""Query string parameters and bracket-notation nesting.

Form-style field names can describe nested input::

    user[name]=alice&user[tags][]=a&user[tags][]=b

``nest_pairs`` turns such pairs into nested dicts and lists, which is
what dot-path validator keys (``"user.name"``) walk. Plain repeated keys
keep the last value.
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any
from urllib.parse import parse_qsl

_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")


def _split_field_name(name: str) -> list[str] | None:
    """``"a[b][]"`` -> ``["a", "b", ""]``; ``None`` for plain or malformed names."""
    base, bracket, _ = name.partition("[")
    if not bracket or not base:
        return None
    rest = name[len(base):]
    parts = _BRACKET_RE.findall(rest)
    if "".join(f"[{part}]" for part in parts) != rest:
        return None
    return [base, *parts]


def nest_pairs(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Build a nested mapping from ``(field_name, value)`` pairs.

    ``[]`` appends to a list and may only appear as the last bracket.
    Names that don't parse as bracket notation are stored as-is.
    """
    result: dict[str, Any] = {}
    for name, value in pairs:
        parts = _split_field_name(name)
        if parts is None or "" in parts[:-1]:
            result[name] = value
            continue

        node = result
        for part, following in zip(parts, parts[1:], strict=False):
            container = list if following == "" else dict
            child = node.get(part)
            if not isinstance(child, container):
                child = container()
                node[part] = child
            node = child

        leaf = parts[-1]
        if leaf == "":
            node.append(value)  # type: ignore[attr-defined]
        else:
            node[leaf] = value
    return result


class QueryParams(Mapping[str, str]):
    """Immutable query string parameters.

    ``__getitem__`` returns the first value for a key, ``get_list`` every
    value. ``to_input()`` returns the nested view used as request input.
    """

    __slots__ = ("_pairs", "_raw")

    def __init__(self, query_string: bytes = b"") -> None:
        self._raw = query_string
        self._pairs: tuple[tuple[str, str], ...] = tuple(
            parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
        )

    def __getitem__(self, key: str) -> str:
        for name, value in self._pairs:
            if name == key:
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(dict.fromkeys(name for name, _ in self._pairs))

    def __len__(self) -> int:
        return len({name for name, _ in self._pairs})

    def __repr__(self) -> str:
        return f"QueryParams({self._raw.decode('latin-1')!r})"

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        return [value for name, value in self._pairs if name == key]

    def to_input(self) -> dict[str, Any]:
        """Nested mapping of the query string (bracket notation expanded)."""
        return nest_pairs(self._pairs)

    @property
    def raw(self) -> bytes:
        return self._raw
