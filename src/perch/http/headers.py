"""Request headers and the Cookie header.

``Headers`` wraps the raw ASGI byte pairs and decodes on access.
Lookups are case-insensitive; repeated headers are kept in order.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive request headers.

    ``__getitem__`` returns the first value for a name.
    ``get_list`` returns every value (e.g. repeated ``Accept`` headers).
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        self._raw = raw

    def _values(self, key: str) -> Iterator[str]:
        wanted = key.lower().encode("latin-1")
        for name, value in self._raw:
            if name.lower() == wanted:
                yield value.decode("latin-1")

    def __getitem__(self, key: str) -> str:
        for value in self._values(key):
            return value
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return next(self._values(key), None) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(dict.fromkeys(name.decode("latin-1").lower() for name, _ in self._raw))

    def __len__(self) -> int:
        return len({name.lower() for name, _ in self._raw})

    def __repr__(self) -> str:
        return f"Headers({dict(self)!r})"

    def get_list(self, key: str) -> list[str]:
        """Return every value for *key*."""
        return list(self._values(key))

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """The raw header byte pairs as received from ASGI."""
        return self._raw


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name -> value dict.

    Pairs without ``=`` are skipped. The first occurrence of a name wins,
    matching browser ordering (most specific path first).
    """
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if sep and name.strip():
            cookies.setdefault(name.strip(), value.strip())
    return cookies
