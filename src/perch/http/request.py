"""Immutable HTTP request.

Frozen metadata with async body access. The request is received data;
the mutable, per-request view the pipeline works on is ``Reception``.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from perch._internal.types import Receive, Scope
from perch.errors import BadRequest
from perch.http.headers import Headers, parse_cookies
from perch.http.query import QueryParams

if TYPE_CHECKING:
    from perch.http.forms import FormData


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    The body is read once through ``.body()`` and cached; ``.json()`` and
    ``.form()`` parse from that cache.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    cookies: Mapping[str, str]
    scheme: str = "http"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None
    path_params: dict[str, Any] = field(default_factory=dict)

    # ASGI receive callable for body streaming
    _receive: Receive | None = field(default=None, repr=False, compare=False)

    # Body and parsed-body cache (the dict is mutable, the field is not)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def content_type(self) -> str:
        """The Content-Type header value, or ``""``."""
        return self.headers.get("content-type", "")

    @property
    def is_json(self) -> bool:
        """True if the body is declared as JSON."""
        return "application/json" in self.content_type.lower()

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def host(self) -> str:
        """The Host header, falling back to the ASGI server address."""
        host = self.headers.get("host")
        if host:
            return host
        if self.server is None:
            return ""
        name, port = self.server
        default_port = 443 if self.scheme == "https" else 80
        return name if port == default_port else f"{name}:{port}"

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body (cached after the first call)."""
        if "body" not in self._cache:
            self._cache["body"] = b"".join([chunk async for chunk in self.stream()])
        return self._cache["body"]

    async def stream(self) -> AsyncIterator[bytes]:
        """Stream the request body in chunks."""
        if self._receive is None:
            return
        while True:
            message = await self._receive()
            if message.get("type") == "http.disconnect":
                break
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        """Parse the body as JSON. ``BadRequest`` on malformed input."""
        if "json" not in self._cache:
            raw = await self.body()
            try:
                self._cache["json"] = json_module.loads(raw) if raw else None
            except (ValueError, UnicodeDecodeError) as exc:
                msg = f"Malformed JSON body: {exc}"
                raise BadRequest(msg) from exc
        return self._cache["json"]

    async def form(self) -> FormData:
        """Parse the body as URL-encoded or multipart form data (cached)."""
        if "form" not in self._cache:
            from perch.http.forms import parse_form_data

            raw = await self.body()
            self._cache["form"] = await parse_form_data(raw, self.content_type)
        return self._cache["form"]

    def with_path_params(self, path_params: dict[str, Any]) -> Request:
        """Return a copy carrying the router's path parameters.

        The body cache is shared so a body read before routing isn't lost.
        """
        return replace(self, path_params=path_params)

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive | None = None) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        headers = Headers(tuple(scope.get("headers", ())))
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            cookies=parse_cookies(headers.get("cookie", "")),
            scheme=scope.get("scheme", "http"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _receive=receive,
        )
