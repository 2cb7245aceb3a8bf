"""HTTP response types with a chainable ``.with_*()`` API.

``Response`` is the terminal value the kernel sends. ``Redirect`` and
``JsonResponse`` are *sendable* return values: the dispatch pipeline
calls their ``send()`` to obtain the final ``Response``. ``Response``
is sendable too (``send()`` returns itself).
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import urljoin


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive attached to a Response."""

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def to_header_value(self) -> str:
        """Serialize to a ``Set-Cookie`` header value string."""
        parts = [f"{self.name}={self.value}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set
    status, headers, and cookies. Each call returns a new ``Response``.
    """

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        return replace(self, headers=(*self.headers, *headers.items()))

    def with_content_type(self, content_type: str) -> Response:
        return replace(self, content_type=content_type)

    def with_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: int | None = None,
        path: str = "/",
        domain: str | None = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "lax",
    ) -> Response:
        """Return a new Response with an additional Set-Cookie."""
        cookie = SetCookie(
            name=name,
            value=value,
            max_age=max_age,
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )
        return replace(self, cookies=(*self.cookies, cookie))

    def without_cookie(self, name: str, path: str = "/") -> Response:
        """Return a new Response that deletes a cookie (Max-Age=0)."""
        return replace(self, cookies=(*self.cookies, SetCookie(name, "", max_age=0, path=path)))

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the first header value set under *name* (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return default

    def send(self) -> Response:
        return self

    @property
    def body_bytes(self) -> bytes:
        """Body encoded to bytes for the ASGI sender."""
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")

    @property
    def text(self) -> str:
        """Body decoded to str."""
        if isinstance(self.body, str):
            return self.body
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class JsonResponse:
    """Serialize *data* as a JSON response body."""

    data: Any
    status: int = 200

    def send(self) -> Response:
        return Response(
            body=json_module.dumps(self.data, default=str),
            status=self.status,
            content_type="application/json",
        )


@dataclass(frozen=True, slots=True)
class Redirect:
    """A redirect that can carry flash data into the next request.

    Chain ``with_()``, ``with_errors()`` and ``with_input()`` to queue
    flash data. Nothing touches the session until ``send()`` runs, so
    one ``Redirect`` can be registered as a route's failure handler and
    reused by every request::

        app.route("/posts", methods=["POST"]).match_str(
            "title", max_len=80
        ).fails(Redirect("/posts/new").with_input())

    Relative URLs are resolved against the request's domain.
    """

    url: str
    status: int = 302
    flashes: tuple[tuple[str, Any], ...] = ()
    errors: tuple[tuple[str, int | None, str | None], ...] = ()
    keep_input: bool = False
    input_except: tuple[str, ...] = ()

    def with_(self, key: str, value: Any) -> Redirect:
        """Flash ``key = value`` to the next request."""
        return replace(self, flashes=(*self.flashes, (key, value)))

    def with_errors(self, key: str, code: int | None = None, message: str | None = None) -> Redirect:
        """Flash an error for *key* (read back with ``Session.get_error``)."""
        return replace(self, errors=(*self.errors, (key, code, message)))

    def with_input(self, *except_keys: str) -> Redirect:
        """Flash the current request input, minus *except_keys*.

        The next request reads it back through ``Reception.old()``.
        """
        return replace(self, keep_input=True, input_except=except_keys)

    def send(self) -> Response:
        """Write queued flash data to the current session; return the 302.

        Raises ``LookupError`` when flash data is queued outside a request.
        """
        from perch.reception import current_reception, get_reception

        url = self.url
        reception = current_reception()
        if reception is not None and not _is_absolute(url):
            url = urljoin(f"{reception.domain}/", url)

        if self.flashes or self.errors or self.keep_input:
            reception = get_reception()
            session = reception.session
            for key, value in self.flashes:
                session.flash(key, value)
            for key, code, message in self.errors:
                session.add_error(key, code, message)
            if self.keep_input:
                session.flash_input(reception.input(), *self.input_except)

        return Response(body="", status=self.status).with_header("Location", url)


def _is_absolute(url: str) -> bool:
    return "://" in url or url.startswith("//")
