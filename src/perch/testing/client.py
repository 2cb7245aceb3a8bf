"""Async test client for perch applications.

Uses the same Request and Response types as production.
No wrapper translation layer.
"""

from __future__ import annotations

import inspect
import json as json_module
import secrets
from collections.abc import Mapping
from typing import Any, TypeAlias
from urllib.parse import urlencode

from perch.app import App
from perch.http.response import Response

# (filename, content, content type)
FileField: TypeAlias = tuple[str, bytes, str]


def encode_multipart(
    fields: Mapping[str, str],
    files: Mapping[str, FileField],
) -> tuple[bytes, str]:
    """Encode form fields and files as ``multipart/form-data``.

    Returns the body and its Content-Type header value.
    """
    boundary = f"perch-{secrets.token_hex(8)}"
    parts: list[bytes] = []
    for name, value in fields.items():
        parts.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
            + value.encode("utf-8")
            + b"\r\n"
        )
    for name, (filename, content, content_type) in files.items():
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: {content_type}\r\n\r\n"
            ).encode()
            + content
            + b"\r\n"
        )
    parts.append(f"--{boundary}--\r\n".encode())
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


class TestClient:
    __test__ = False  # Tell pytest this is not a test class
    """Async test client for perch applications.

    Returns the same ``Response`` type used in production. Sends requests
    through the ASGI interface directly, no HTTP involved. Cookies set
    by responses are sent back on later requests, so sessions and flash
    data carry over like in a browser.

    Usage::

        async with TestClient(app) as client:
            response = await client.get("/")
            assert response.status == 200
    """

    __slots__ = ("app", "cookies")

    def __init__(self, app: App) -> None:
        self.app = app
        self.cookies: dict[str, str] = {}

    async def __aenter__(self) -> TestClient:
        self.app._ensure_frozen()
        for hook in self.app._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        return self

    async def __aexit__(self, *args: object) -> None:
        for hook in self.app._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def get(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        """Send a GET request."""
        return await self.request("GET", path, headers=headers)

    async def head(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        """Send a HEAD request."""
        return await self.request("HEAD", path, headers=headers)

    async def post(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, FileField] | None = None,
    ) -> Response:
        """Send a POST request.

        *json* is sent as ``application/json``; *data* as a URL-encoded
        form, or as multipart together with *files*.
        """
        return await self.request(
            "POST", path, headers=headers, body=body, json=json, data=data, files=files
        )

    async def put(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
        data: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a PUT request."""
        return await self.request("PUT", path, headers=headers, body=body, json=json, data=data)

    async def delete(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        """Send a DELETE request."""
        return await self.request("DELETE", path, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, FileField] | None = None,
    ) -> Response:
        """Send an arbitrary request through the ASGI app."""
        path_part, _, query_string = path.partition("?")

        extra_headers: dict[str, str] = {}
        request_body = body or b""
        if json is not None:
            request_body = json_module.dumps(json).encode("utf-8")
            extra_headers["content-type"] = "application/json"
        elif files:
            request_body, extra_headers["content-type"] = encode_multipart(data or {}, files)
        elif data is not None:
            request_body = urlencode(data).encode("utf-8")
            extra_headers["content-type"] = "application/x-www-form-urlencoded"
        if request_body:
            extra_headers["content-length"] = str(len(request_body))
        if self.cookies:
            extra_headers["cookie"] = "; ".join(f"{k}={v}" for k, v in self.cookies.items())

        # Build raw ASGI headers
        raw_headers: list[tuple[bytes, bytes]] = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in {**extra_headers, **(headers or {})}.items()
        ]

        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "scheme": "http",
            "path": path_part,
            "raw_path": path_part.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 0),
        }

        body_sent = False

        async def receive() -> dict[str, Any]:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": request_body, "more_body": False}
            return {"type": "http.disconnect"}

        response_status = 200
        response_headers: list[tuple[bytes, bytes]] = []
        response_body_parts: list[bytes] = []

        async def send(message: dict[str, Any]) -> None:
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = list(message.get("headers", []))
            elif message["type"] == "http.response.body":
                response_body_parts.append(message.get("body", b""))

        await self.app(scope, receive, send)

        content_type = "text/html; charset=utf-8"
        headers_out: list[tuple[str, str]] = []
        for name_b, value_b in response_headers:
            name_str = name_b.decode("latin-1")
            value_str = value_b.decode("latin-1")
            if name_str == "content-type":
                content_type = value_str
            elif name_str != "content-length":
                headers_out.append((name_str, value_str))
            if name_str == "set-cookie":
                self._store_cookie(value_str)

        return Response(
            body=b"".join(response_body_parts),
            status=response_status,
            content_type=content_type,
            headers=tuple(headers_out),
        )

    def _store_cookie(self, header: str) -> None:
        pair, *attributes = header.split(";")
        name, _, value = pair.strip().partition("=")
        expired = any(attr.strip().lower() == "max-age=0" for attr in attributes)
        if expired:
            self.cookies.pop(name, None)
        else:
            self.cookies[name] = value
