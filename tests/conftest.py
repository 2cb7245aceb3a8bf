"""Shared fixtures: requests and receptions without an ASGI server."""

from collections.abc import Callable
from typing import Any

import pytest

from perch.config import AppConfig
from perch.http.request import Request
from perch.reception import Reception
from perch.routing.context import RouteContext
from perch.session import Session


def build_request(
    method: str = "GET",
    path: str = "/",
    *,
    query: bytes = b"",
    headers: dict[str, str] | None = None,
    body: bytes = b"",
) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if body:
        raw_headers.append((b"content-length", str(len(body)).encode()))
    sent = False

    async def receive() -> dict[str, Any]:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query,
        "headers": raw_headers,
        "server": ("testserver", 80),
    }
    return Request.from_asgi(scope, receive)


@pytest.fixture
def make_reception() -> Callable[..., Reception]:
    """Factory for a ``Reception`` on a fake request."""

    def factory(
        method: str = "GET",
        path: str = "/",
        *,
        route: RouteContext | None = None,
        query: bytes = b"",
        headers: dict[str, str] | None = None,
        body: bytes = b"",
        session: Session | None = None,
        config: AppConfig | None = None,
    ) -> Reception:
        request = build_request(method, path, query=query, headers=headers, body=body)
        return Reception(
            request,
            session=session if session is not None else Session(),
            config=config or AppConfig(),
            domain="http://testserver",
            route=route or RouteContext(route_path=path, method=method),
        )

    return factory


@pytest.fixture
def activated(make_reception: Callable[..., Reception]):
    """A GET reception published on the ContextVar for the test's duration."""
    reception = make_reception()
    token = reception.activate()
    yield reception
    Reception.deactivate(token)
