"""ASGI handler: translates ASGI scope/messages to perch types.

The only component that touches raw ASGI directly. Builds the Request
and the per-request Reception, routes, runs the dispatch pipeline, maps
errors to responses, persists the session, and sends the Response back
through ASGI send().
"""

import logging
from collections.abc import Callable
from typing import Any

from perch._internal.types import Receive, Scope, Send
from perch.config import AppConfig
from perch.dispatch.pipeline import DispatchPipeline
from perch.errors import Halt, HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.reception import DomainCache, Reception
from perch.routing.context import RouteContext
from perch.routing.router import Router
from perch.server.errors import handle_http_error, handle_internal_error
from perch.server.sender import send_response
from perch.session import SessionStore

logger = logging.getLogger("perch.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    pipeline: DispatchPipeline,
    config: AppConfig,
    sessions: SessionStore,
    domains: DomainCache,
    kernel_middleware: tuple[str, ...] = (),
    error_handlers: dict[int | type, Callable[..., Any]],
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    session = sessions.load(request)
    reception = Reception(
        request,
        session=session,
        config=config,
        domain=domains.resolve(request),
    )
    token = reception.activate()

    try:
        try:
            response = await _dispatch(reception, router, pipeline, kernel_middleware)
        except HTTPError as exc:
            response = await handle_http_error(exc, reception.request, error_handlers, config.debug)
        except Exception as exc:
            response = await handle_internal_error(
                exc, reception.request, error_handlers, config.debug
            )
        response = sessions.save(response, session)
    finally:
        Reception.deactivate(token)

    await send_response(response, send, head=request.method == "HEAD")


async def _dispatch(
    reception: Reception,
    router: Router,
    pipeline: DispatchPipeline,
    kernel_middleware: tuple[str, ...],
) -> Response:
    """Route the request and run the pipeline; a halted pipeline sends what it emitted."""
    request = reception.request
    match = router.match(request.method, request.path)
    reception.request = request.with_path_params(match.path_params)
    reception.route = RouteContext.from_match(
        match,
        request.method,
        kernel_middleware=kernel_middleware,
        is_json=request.is_json,
    )

    try:
        return await pipeline.dispatch(reception)
    except Halt:
        if reception.response is None:
            msg = "Pipeline halted without emitting a response"
            raise RuntimeError(msg) from None
        return reception.response
