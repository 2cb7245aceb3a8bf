"""Error mapping for perch requests.

Maps HTTPError exceptions and unexpected failures to Response objects,
using registered error handlers or plain-text defaults.
"""

import html
import inspect
import logging
import traceback
from collections.abc import Callable
from typing import Any

from perch._internal.binding import invoke
from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response

logger = logging.getLogger("perch.server")


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
) -> Response:
    """Invoke a user-registered error handler.

    Error handlers may accept zero, one (request), or two (request, exc)
    arguments, and may be sync or async. Non-``Response`` results are
    sent through their ``send()`` when they have one, otherwise used as
    an HTML body.
    """
    params = list(inspect.signature(handler).parameters.values())
    args = (request, exc)[: len(params)]
    result = await invoke(handler, *args)

    if isinstance(result, Response):
        return result
    send = getattr(result, "send", None)
    if callable(send):
        return await invoke(send)
    return Response(body="" if result is None else str(result))


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    handler = error_handlers.get(type(exc)) or error_handlers.get(exc.status)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        # Keep the error status unless the handler chose its own
        if response.status == 200:
            response = response.with_status(exc.status)
        return response

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.code:
        detail = f"{detail} (code {exc.code})"

    response = Response(body=html.escape(detail), status=exc.status)
    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> Response:
    """Handle unexpected exceptions (including ``ConfigurationError``) as 500s."""
    logger.exception("500 %s %s", request.method, request.path)

    handler = error_handlers.get(type(exc)) or error_handlers.get(500)
    if handler is not None:
        return await call_error_handler(handler, request, exc)

    if debug:
        trace = "".join(traceback.format_exception(exc))
        return Response(body=f"<pre>{html.escape(trace)}</pre>", status=500)
    return Response(body="Internal Server Error", status=500)
