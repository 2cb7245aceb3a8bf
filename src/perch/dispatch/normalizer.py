"""Return-value normalization.

Callbacks, middleware and controllers may return many kinds of value.
``normalize`` sorts them into three outcomes, isinstance-based, fully
predictable:

1. ``Renderable`` (has ``render()``)  -> ``Handled``, HTML body
2. ``Sendable`` (has ``send()``)      -> ``Handled``, the sent ``Response``
3. zero-argument callable             -> called; a terminal result is used,
                                        otherwise an empty 200
4. ``False``                          -> ``NotFound`` (GET/HEAD) / ``BadRequest``
5. ``str``                            -> ``Handled``, HTML-escaped text
6. mapping                            -> ``DataPatch``
7. anything else                      -> ``Passthrough``
"""

import html
import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias, runtime_checkable

from perch._internal.binding import invoke
from perch.errors import BadRequest, NotFound
from perch.http.response import JsonResponse, Response
from perch.reception import Reception


@runtime_checkable
class Renderable(Protocol):
    def render(self) -> str: ...


@runtime_checkable
class Sendable(Protocol):
    def send(self) -> Response: ...


@dataclass(frozen=True, slots=True)
class Handled:
    """A terminal response; the request ends here."""

    response: Response


@dataclass(frozen=True, slots=True)
class DataPatch:
    """Data to merge into the request input."""

    data: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class Passthrough:
    """Nothing for the pipeline to act on."""

    value: Any


Outcome: TypeAlias = Handled | DataPatch | Passthrough


async def normalize(value: Any, reception: Reception) -> Outcome:
    """Classify *value* (see module docstring for the order)."""
    match value:
        case Renderable() if not isinstance(value, type):
            body = await invoke(value.render)
            return Handled(Response(body=body))
        case Sendable() if not isinstance(value, type):
            response = await invoke(value.send)
            if not isinstance(response, Response):
                msg = f"{type(value).__name__}.send() must return a Response, got {response!r}"
                raise TypeError(msg)
            return Handled(response)
        case _ if callable(value):
            outcome = await normalize(await invoke(value), reception)
            if isinstance(outcome, Handled):
                return outcome
            return Handled(Response())
        case False:
            if reception.is_safe_method:
                raise NotFound("no response")
            raise BadRequest("no response")
        case str():
            return Handled(Response(body=html.escape(value, quote=True)))
        case Mapping():
            return DataPatch(value)
        case _:
            return Passthrough(value)


async def to_response(value: Any, reception: Reception) -> Response:
    """Turn a controller's return value into the response to send.

    Mappings and lists are served as JSON, ``True``/``None`` as an empty
    200, bytes as ``application/octet-stream``.
    """
    outcome = await normalize(value, reception)
    match outcome:
        case Handled(response=response):
            return response
        case DataPatch(data=data):
            return JsonResponse(dict(data)).send()
        case Passthrough(value=list() | tuple() as items):
            return Response(
                body=json_module.dumps(list(items), default=str),
                content_type="application/json",
            )
        case Passthrough(value=True | None):
            return Response()
        case Passthrough(value=bytes() as raw):
            return Response(body=raw, content_type="application/octet-stream")
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return a str, Response, Redirect, View, dict, list, bytes or None."
            )
            raise TypeError(msg)
