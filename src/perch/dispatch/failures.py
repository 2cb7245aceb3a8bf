"""Failure policy shared by the initializer and the middleware chain."""

import logging
from collections.abc import Sequence
from typing import Any, NoReturn

from perch.dispatch.normalizer import Handled, normalize
from perch.errors import (
    BadRequest,
    ConfigurationError,
    Halt,
    HTTPError,
    InvalidInput,
    NotFound,
    ValidationFailure,
)
from perch.reception import Reception
from perch.validation import FieldError

logger = logging.getLogger("perch.dispatch")

# Raised by callbacks and middleware to reject a request's input
RECOVERABLE = (ValidationFailure, NotFound, BadRequest)

DEFAULT_MESSAGE = "Request validation failed."


def field_error(key: str, exc: Exception) -> FieldError:
    """Convert a recoverable exception into a ``FieldError`` under *key*."""
    if isinstance(exc, ValidationFailure):
        return FieldError(key, exc.code, exc.message)
    if isinstance(exc, HTTPError):
        return FieldError(key, exc.code or None, exc.detail or None)
    return FieldError(key, None, str(exc) or None)


async def emit(reception: Reception, value: Any) -> NoReturn:
    """Normalize *value* into a terminal response, record it, and halt."""
    outcome = await normalize(value, reception)
    if not isinstance(outcome, Handled):
        msg = f"Expected a terminal response, got {value!r}"
        raise ConfigurationError(msg)
    reception.emit(outcome.response)
    raise Halt


async def fail(reception: Reception, errors: Sequence[FieldError]) -> NoReturn:
    """Apply the route's failure policy to *errors*.

    With a failure handler, every error is stored in the session and the
    handler's response ends the request. Without one, the first error is
    raised as ``NotFound`` (GET/HEAD) or ``InvalidInput``.
    """
    logger.debug(
        "Validation failed for %s %s: %s",
        reception.method,
        reception.request.path,
        ", ".join(error.key for error in errors),
    )
    handler = reception.route.fails if reception.route is not None else None
    if handler is not None:
        for error in errors:
            reception.session.add_error(error.key, error.code, error.message)
        await emit(reception, handler)

    first = errors[0]
    message = first.message or DEFAULT_MESSAGE
    code = first.code or 0
    if reception.is_safe_method:
        raise NotFound(message, code)
    raise InvalidInput(message, code)
