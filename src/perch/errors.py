"""Perch exception hierarchy.

Shared across the router, the dispatch pipeline, and the ASGI kernel so
every module raises and catches the same types.

Two families never mix:

- ``ValidationFailure`` is a per-field, recoverable failure. Validators,
  inline callbacks, and middleware raise it; the pipeline collects it
  into ``FieldError`` records and applies the route's failure policy.
- ``PerchError`` subclasses are request-level outcomes. ``HTTPError``
  maps onto a status code, ``ConfigurationError`` is a programming or
  deployment error and always ends as a 500.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when the app or a route is misconfigured.

    Unknown middleware names, middleware without a ``handle`` entry point,
    parameter types the binder cannot construct. Never retried, never
    redirected to a failure handler.
    """


class Halt(PerchError):  # noqa: N818
    """A terminal response has already been emitted on the reception.

    Raised by the failure policy and by short-circuiting middleware; the
    kernel catches it and sends ``reception.response``.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    ``code`` carries the application-level error code of the validation
    failure that produced this error, when there is one.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()
    code: int = 0

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: no route matched, or GET input failed validation."""

    def __init__(self, detail: str = "Not Found", code: int = 0) -> None:
        super().__init__(status=404, detail=detail, code=code)


class BadRequest(HTTPError):  # noqa: N818
    """400: a handler signalled "no response" on a non-GET request."""

    def __init__(self, detail: str = "Bad Request", code: int = 0) -> None:
        super().__init__(status=400, detail=detail, code=code)


class InvalidInput(HTTPError):  # noqa: N818
    """422: non-GET input failed validation and the route has no failure handler."""

    def __init__(self, detail: str = "Request validation failed.", code: int = 0) -> None:
        super().__init__(status=422, detail=detail, code=code)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405: route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )


class ValidationFailure(Exception):  # noqa: N818
    """A single value failed validation.

    Raised by validator primitives and, by convention, by middleware and
    inline callbacks that reject input. ``code`` identifies the rule
    (see ``perch.validation.rules``).
    """

    def __init__(self, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"ValidationFailure({self.message!r}, code={self.code})"
