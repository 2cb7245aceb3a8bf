"""Reception: the per-request state the dispatch pipeline works on.

A fresh ``Reception`` is created by the kernel for every request and
passed explicitly to every pipeline step. It is also published through
a ContextVar so template helpers and ``Redirect.send()`` can reach it::

    from perch.reception import get_reception

    reception = get_reception()
    reception.input("user.name")

``Reception.input`` is mutable: the request initializer replaces it
with validated data, and middleware patches merge into it.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from contextvars import ContextVar
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

from perch._internal.dotpath import contains, resolve

if TYPE_CHECKING:
    from perch.config import AppConfig
    from perch.http.request import Request
    from perch.http.response import Response
    from perch.routing.context import RouteContext
    from perch.session import Session

_reception_var: ContextVar[Reception | None] = ContextVar("perch_reception", default=None)


def get_reception() -> Reception:
    """Return the current reception.

    Raises ``LookupError`` if called outside a request.
    """
    reception = _reception_var.get()
    if reception is None:
        msg = "No active request. get_reception() only works while a request is dispatched."
        raise LookupError(msg)
    return reception


def current_reception() -> Reception | None:
    """Return the current reception, or ``None`` outside a request."""
    return _reception_var.get()


class DomainCache:
    """Resolves ``scheme://host`` from the first request and keeps it.

    One instance per app. Redirects and ``url()`` build absolute URLs
    from it, so every request sees the same domain.
    """

    __slots__ = ("_domain", "_lock", "_trust_forwarded_proto")

    def __init__(self, *, trust_forwarded_proto: bool = False) -> None:
        self._domain: str | None = None
        self._lock = threading.Lock()
        self._trust_forwarded_proto = trust_forwarded_proto

    def resolve(self, request: Request) -> str:
        if self._domain is not None:
            return self._domain
        with self._lock:
            if self._domain is None:
                scheme = request.scheme
                if self._trust_forwarded_proto:
                    forwarded = request.headers.get("x-forwarded-proto", "")
                    scheme = forwarded.split(",")[0].strip() or scheme
                self._domain = f"{scheme}://{request.host}"
        return self._domain


def _to_namespace(value: Any) -> Any:
    if isinstance(value, Mapping):
        return SimpleNamespace(**{str(k): _to_namespace(v) for k, v in value.items()})
    if isinstance(value, list):
        return [_to_namespace(item) for item in value]
    return value


class Reception:
    """Mutable per-request state: method, domain, input, flash, response."""

    __slots__ = (
        "_input",
        "config",
        "domain",
        "flash",
        "is_json",
        "method",
        "request",
        "response",
        "route",
        "session",
    )

    def __init__(
        self,
        request: Request,
        *,
        session: Session,
        config: AppConfig,
        domain: str,
        route: RouteContext | None = None,
    ) -> None:
        self.request = request
        self.session = session
        self.config = config
        self.domain = domain
        self.route = route
        self.method = request.method
        self.is_json = request.is_json
        self._input: dict[str, Any] = {}
        self.flash: dict[str, Any] = session.get_flash_once()
        self.response: Response | None = None

    def __repr__(self) -> str:
        return f"Reception({self.method} {self.request.path!r}, input={self._input!r})"

    # -- Input --

    def input(self, name: str | None = None, default: Any = None) -> Any:
        """Return all input, or the value at dot-path *name*.

        Without *name* the live input dict is returned.
        """
        if name is None:
            return self._input
        return resolve(self._input, name, default)

    def has(self, name: str) -> bool:
        """True if dot-path *name* exists in the input."""
        return contains(self._input, name)

    def get_object(self, name: str | None = None) -> Any:
        """Input (or the value at *name*) with mappings as attribute namespaces."""
        return _to_namespace(self.input(name))

    def overwrite(self, data: Mapping[str, Any]) -> None:
        """Replace the input wholesale."""
        self._input = dict(data)

    def merge(self, data: Mapping[str, Any]) -> None:
        """Merge *data* into the input; *data* wins on key collisions."""
        self._input.update(data)

    def old(self, key: str | None = None, default: Any = None) -> Any:
        """Input flashed by the previous request (see ``Redirect.with_input``)."""
        old_input = self.session.old_input
        if key is None:
            return old_input
        return resolve(old_input, key, default)

    # -- Request --

    def is_method(self, method: str) -> bool:
        return self.method == method.upper()

    @property
    def is_safe_method(self) -> bool:
        """GET and HEAD: failures surface as 404, input comes from the query."""
        return self.method in ("GET", "HEAD")

    # -- Terminal response --

    def emit(self, response: Response) -> None:
        """Record the terminal response for this request."""
        self.response = response

    def activate(self) -> Any:
        """Publish this reception on the ContextVar; returns the reset token."""
        return _reception_var.set(self)

    @staticmethod
    def deactivate(token: Any) -> None:
        _reception_var.reset(token)
