"""Fluent route registration.

``app.route()`` returns a ``RouteBuilder``. Chain validators, a
callback, middleware and a failure handler onto it, per method or for
every method the route accepts::

    (
        app.route("/posts/{post_id:int}", methods=["GET", "POST"])
        .match_num("post_id", min_value=1)
        .match_str("title", "POST", max_len=80)
        .middleware(["auth"])
        .fails(redirect("/posts").with_input(), "POST")
    )

Used as a decorator, the builder binds the decorated function as the
explicit controller for every method::

    @app.route("/health")
    def health():
        return "ok"
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from perch._internal.types import HTTP_METHODS
from perch.config import DEFAULT_MAX_FILE_SIZE
from perch.errors import ConfigurationError
from perch.routing.route import ControllerTarget, MethodConfig, Route
from perch.validation import Validator, number, string, upload


@dataclass(slots=True)
class _MethodDraft:
    """Mutable per-method configuration while the route is being built."""

    validators: dict[str, Validator] = field(default_factory=dict)
    callback: Callable[..., Any] | None = None
    controller: ControllerTarget | None = None
    middleware: list[str] = field(default_factory=list)
    fails: Any = None

    def freeze(self) -> MethodConfig:
        return MethodConfig(
            validators=MappingProxyType(dict(self.validators)),
            callback=self.callback,
            controller=self.controller,
            middleware=tuple(self.middleware),
            fails=self.fails,
        )


class RouteBuilder:
    """Collects one route's configuration until the app freezes.

    Every method takes an optional *method*: ``None`` applies the
    setting to every method the route accepts.
    """

    __slots__ = ("_check", "_default_max_file_size", "_drafts", "methods", "name", "path")

    def __init__(
        self,
        path: str,
        methods: Iterable[str] | None = None,
        *,
        name: str | None = None,
        default_max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        check: Callable[[], None] | None = None,
    ) -> None:
        verbs = tuple(dict.fromkeys(m.upper() for m in (methods or ("GET",))))
        unknown = [m for m in verbs if m not in HTTP_METHODS]
        if unknown:
            msg = f"Unsupported HTTP method(s) {unknown} for route {path!r}"
            raise ConfigurationError(msg)
        self.path = path
        self.methods = verbs
        self.name = name
        self._drafts = {verb: _MethodDraft() for verb in verbs}
        self._default_max_file_size = default_max_file_size
        self._check = check

    def _targets(self, method: str | None) -> list[_MethodDraft]:
        if self._check is not None:
            self._check()
        if method is None:
            return list(self._drafts.values())
        draft = self._drafts.get(method.upper())
        if draft is None:
            msg = f"Route {self.path!r} does not accept {method.upper()} (methods: {self.methods})"
            raise ConfigurationError(msg)
        return [draft]

    # -- Validators --

    def validate(self, name: str, validator: Validator, method: str | None = None) -> RouteBuilder:
        """Attach any validator callable to the dot-path key *name*."""
        for draft in self._targets(method):
            draft.validators[name] = validator
        return self

    def match_str(
        self,
        name: str,
        method: str | None = None,
        *,
        max_len: int | None = None,
        regex: str | Sequence[str] | None = None,
        empty_able: bool = False,
    ) -> RouteBuilder:
        return self.validate(
            name, string(max_len=max_len, regex=regex, empty_able=empty_able), method
        )

    def match_num(
        self,
        name: str,
        method: str | None = None,
        *,
        max_value: int | None = None,
        min_value: int | None = None,
        exact: int | None = None,
    ) -> RouteBuilder:
        return self.validate(
            name, number(max_value=max_value, min_value=min_value, exact=exact), method
        )

    def match_file(
        self,
        name: str,
        allowed_mime_types: Sequence[str],
        *,
        max_file_size: int | None = None,
        empty_able: bool = True,
        method: str | None = None,
    ) -> RouteBuilder:
        """Validate an uploaded file; *max_file_size* is in KB."""
        limit = self._default_max_file_size if max_file_size is None else max_file_size
        return self.validate(
            name,
            upload(allowed_mime_types, max_file_size=limit, empty_able=empty_able),
            method,
        )

    # -- Callback, middleware, failure handler, controller --

    def match(self, callback: Callable[..., Any], method: str | None = None) -> RouteBuilder:
        """Set the inline callback run after the validators."""
        for draft in self._targets(method):
            draft.callback = callback
        return self

    def middleware(self, names: str | Iterable[str], method: str | None = None) -> RouteBuilder:
        """Append named middleware, run in the order given."""
        names = [names] if isinstance(names, str) else list(names)
        for draft in self._targets(method):
            draft.middleware.extend(names)
        return self

    def fails(self, handler: Any, method: str | None = None) -> RouteBuilder:
        """Set the failure handler used when validation fails.

        A URL string is shorthand for ``Redirect(url)``.
        """
        if isinstance(handler, str):
            from perch.http.response import Redirect

            handler = Redirect(handler)
        for draft in self._targets(method):
            draft.fails = handler
        return self

    def controller(self, target: ControllerTarget, method: str | None = None) -> RouteBuilder:
        """Bind an explicit controller: a callable or ``(ControllerClass, "method")``."""
        if isinstance(target, tuple):
            if len(target) != 2 or not isinstance(target[0], type):
                msg = f"Controller pair must be (class, method name), got {target!r}"
                raise ConfigurationError(msg)
        elif not callable(target):
            msg = f"Controller must be callable, got {target!r}"
            raise ConfigurationError(msg)
        for draft in self._targets(method):
            draft.controller = target
        return self

    def __call__(self, func: Callable[..., Any]) -> Callable[..., Any]:
        self.controller(func)
        return func

    def build(self) -> Route:
        """Freeze the collected configuration into a ``Route``."""
        return Route(
            path=self.path,
            methods=frozenset(self.methods),
            configs=MappingProxyType({verb: d.freeze() for verb, d in self._drafts.items()}),
            name=self.name,
        )
