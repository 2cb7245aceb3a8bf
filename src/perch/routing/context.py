"""RouteContext: the matched route's configuration for one request."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from perch.routing.route import ControllerTarget, RouteMatch
from perch.validation import Validator


@dataclass(frozen=True, slots=True)
class RouteContext:
    """Read-only view of a route's configuration for the request method.

    Built once per request by the kernel. Empty configuration reads as
    ``None`` so callers can branch on presence::

        if ctx.validators is None and ctx.callback is None:
            ...  # input stands as-is
    """

    route_path: str
    method: str
    path_params: dict[str, Any] = field(default_factory=dict)
    is_json: bool = False
    validators: Mapping[str, Validator] | None = None
    callback: Callable[..., Any] | None = None
    middleware: tuple[str, ...] | None = None
    fails: Any = None
    controller: ControllerTarget | None = None

    @classmethod
    def from_match(
        cls,
        match: RouteMatch,
        method: str,
        *,
        kernel_middleware: tuple[str, ...] = (),
        is_json: bool = False,
    ) -> RouteContext:
        """Resolve *match*'s configuration for *method*.

        Kernel-wide middleware names come first, then the route's own.
        """
        config = match.route.config_for(method)
        middleware = (*kernel_middleware, *config.middleware)
        return cls(
            route_path=match.route.path,
            method=method,
            path_params=dict(match.path_params),
            is_json=is_json,
            validators=config.validators or None,
            callback=config.callback,
            middleware=middleware or None,
            fails=config.fails,
            controller=config.controller,
        )
