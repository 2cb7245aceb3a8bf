"""Route definitions: per-method configuration and match results."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeAlias

from perch.validation import Validator

# An explicit controller: a callable, or a (class, method name) pair
ControllerTarget: TypeAlias = Callable[..., Any] | tuple[type, str]


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:  ``/users``  (is_param=False)
    Param:   ``/{id}``   (is_param=True, param_name="id")
    Typed:   ``/{id:int}`` (is_param=True, param_name="id", param_type="int")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str = "str"


@dataclass(frozen=True, slots=True)
class MethodConfig:
    """Everything a route declares for one HTTP method."""

    validators: Mapping[str, Validator] = field(default_factory=lambda: MappingProxyType({}))
    callback: Callable[..., Any] | None = None
    controller: ControllerTarget | None = None
    middleware: tuple[str, ...] = ()
    fails: Any = None


_EMPTY_CONFIG = MethodConfig()


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route definition.

    Built by ``RouteBuilder`` during setup, compiled into the router at
    freeze time.
    """

    path: str
    methods: frozenset[str]
    configs: Mapping[str, MethodConfig] = field(default_factory=lambda: MappingProxyType({}))
    name: str | None = None

    def config_for(self, method: str) -> MethodConfig:
        """Configuration for *method*; HEAD falls back to GET."""
        config = self.configs.get(method)
        if config is None and method == "HEAD":
            config = self.configs.get("GET")
        return config or _EMPTY_CONFIG


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route: Route
    path_params: dict[str, Any]
