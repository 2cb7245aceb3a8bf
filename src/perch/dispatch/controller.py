"""Controller resolution: explicit bindings and the naming convention.

A route either names its controller explicitly (a callable, or a
``(ControllerClass, "method")`` pair) or relies on the convention:

- the first static path segment picks the controller class registered
  under that name (``@app.controller("posts")``),
- the next static segment names the method, ``index`` when there is none,
- non-GET requests prefer ``<verb>_<method>`` (``post_index``,
  ``delete_edit``) when the class defines it.

``/posts/{id}/edit`` with POST therefore calls ``Posts().post_edit`` if
it exists, else ``Posts().edit``.
"""

from collections.abc import Callable
from typing import Any

from perch.errors import ConfigurationError, NotFound
from perch.providers import ProviderRegistry
from perch.reception import Reception


class ControllerRegistry:
    """Controller classes by name."""

    __slots__ = ("_classes",)

    def __init__(self) -> None:
        self._classes: dict[str, type] = {}

    def register(self, name: str, cls: type) -> None:
        if not isinstance(cls, type):
            msg = f"Controller {name!r} must be a class, got {cls!r}"
            raise ConfigurationError(msg)
        self._classes[name] = cls

    def get(self, name: str) -> type | None:
        return self._classes.get(name)


def _public_method(instance: Any, name: str) -> Callable[..., Any] | None:
    if name.startswith("_"):
        return None
    method = getattr(instance, name, None)
    return method if callable(method) else None


class ControllerResolver:
    """Finds the callable that handles a request."""

    __slots__ = ("_providers", "_registry")

    def __init__(self, registry: ControllerRegistry, providers: ProviderRegistry) -> None:
        self._registry = registry
        self._providers = providers

    def resolve(self, reception: Reception) -> Callable[..., Any]:
        """Return the controller callable for *reception*'s route.

        Raises ``NotFound`` when the convention finds nothing.
        """
        route = reception.route
        target = route.controller if route is not None else None

        if isinstance(target, tuple):
            cls, method_name = target
            method = _public_method(self._providers.resolve(cls), method_name)
            if method is None:
                msg = f"{cls.__qualname__} has no public method {method_name!r}"
                raise ConfigurationError(msg)
            return method
        if target is not None:
            return target

        return self._by_convention(reception)

    def _by_convention(self, reception: Reception) -> Callable[..., Any]:
        route_path = reception.route.route_path if reception.route is not None else "/"
        segments = [
            part for part in route_path.strip("/").split("/") if part and not part.startswith("{")
        ]
        if not segments:
            raise NotFound(f"No controller for {route_path!r}")

        cls = self._registry.get(segments[0])
        if cls is None:
            raise NotFound(f"No controller registered as {segments[0]!r}")

        instance = self._providers.resolve(cls)
        name = segments[1] if len(segments) > 1 else "index"
        candidates = [name]
        if not reception.is_safe_method:
            candidates.insert(0, f"{reception.method.lower()}_{name}")

        for candidate in candidates:
            method = _public_method(instance, candidate)
            if method is not None:
                return method
        raise NotFound(f"{cls.__qualname__} has no method for {reception.method} {route_path!r}")
