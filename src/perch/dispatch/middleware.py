"""Named middleware: registry and chain runner.

Middleware are classes registered under a name and attached to routes
by that name. Each exposes a ``handle`` method whose parameters are
bound like a controller's::

    @app.middleware("auth")
    class RequireLogin:
        def handle(self, session: Session):
            if "user_id" not in session:
                return redirect("/login")
            return {"user_id": session["user_id"]}

What ``handle`` returns decides what happens next: a response ends the
request, a mapping is merged into the input, anything else is ignored.
Raising ``ValidationFailure``, ``NotFound`` or ``BadRequest`` rejects the
request through the route's failure policy.
"""

import logging
from collections.abc import Callable
from types import MappingProxyType
from typing import Any

from perch._internal.binding import ArgumentBinder, invoke
from perch.dispatch.failures import RECOVERABLE, fail, field_error
from perch.dispatch.normalizer import DataPatch, Handled, normalize
from perch.errors import ConfigurationError, Halt
from perch.providers import ProviderRegistry
from perch.reception import Reception

logger = logging.getLogger("perch.dispatch")


class MiddlewareRegistry:
    """Middleware classes by name. Read-only once frozen."""

    __slots__ = ("_classes", "_frozen")

    def __init__(self) -> None:
        self._classes: dict[str, type] = {}
        self._frozen = False

    def register(self, name: str, cls: type) -> None:
        if self._frozen:
            msg = f"Cannot register middleware {name!r} after the app has started."
            raise RuntimeError(msg)
        if not isinstance(cls, type):
            msg = f"Middleware {name!r} must be a class, got {cls!r}"
            raise ConfigurationError(msg)
        self._classes[name] = cls

    def freeze(self) -> None:
        self._frozen = True
        self._classes = MappingProxyType(self._classes)  # type: ignore[assignment]

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def get(self, name: str) -> type:
        """Return the class registered as *name*; ``ConfigurationError`` if unknown."""
        try:
            return self._classes[name]
        except KeyError:
            msg = f"Unknown middleware {name!r}. Register it with @app.middleware({name!r})."
            raise ConfigurationError(msg) from None


class MiddlewareChainRunner:
    """Runs a route's middleware names in order for one request."""

    __slots__ = ("_binder", "_providers", "_registry")

    def __init__(
        self,
        registry: MiddlewareRegistry,
        providers: ProviderRegistry,
        binder: ArgumentBinder,
    ) -> None:
        self._registry = registry
        self._providers = providers
        self._binder = binder

    async def run(self, reception: Reception) -> None:
        """Run every middleware; halts when one ends the request."""
        names = reception.route.middleware if reception.route is not None else None
        for name in names or ():
            handle = self._entry_point(name)
            bound = self._binder.bind(handle, reception)
            try:
                result = await invoke(handle, *bound.args, **bound.kwargs)
                outcome = await normalize(result, reception)
            except RECOVERABLE as exc:
                logger.debug("Middleware %r rejected the request: %s", name, exc)
                await fail(reception, [field_error(name, exc)])

            match outcome:
                case Handled(response=response):
                    logger.debug("Middleware %r short-circuited the request", name)
                    reception.emit(response)
                    raise Halt
                case DataPatch(data=data):
                    reception.merge(data)

    def _entry_point(self, name: str) -> Callable[..., Any]:
        cls = self._registry.get(name)
        instance = self._providers.resolve(cls)
        handle = getattr(instance, "handle", None)
        if not callable(handle):
            msg = f"Middleware {name!r} ({cls.__qualname__}) has no callable handle()"
            raise ConfigurationError(msg)
        return handle
