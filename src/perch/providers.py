"""Type-keyed dependency providers.

Controllers, callbacks and middleware declare dependencies by type
annotation. The binder asks the registry for an instance::

    app.provide(Database, lambda: Database(url), lifetime="singleton")

    @app.route("/users")
    def users(db: Database): ...

Types nobody registered are built with zero arguments, so plain
service classes need no registration at all.
"""

import inspect
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from perch.errors import ConfigurationError


class Lifetime(StrEnum):
    SINGLETON = "singleton"
    TRANSIENT = "transient"


@dataclass(frozen=True, slots=True)
class Provider:
    factory: Callable[[], Any]
    lifetime: Lifetime


def _require_zero_arg(cls: type) -> None:
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures; let the call decide
        return
    required = [
        p.name
        for p in signature.parameters.values()
        if p.default is inspect.Parameter.empty
        and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if required:
        msg = (
            f"Cannot construct {cls.__qualname__}: required arguments {required}. "
            f"Register a factory with app.provide({cls.__qualname__}, ...)."
        )
        raise ConfigurationError(msg)


class ProviderRegistry:
    """Maps types to factories with singleton or transient lifetime.

    Singletons are created on first use under a lock and shared across
    requests. Transients are created for every resolution.
    """

    __slots__ = ("_instances", "_lock", "_providers")

    def __init__(self) -> None:
        self._providers: dict[type, Provider] = {}
        self._instances: dict[type, Any] = {}
        self._lock = threading.Lock()

    def register(
        self,
        annotation: type,
        factory: Callable[[], Any] | None = None,
        *,
        lifetime: Lifetime | str = Lifetime.SINGLETON,
    ) -> None:
        """Register *factory* (default: the type itself) for *annotation*."""
        try:
            lifetime = Lifetime(lifetime)
        except ValueError:
            msg = f"Unknown provider lifetime {lifetime!r}; use 'singleton' or 'transient'"
            raise ConfigurationError(msg) from None
        self._providers[annotation] = Provider(factory or annotation, lifetime)
        self._instances.pop(annotation, None)

    def __contains__(self, annotation: object) -> bool:
        return annotation in self._providers

    def resolve(self, annotation: type) -> Any:
        """Return an instance of *annotation*.

        Raises ``ConfigurationError`` when an unregistered type can't be
        built without arguments.
        """
        provider = self._providers.get(annotation)
        if provider is None:
            _require_zero_arg(annotation)
            return annotation()
        if provider.lifetime is Lifetime.TRANSIENT:
            return provider.factory()

        if annotation in self._instances:
            return self._instances[annotation]
        with self._lock:
            if annotation not in self._instances:
                self._instances[annotation] = provider.factory()
            return self._instances[annotation]
