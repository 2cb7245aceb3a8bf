"""Argument binding for callbacks, middleware and controllers.

Each declared parameter is filled by looking at its annotation:

- none, or a builtin type (``str``, ``int``, ``list[str]``, ``int | None``...)
  -> the request input value of the same name
- ``Reception``, ``Request``, ``Session``, ``RouteContext``, ``AppConfig``
  -> the current request's instance
- any other class -> the provider registry

Name-bound values are also collected into a mapping of their own; an
inline callback that returns ``True`` adopts it as the validated input.
"""

import inspect
import threading
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from perch.errors import ConfigurationError
from perch.providers import ProviderRegistry
from perch.reception import Reception

_BUILTIN_TYPES: frozenset[Any] = frozenset(
    {str, int, float, bool, bytes, list, dict, tuple, set, frozenset, object, type(None), Any}
)


def _is_builtin(annotation: Any) -> bool:
    """True for annotations filled from request input by name."""
    if annotation is inspect.Parameter.empty or annotation is None:
        return True
    if annotation in _BUILTIN_TYPES:
        return True
    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return _is_builtin(typing.get_args(annotation)[0])
    if origin in (typing.Union, types.UnionType):
        return all(_is_builtin(arg) for arg in typing.get_args(annotation))
    if origin is typing.Literal:
        return True
    return origin in _BUILTIN_TYPES


async def invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call *func*, awaiting the result when it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True, slots=True)
class _Param:
    name: str
    kind: inspect._ParameterKind
    annotation: Any
    default: Any
    builtin: bool


@dataclass(slots=True)
class BoundArguments:
    """Arguments ready for the call, plus the name-bound input values."""

    args: list[Any] = field(default_factory=list)
    kwargs: dict[str, Any] = field(default_factory=dict)
    builtins: dict[str, Any] = field(default_factory=dict)


_signature_cache: dict[Any, tuple[_Param, ...]] = {}
_cache_lock = threading.Lock()


def _parameters(func: Callable[..., Any]) -> tuple[_Param, ...]:
    """Inspect *func* once per underlying function.

    Bound methods share their function's entry, minus ``self``.
    """
    target = getattr(func, "__func__", func)
    params = _signature_cache.get(target)
    if params is None:
        params = _inspect(target)
        with _cache_lock:
            _signature_cache[target] = params
    if target is not func:
        return params[1:]
    return params


def _inspect(func: Callable[..., Any]) -> tuple[_Param, ...]:
    name = getattr(func, "__qualname__", repr(func))
    try:
        signature = inspect.signature(func)
        hints = typing.get_type_hints(func, include_extras=True)
    except (NameError, TypeError) as exc:
        msg = f"Cannot resolve the parameter annotations of {name}: {exc}"
        raise ConfigurationError(msg) from exc

    params: list[_Param] = []
    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(param.name, inspect.Parameter.empty)
        builtin = _is_builtin(annotation)
        if not builtin and not isinstance(annotation, type):
            msg = f"Parameter {param.name!r} of {name} has unsupported annotation {annotation!r}"
            raise ConfigurationError(msg)
        params.append(_Param(param.name, param.kind, annotation, param.default, builtin))
    return tuple(params)


class ArgumentBinder:
    """Builds call arguments for user callables from the current request."""

    __slots__ = ("_providers",)

    def __init__(self, providers: ProviderRegistry) -> None:
        self._providers = providers

    def bind(self, func: Callable[..., Any], reception: Reception) -> BoundArguments:
        """Resolve every declared parameter of *func*.

        Raises ``ConfigurationError`` for parameters that can't be resolved.
        """
        bound = BoundArguments()
        data = reception.input()
        for param in _parameters(func):
            if param.builtin:
                if param.name not in data and param.default is not inspect.Parameter.empty:
                    value = param.default
                else:
                    value = data.get(param.name)
                bound.builtins[param.name] = value
            else:
                value = self._resolve(param.annotation, reception)

            if param.kind is inspect.Parameter.KEYWORD_ONLY:
                bound.kwargs[param.name] = value
            else:
                bound.args.append(value)
        return bound

    def _resolve(self, annotation: type, reception: Reception) -> Any:
        from perch.config import AppConfig
        from perch.http.request import Request
        from perch.routing.context import RouteContext
        from perch.session import Session

        scoped: dict[type, Any] = {
            Reception: reception,
            Request: reception.request,
            Session: reception.session,
            RouteContext: reception.route,
            AppConfig: reception.config,
        }
        if annotation in scoped:
            return scoped[annotation]
        return self._providers.resolve(annotation)

    async def call(self, func: Callable[..., Any], reception: Reception) -> Any:
        """Bind and invoke *func*, awaiting async results."""
        bound = self.bind(func, reception)
        return await invoke(func, *bound.args, **bound.kwargs)
