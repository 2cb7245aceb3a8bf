"""Compiled router with trie-based path matching.

Routes are registered during setup and compiled into an immutable
lookup structure when the app freezes.
"""

import re
from dataclasses import dataclass

from perch.errors import ConfigurationError, MethodNotAllowed, NotFound
from perch.routing.params import CONVERTERS, convert_param
from perch.routing.route import PathSegment, Route, RouteMatch


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "/users"             -> [PathSegment("users")]
        "/users/{id}"        -> [..., PathSegment("{id}", is_param=True, param_name="id")]
        "/users/{id:int}"    -> [..., PathSegment("{id:int}", ..., param_type="int")]
        "/files/{rest:path}" -> [..., PathSegment("{rest:path}", ..., param_type="path")]

    Raises ``ConfigurationError`` for unknown converters.
    """
    segments: list[PathSegment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            param_name, _, param_type = part[1:-1].partition(":")
            param_type = param_type or "str"
            if param_type not in CONVERTERS:
                msg = f"Unknown path converter {param_type!r} in route {path!r}"
                raise ConfigurationError(msg)
            segments.append(
                PathSegment(
                    value=part,
                    is_param=True,
                    param_name=param_name,
                    param_type=param_type,
                )
            )
        else:
            segments.append(PathSegment(value=part))
    return segments


class _TrieNode:
    """A node in the route trie. Mutable during compilation only."""

    __slots__ = ("catch_all", "children", "param_child", "routes_by_method")

    def __init__(self) -> None:
        self.children: dict[str, _TrieNode] = {}
        # Only one parameter pattern per level
        self.param_child: _ParamEdge | None = None
        self.catch_all: _CatchAllEdge | None = None
        self.routes_by_method: dict[str, Route] = {}


@dataclass(slots=True)
class _ParamEdge:
    param_name: str
    param_type: str
    regex: re.Pattern[str]
    node: _TrieNode


@dataclass(slots=True)
class _CatchAllEdge:
    """Consumes the rest of the path (``{name:path}``)."""

    param_name: str
    node: _TrieNode


class Router:
    """Compiled router with trie-based path matching.

    Usage::

        router = Router()
        router.add(Route("/users/{id:int}", frozenset({"GET"})))
        router.compile()
        match = router.match("GET", "/users/42")
        match.path_params  # {"id": 42}

    HEAD requests match GET routes unless HEAD is registered explicitly.
    """

    __slots__ = ("_compiled", "_root")

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._compiled = False

    def add(self, route: Route) -> None:
        """Add a route to the router. Must be called before compile()."""
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        node = self._root
        segments = parse_path(route.path)
        for index, seg in enumerate(segments):
            if seg.is_param and seg.param_type == "path":
                if index != len(segments) - 1:
                    msg = f"A path converter must be the last segment: {route.path!r}"
                    raise ConfigurationError(msg)
                if node.catch_all is None:
                    node.catch_all = _CatchAllEdge(seg.param_name or "path", _TrieNode())
                node = node.catch_all.node
            elif seg.is_param:
                edge = node.param_child
                if edge is None:
                    pattern, _ = CONVERTERS[seg.param_type]
                    edge = _ParamEdge(
                        param_name=seg.param_name or "",
                        param_type=seg.param_type,
                        regex=re.compile(f"^{pattern}$"),
                        node=_TrieNode(),
                    )
                    node.param_child = edge
                elif (edge.param_name, edge.param_type) != (seg.param_name, seg.param_type):
                    msg = (
                        f"Conflicting parameter {seg.value!r} in {route.path!r}; "
                        f"this position is already {{{edge.param_name}:{edge.param_type}}}"
                    )
                    raise ConfigurationError(msg)
                node = edge.node
            else:
                node = node.children.setdefault(seg.value, _TrieNode())

        for method in route.methods:
            if method in node.routes_by_method:
                msg = f"Duplicate route: {method} {route.path!r}"
                raise ConfigurationError(msg)
            node.routes_by_method[method] = route

    @property
    def routes(self) -> list[Route]:
        """Every registered route, each listed once."""
        seen: set[int] = set()
        result: list[Route] = []
        self._collect_routes(self._root, seen, result)
        return result

    def _collect_routes(self, node: _TrieNode, seen: set[int], result: list[Route]) -> None:
        for route in node.routes_by_method.values():
            if id(route) not in seen:
                seen.add(id(route))
                result.append(route)
        for child in node.children.values():
            self._collect_routes(child, seen, result)
        if node.param_child is not None:
            self._collect_routes(node.param_child.node, seen, result)
        if node.catch_all is not None:
            self._collect_routes(node.catch_all.node, seen, result)

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True

    def match(self, method: str, path: str) -> RouteMatch:
        """Match a request path and method against compiled routes.

        Returns a ``RouteMatch`` with converted path parameters.
        Raises ``NotFound`` if no route matches the path.
        Raises ``MethodNotAllowed`` if the path matches but the method doesn't.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        result = self._match_node(self._root, parts, 0, {})
        if result is None:
            raise NotFound(f"No route matches {method} {path!r}")

        node, params = result
        route = node.routes_by_method.get(method)
        if route is None and method == "HEAD":
            route = node.routes_by_method.get("GET")
        if route is None:
            allowed = set(node.routes_by_method)
            if "GET" in allowed:
                allowed.add("HEAD")
            raise MethodNotAllowed(frozenset(allowed))

        return RouteMatch(route=route, path_params=params)

    def _match_node(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        params: dict[str, str | int],
    ) -> tuple[_TrieNode, dict[str, str | int]] | None:
        """Recursively match path parts: static first, then parameter, then catch-all."""
        if index == len(parts):
            if node.routes_by_method:
                return node, params
            return None

        part = parts[index]

        if part in node.children:
            result = self._match_node(node.children[part], parts, index + 1, params)
            if result is not None:
                return result

        edge = node.param_child
        if edge is not None and edge.regex.match(part):
            new_params = {**params, edge.param_name: convert_param(part, edge.param_type)}
            result = self._match_node(edge.node, parts, index + 1, new_params)
            if result is not None:
                return result

        if node.catch_all is not None and node.catch_all.node.routes_by_method:
            remaining = "/".join(parts[index:])
            return node.catch_all.node, {**params, node.catch_all.param_name: remaining}

        return None
