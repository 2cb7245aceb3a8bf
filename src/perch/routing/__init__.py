"""Routing: trie-matched route table plus the fluent route builder.

Routes are collected by ``RouteBuilder`` during setup and compiled into
an immutable lookup structure when the app freezes.
"""

from perch.routing.builder import RouteBuilder
from perch.routing.context import RouteContext
from perch.routing.route import MethodConfig, Route, RouteMatch
from perch.routing.router import Router

__all__ = ["MethodConfig", "Route", "RouteBuilder", "RouteContext", "RouteMatch", "Router"]
