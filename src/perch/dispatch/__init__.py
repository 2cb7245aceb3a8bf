"""Per-request dispatch: input validation, named middleware, controllers.

``DispatchPipeline`` ties the stages together; the ASGI kernel in
``perch.server.handler`` builds the ``Reception`` it runs on.
"""

from perch.dispatch.controller import ControllerRegistry, ControllerResolver
from perch.dispatch.initializer import RequestInitializer
from perch.dispatch.middleware import MiddlewareChainRunner, MiddlewareRegistry
from perch.dispatch.normalizer import (
    DataPatch,
    Handled,
    Outcome,
    Passthrough,
    Renderable,
    Sendable,
    normalize,
    to_response,
)
from perch.dispatch.pipeline import DispatchPipeline

__all__ = [
    "ControllerRegistry",
    "ControllerResolver",
    "DataPatch",
    "DispatchPipeline",
    "Handled",
    "MiddlewareChainRunner",
    "MiddlewareRegistry",
    "Outcome",
    "Passthrough",
    "Renderable",
    "RequestInitializer",
    "Sendable",
    "normalize",
    "to_response",
]
