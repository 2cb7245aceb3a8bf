"""The dispatch pipeline: initialize, run middleware, call the controller."""

from perch._internal.binding import ArgumentBinder
from perch.dispatch.controller import ControllerResolver
from perch.dispatch.initializer import RequestInitializer
from perch.dispatch.middleware import MiddlewareChainRunner
from perch.dispatch.normalizer import to_response
from perch.http.response import Response
from perch.reception import Reception


class DispatchPipeline:
    """Runs one request through every pipeline stage in order.

    Any stage may end the request early by emitting a response on the
    reception and raising ``Halt``; the kernel sends that response.
    """

    __slots__ = ("_binder", "_controllers", "_initializer", "_middleware")

    def __init__(
        self,
        initializer: RequestInitializer,
        middleware: MiddlewareChainRunner,
        controllers: ControllerResolver,
        binder: ArgumentBinder,
    ) -> None:
        self._initializer = initializer
        self._middleware = middleware
        self._controllers = controllers
        self._binder = binder

    async def dispatch(self, reception: Reception) -> Response:
        await self._initializer.initialize(reception)
        await self._middleware.run(reception)
        controller = self._controllers.resolve(reception)
        result = await self._binder.call(controller, reception)
        return await to_response(result, reception)
