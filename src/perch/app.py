"""Perch application class.

Mutable during setup (routes, middleware, providers, controllers).
Frozen when ``__call__()`` is first invoked.
"""

import inspect
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from perch._internal.binding import ArgumentBinder
from perch._internal.types import ErrorHandler, Receive, Scope, Send
from perch.config import AppConfig
from perch.dispatch.controller import ControllerRegistry, ControllerResolver
from perch.dispatch.initializer import RequestInitializer
from perch.dispatch.middleware import MiddlewareChainRunner, MiddlewareRegistry
from perch.dispatch.pipeline import DispatchPipeline
from perch.providers import Lifetime, ProviderRegistry
from perch.reception import DomainCache
from perch.routing.builder import RouteBuilder
from perch.routing.router import Router
from perch.server.handler import handle_request
from perch.session import SessionStore

logger = logging.getLogger("perch.server")


class App:
    """The perch application.

    Usage::

        app = App(AppConfig(secret_key="change-me"))

        @app.middleware("auth")
        class Auth:
            def handle(self, session: Session): ...

        (
            app.route("/posts", methods=["POST"])
            .match_str("title", max_len=80)
            .middleware("auth")
            .fails(redirect("/posts/new").with_input())
        )

        @app.controller("posts")
        class Posts:
            def post_index(self, title: str):
                return redirect("/posts")

    Thread safety:
        Setup is single-threaded (decorators at import time). The freeze
        transition uses a Lock + double-check so exactly one thread
        compiles the app on first request.
    """

    __slots__ = (
        "_builders",
        "_controllers",
        "_domains",
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_kernel_middleware",
        "_middleware",
        "_pipeline",
        "_providers",
        "_router",
        "_sessions",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config: AppConfig = config or AppConfig()
        self._builders: list[RouteBuilder] = []
        self._controllers = ControllerRegistry()
        self._middleware = MiddlewareRegistry()
        self._providers = ProviderRegistry()
        self._kernel_middleware: list[str] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._domains = DomainCache(trust_forwarded_proto=self.config.trust_forwarded_proto)
        self._sessions = SessionStore(self.config)

        # Compiled state, set by _freeze()
        self._router: Router | None = None
        self._pipeline: DispatchPipeline | None = None
        self._frozen = False
        self._freeze_lock = threading.Lock()

    # -- Routes --

    def route(
        self,
        path: str,
        methods: Iterable[str] | None = None,
        *,
        name: str | None = None,
    ) -> RouteBuilder:
        """Register a route and return its builder.

        Chain validators and settings onto the builder, or use it as a
        decorator to bind the controller function::

            @app.route("/users/{user_id:int}")
            def show(user_id: int): ...

        Args:
            path: URL path pattern. ``{param}``, ``{param:int}`` and a
                trailing ``{param:path}`` capture path parameters.
            methods: HTTP methods. Defaults to ``["GET"]``.
            name: Optional route name.
        """
        self._check_not_frozen()
        builder = RouteBuilder(
            path,
            methods,
            name=name,
            default_max_file_size=self.config.default_max_file_size,
            check=self._check_not_frozen,
        )
        self._builders.append(builder)
        return builder

    def controller(self, name: str) -> Callable[[type], type]:
        """Register a controller class for convention routing."""

        def decorator(cls: type) -> type:
            self._check_not_frozen()
            self._controllers.register(name, cls)
            return cls

        return decorator

    # -- Middleware --

    def middleware(self, name: str) -> Callable[[type], type]:
        """Register a middleware class under *name* via decorator."""

        def decorator(cls: type) -> type:
            self.register_middleware(name, cls)
            return cls

        return decorator

    def register_middleware(self, name: str, cls: type) -> None:
        self._check_not_frozen()
        self._middleware.register(name, cls)

    def add_middleware(self, *names: str) -> None:
        """Run the named middleware on every route, before route middleware."""
        self._check_not_frozen()
        self._kernel_middleware.extend(names)

    # -- Service injection --

    def provide(
        self,
        annotation: type,
        factory: Callable[[], Any] | None = None,
        *,
        lifetime: Lifetime | str = Lifetime.SINGLETON,
    ) -> None:
        """Register a factory for a type annotation.

        Parameters annotated with *annotation* receive the factory's
        product. ``singleton`` (default) builds it once, ``transient``
        on every injection::

            app.provide(Mailer, lambda: Mailer(host="smtp"), lifetime="transient")
        """
        self._check_not_frozen()
        self._providers.register(annotation, factory, lifetime=lifetime)

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook, run during ASGI lifespan startup."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook, run during ASGI lifespan shutdown."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()
        assert self._router is not None
        assert self._pipeline is not None

        await handle_request(
            scope,
            receive,
            send,
            router=self._router,
            pipeline=self._pipeline,
            config=self.config,
            sessions=self._sessions,
            domains=self._domains,
            kernel_middleware=tuple(self._kernel_middleware),
            error_handlers=self._error_handlers,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup, then runs the registered hooks.
        """
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    self._ensure_frozen()
                    for hook in self._startup_hooks:
                        result = hook()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                for hook in self._shutdown_hooks:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        logging.getLogger("perch").setLevel(self.config.log_level.upper())

        router = Router()
        binder = ArgumentBinder(self._providers)
        for builder in self._builders:
            router.add(builder.build())
        router.compile()
        self._middleware.freeze()

        self._router = router
        self._pipeline = DispatchPipeline(
            RequestInitializer(binder),
            MiddlewareChainRunner(self._middleware, self._providers, binder),
            ControllerResolver(self._controllers, self._providers),
            binder,
        )
        # Set last: other threads skip the lock once this is True
        self._frozen = True
        logger.debug("Compiled %d route(s)", len(router.routes))

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, middleware, and providers before the first request."
            )
            raise RuntimeError(msg)
