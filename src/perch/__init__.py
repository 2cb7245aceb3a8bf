"""Perch: an ASGI web framework built around a validating dispatch pipeline.

Routes declare their input validators, an optional inline callback,
named middleware and a failure handler; controllers receive input that
has already been checked.

Basic usage::

    from perch import App, redirect

    app = App()

    app.route("/posts/{post_id:int}").match_num("post_id", min_value=1)

    @app.controller("posts")
    class Posts:
        def index(self, post_id: int):
            return f"Post {post_id}"

Templates (``pip install perch[templates]``)::

    from perch import view
    return view("posts/show.html", post=post)
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "BadRequest",
    "ConfigurationError",
    "HTTPError",
    "InvalidInput",
    "JsonResponse",
    "MethodNotAllowed",
    "NotFound",
    "PerchError",
    "Reception",
    "Redirect",
    "Request",
    "Response",
    "RouteContext",
    "Session",
    "ValidationFailure",
    "View",
    "get_reception",
    "h",
    "redirect",
    "response",
    "url",
    "view",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "App":
        from perch.app import App

        return App

    if name == "AppConfig":
        from perch.config import AppConfig

        return AppConfig

    if name == "Request":
        from perch.http.request import Request

        return Request

    if name in ("Response", "Redirect", "JsonResponse"):
        from perch.http import response as _resp

        return getattr(_resp, name)

    if name in ("View", "h", "redirect", "response", "url", "view"):
        from perch import views as _views

        return getattr(_views, name)

    if name in ("Reception", "get_reception"):
        from perch import reception as _reception

        return getattr(_reception, name)

    if name == "Session":
        from perch.session import Session

        return Session

    if name == "RouteContext":
        from perch.routing.context import RouteContext

        return RouteContext

    if name in (
        "BadRequest",
        "ConfigurationError",
        "HTTPError",
        "InvalidInput",
        "MethodNotAllowed",
        "NotFound",
        "PerchError",
        "ValidationFailure",
    ):
        from perch import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
