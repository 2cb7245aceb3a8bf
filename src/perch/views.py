"""Return-value helpers: views, redirects, responses, escaping.

``View`` renders a kida template from ``AppConfig.template_dir``. kida
is an optional dependency (``pip install perch[templates]``); without it
rendering a ``View`` raises ``ConfigurationError``.

Templates see their values plus ``h``, ``old``, ``url`` and
``session`` helpers bound to the current request.
"""

import functools
import html
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from perch.errors import ConfigurationError
from perch.http.response import JsonResponse, Redirect, Response
from perch.reception import get_reception


def h(value: Any) -> str:
    """HTML-escape *value* (quotes included)."""
    return html.escape(str(value), quote=True)


def url(path: str = "") -> str:
    """Absolute URL for *path* on the current request's domain."""
    return urljoin(f"{get_reception().domain}/", path.lstrip("/"))


@functools.cache
def _environment(template_dir: str, autoescape: bool, auto_reload: bool) -> Any:
    try:
        from kida import Environment, FileSystemLoader
    except ImportError:
        msg = (
            "View rendering requires the 'kida' template engine. "
            "Install it with: pip install perch[templates]"
        )
        raise ConfigurationError(msg) from None

    if not Path(template_dir).is_dir():
        msg = f"Template directory {template_dir!r} does not exist"
        raise ConfigurationError(msg)
    return Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=autoescape,
        auto_reload=auto_reload,
    )


@dataclass(frozen=True, slots=True)
class View:
    """A template plus its values, rendered when the pipeline sends it."""

    template: str
    values: dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        reception = get_reception()
        config = reception.config
        env = _environment(str(config.template_dir), config.autoescape, config.debug)
        context = {
            "h": h,
            "url": url,
            "old": reception.old,
            "session": reception.session,
            **self.values,
        }
        return env.get_template(self.template).render(context)


def view(template: str, **values: Any) -> View:
    """``return view("posts/show.html", post=post)``"""
    return View(template, values)


def redirect(target: str = "/", status: int = 302) -> Redirect:
    """Redirect to *target*; relative paths resolve against the request domain."""
    return Redirect(target, status)


def response(body: Any = "", status: int = 200) -> Response | JsonResponse:
    """Build a response: mappings and lists as JSON, anything else as HTML text."""
    if isinstance(body, dict | list):
        return JsonResponse(body, status)
    if isinstance(body, bytes):
        return Response(body=body, status=status, content_type="application/octet-stream")
    return Response(body=str(body), status=status)
