"""Signed cookie sessions with flash data and an error store.

Session data is serialized as JSON and signed with ``itsdangerous``.
Nothing is encrypted: keep secrets out of the session.

Flash data lives for exactly one follow-up request. Everything flashed
during a request (``flash``, ``add_error``, ``flash_input``) is written
to the cookie; the next request loads it as *incoming* flash data and
the cookie it sends back no longer carries it::

    # request 1 (failure handler)
    session.add_error("title", 1004, "too long")

    # request 2
    session.has_error("title")            # True
    session.get_error_message("title")    # "too long"
"""

import logging
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any

from itsdangerous import BadData, URLSafeTimedSerializer

from perch.config import AppConfig
from perch.http.request import Request
from perch.http.response import Response

logger = logging.getLogger("perch.server")

_ERRORS = "errors"
_INPUT = "input"
_VALUES = "values"

_JSON_SCALARS = (str, int, float, bool, type(None))


def _json_safe(value: Any) -> bool:
    if isinstance(value, _JSON_SCALARS):
        return True
    if isinstance(value, list | tuple):
        return all(_json_safe(item) for item in value)
    if isinstance(value, Mapping):
        return all(isinstance(k, str) and _json_safe(v) for k, v in value.items())
    return False


class Session(MutableMapping[str, Any]):
    """Per-request session state.

    Dict-style access reads and writes persistent session values. Flash
    helpers read from the incoming bucket (flashed by the previous
    request) and write to the outgoing one.
    """

    __slots__ = ("_data", "_flash_consumed", "_incoming", "_outgoing", "modified")

    def __init__(
        self,
        data: dict[str, Any] | None = None,
        incoming_flash: dict[str, Any] | None = None,
    ) -> None:
        self._data: dict[str, Any] = data or {}
        self._incoming: dict[str, Any] = incoming_flash or {}
        self._outgoing: dict[str, Any] = {}
        self._flash_consumed = False
        # Incoming flash must be cleared from the cookie
        self.modified = bool(self._incoming)

    # -- Dict-style access --

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.modified = True

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.modified = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Session({self._data!r}, flash={self._incoming!r})"

    def clear(self) -> None:
        """Discard all session data (e.g. to prevent session fixation)."""
        self._data.clear()
        self.modified = True

    # -- Flash writes (visible to the next request) --

    def flash(self, key: str, value: Any) -> None:
        """Flash ``key = value`` to the next request."""
        self._outgoing.setdefault(_VALUES, {})[key] = value
        self.modified = True

    def add_error(self, key: str, code: int | None = None, message: str | None = None) -> None:
        """Record a validation error for *key* for the next request."""
        self._outgoing.setdefault(_ERRORS, {})[key] = {"code": code, "message": message}
        self.modified = True

    def flash_input(self, data: Mapping[str, Any], *except_keys: str) -> None:
        """Flash request input for the next request, minus *except_keys*.

        Values that can't be stored in a cookie (uploaded files, objects)
        are dropped.
        """
        kept = {
            key: value
            for key, value in data.items()
            if key not in except_keys and _json_safe(value)
        }
        self._outgoing[_INPUT] = kept
        self.modified = True

    # -- Flash reads (flashed by the previous request) --

    def get_flash_once(self) -> dict[str, Any]:
        """Return the incoming flash values; ``{}`` on every later call."""
        if self._flash_consumed:
            return {}
        self._flash_consumed = True
        return dict(self._incoming.get(_VALUES, {}))

    def get_error(self, key: str) -> dict[str, Any] | None:
        """The ``{"code", "message"}`` record flashed for *key*, or ``None``."""
        return self._incoming.get(_ERRORS, {}).get(key)

    def has_error(self, key: str | None = None) -> bool:
        """True if an error was flashed for *key* (for any key when omitted)."""
        errors = self._incoming.get(_ERRORS, {})
        return bool(errors) if key is None else key in errors

    def get_error_message(self, key: str) -> str | None:
        error = self.get_error(key)
        return None if error is None else error["message"]

    def get_error_code(self, key: str) -> int | None:
        error = self.get_error(key)
        return None if error is None else error["code"]

    @property
    def errors(self) -> dict[str, dict[str, Any]]:
        """Every error flashed by the previous request, by key."""
        return dict(self._incoming.get(_ERRORS, {}))

    @property
    def old_input(self) -> dict[str, Any]:
        """Input flashed by the previous request."""
        return dict(self._incoming.get(_INPUT, {}))

    @property
    def outgoing_flash(self) -> dict[str, Any]:
        return self._outgoing

    @property
    def data(self) -> dict[str, Any]:
        return self._data


class SessionStore:
    """Loads a ``Session`` from the request cookie and writes it back.

    Without ``AppConfig.secret_key`` sessions still work within one
    request but are never persisted.
    """

    __slots__ = ("_config", "_serializer")

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._serializer = (
            URLSafeTimedSerializer(config.secret_key, salt="perch.session")
            if config.secret_key
            else None
        )

    @property
    def enabled(self) -> bool:
        return self._serializer is not None

    def load(self, request: Request) -> Session:
        """Deserialize and verify the session cookie.

        A missing, tampered or expired cookie yields an empty session.
        """
        if self._serializer is None:
            return Session()
        cookie_value = request.cookies.get(self._config.session_cookie)
        if not cookie_value:
            return Session()

        try:
            payload = self._serializer.loads(cookie_value, max_age=self._config.session_max_age)
        except BadData:
            logger.debug("Discarding invalid session cookie")
            return Session()

        if not isinstance(payload, dict):
            return Session()
        flash = payload.pop(self._config.flash_key, None)
        return Session(payload, flash if isinstance(flash, dict) else None)

    def save(self, response: Response, session: Session) -> Response:
        """Serialize the session and set the cookie on *response*."""
        if self._serializer is None or not session.modified:
            return response
        payload = dict(session.data)
        if session.outgoing_flash:
            payload[self._config.flash_key] = session.outgoing_flash
        return response.with_cookie(
            self._config.session_cookie,
            self._serializer.dumps(payload),
            max_age=self._config.session_max_age,
        )
