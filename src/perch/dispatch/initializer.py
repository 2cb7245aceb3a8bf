"""Request initialization: input ingestion and validation.

Input is assembled from the request (later sources win)::

    GET / HEAD:  query, path params
    otherwise:   query, body (JSON object or form fields), path params, files

then validated by the route's validator set and inline callback. On
success the validated mapping replaces the input; on failure the route's
failure policy applies.
"""

import logging
from collections.abc import Mapping
from typing import Any

from perch._internal.binding import ArgumentBinder, invoke
from perch.dispatch.failures import RECOVERABLE, fail, field_error
from perch.dispatch.normalizer import DataPatch, Handled, normalize
from perch.errors import Halt, HTTPError
from perch.reception import Reception
from perch.validation import FieldError, validate

logger = logging.getLogger("perch.dispatch")

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_input(reception: Reception) -> dict[str, Any]:
    """Collect the raw request input for *reception*."""
    request = reception.request
    data: dict[str, Any] = request.query.to_input()
    path_params = reception.route.path_params if reception.route is not None else {}

    if reception.is_safe_method:
        data.update(path_params)
        return data

    limit = reception.config.max_content_length
    if request.content_length is not None and request.content_length > limit:
        raise HTTPError(status=413, detail=f"Request body exceeds {limit} bytes")

    files: dict[str, Any] = {}
    media_type = request.content_type.split(";")[0].strip().lower()
    if reception.is_json:
        body = await request.json()
        if isinstance(body, Mapping):
            data.update(body)
    elif media_type in _FORM_TYPES:
        form = await request.form()
        data.update(form.to_input())
        files = form.files_input()

    data.update(path_params)
    data.update(files)
    return data


class RequestInitializer:
    """Populates and validates ``Reception.input`` for one request."""

    __slots__ = ("_binder",)

    def __init__(self, binder: ArgumentBinder) -> None:
        self._binder = binder

    async def initialize(self, reception: Reception) -> None:
        reception.overwrite(await read_input(reception))

        route = reception.route
        validators = route.validators if route is not None else None
        callback = route.callback if route is not None else None
        if validators is None and callback is None:
            return

        errors: list[FieldError] = []
        validated: dict[str, Any] | None = None
        if validators is not None:
            result = validate(reception.input(), validators)
            validated = result.data
            errors.extend(result.errors)

        if callback is not None:
            outcome = await self._run_callback(callback, reception, validated, errors)
            if outcome is not None:
                validated = outcome

        if errors:
            await fail(reception, errors)
        if validated is not None:
            reception.overwrite(validated)

    async def _run_callback(
        self,
        callback: Any,
        reception: Reception,
        validated: dict[str, Any] | None,
        errors: list[FieldError],
    ) -> dict[str, Any] | None:
        """Run the inline callback; return the mapping that should become the input.

        ``None`` means "leave the input as it is".
        """
        bound = self._binder.bind(callback, reception)
        base = validated if validated is not None else bound.builtins

        try:
            result = await invoke(callback, *bound.args, **bound.kwargs)
        except RECOVERABLE as exc:
            errors.append(field_error("match", exc))
            return validated

        if result is True:
            return dict(bound.builtins)
        if result is False:
            errors.append(FieldError("match"))
            return validated

        outcome = await normalize(result, reception)
        if isinstance(outcome, Handled):
            logger.debug("Callback for %s short-circuited the request", route_label(reception))
            reception.emit(outcome.response)
            raise Halt
        if isinstance(outcome, DataPatch) and outcome.data:
            return {**(validated or {}), **outcome.data}
        return base


def route_label(reception: Reception) -> str:
    route = reception.route
    path = route.route_path if route is not None else reception.request.path
    return f"{reception.method} {path}"
