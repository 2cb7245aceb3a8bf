"""Input validation: validator primitives and the dot-path validator pass.

Usage::

    from perch.validation import number, string, validate

    result = validate(reception.input, {
        "page_id": number(min_value=1),
        "user.name": string(max_len=20),
    })
    if not result:
        # result.errors == (FieldError("user.name", 1001, "..."),)
        ...
    # result.data == {"page_id": 3, "user": {"name": "alice"}}
"""

from collections.abc import Mapping
from typing import Any

from perch._internal.dotpath import NestedBuilder, resolve
from perch.errors import ValidationFailure
from perch.validation.result import FieldError, ValidationResult
from perch.validation.rules import Validator, number, string, upload

__all__ = [
    "FieldError",
    "ValidationFailure",
    "ValidationResult",
    "Validator",
    "number",
    "string",
    "upload",
    "validate",
]


def validate(
    data: Mapping[str, Any],
    validators: Mapping[str, Validator],
) -> ValidationResult:
    """Run every validator against the value at its dot-path key.

    Keys are processed in registration order. Each key's raw value is
    resolved by walking its dot-path through *data* (``None`` when any
    segment is missing). The validator's return value is written at the
    same path in the output; a ``ValidationFailure`` writes ``False``
    and records a ``FieldError``. Every key is processed, even after a
    failure.

    Only ``ValidationFailure`` is caught. Anything else a validator
    raises is a bug and propagates.

    Example::

        result = validate({"a": {"b": "5"}}, {"a.b": number(min_value=1)})
        result.data    # {"a": {"b": 5}}
        result.errors  # ()
    """
    output = NestedBuilder()
    errors: list[FieldError] = []

    for key, validator in validators.items():
        output.prepare(key)
        raw = resolve(data, key)
        try:
            value = validator(raw)
        except ValidationFailure as exc:
            errors.append(FieldError(key, exc.code, exc.message))
            value = False
        output.set(key, value)

    return ValidationResult(data=output.tree, errors=tuple(errors))
