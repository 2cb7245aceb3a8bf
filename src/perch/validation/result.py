"""Validation results: per-field errors and the outcome of a validator pass."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class FieldError:
    """One failed key.

    ``key`` is the validator's dot-path, the literal ``"match"`` for an
    inline callback, or a middleware name. ``code`` and ``message`` are
    ``None`` when the failing step gave no detail (a callback returning
    ``False``).
    """

    key: str
    code: int | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """The outcome of running a validator set over request input.

    ``data`` always contains every validator key, nested along its
    dot-path. Failed keys hold ``False``.

    ``errors`` lists failures in validator registration order. The
    result is falsy when any key failed::

        result = validate(reception.input, validators)
        if not result:
            first = result.errors[0]
    """

    data: dict[str, Any]
    errors: tuple[FieldError, ...] = ()

    @property
    def is_valid(self) -> bool:
        """True if validation passed with no errors."""
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid
