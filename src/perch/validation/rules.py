"""Built-in validator primitives.

A validator is a callable with the signature::

    def rule(value: Any) -> Any:
        '''Return the normalized value, or raise ValidationFailure.'''

The raw value may be ``None`` when the key is missing from the request.
Parameterized validators are factory functions that return a validator::

    check = number(min_value=1)
    check("5")   # -> 5
    check("0")   # raises ValidationFailure(code=2003)

Error codes:

- ``string``: 1001 not a string, 1002 pattern mismatch, 1003 empty,
  1004 too long.
- ``number``: 2001 not an integer, 2002 exact mismatch, 2003 below
  minimum, 2004 above maximum.
- ``upload``: 3001 too large, 3002 extension not allowed, 3003 type
  not allowed, 3004 no file.
"""

import mimetypes
import re
from collections.abc import Callable, Sequence
from pathlib import PurePosixPath
from typing import Any, TypeAlias

from perch.config import DEFAULT_MAX_FILE_SIZE
from perch.errors import ValidationFailure
from perch.http.forms import UploadFile

# Type alias for a validator function
Validator: TypeAlias = Callable[[Any], Any]

# Zero-width space, joiners, and BOM; invisible but not whitespace to str.strip()
_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")


def _is_blank(value: str) -> bool:
    return not _ZERO_WIDTH_RE.sub("", value).strip()


def _compile_pattern(regex: str | Sequence[str]) -> re.Pattern[str]:
    """Compile *regex*, or build an exact-choice pattern from a list of strings."""
    if isinstance(regex, str):
        return re.compile(regex)
    choices = list(regex)
    if not all(isinstance(choice, str) for choice in choices):
        msg = f"Pattern choices must all be strings, got {choices!r}"
        raise TypeError(msg)
    alternation = "|".join(re.escape(choice) for choice in choices)
    return re.compile(f"^(?:{alternation})$")


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


def string(
    *,
    max_len: int | None = None,
    regex: str | Sequence[str] | None = None,
    empty_able: bool = False,
) -> Validator:
    """Value must be a string.

    *regex* is searched anywhere in the value (anchor it yourself), or
    given as a list of strings it becomes an exact-choice match.
    A blank value (whitespace or zero-width characters only) fails with
    1003 unless *empty_able*; an allowed blank value skips the length
    and pattern checks.
    """
    pattern = _compile_pattern(regex) if regex is not None else None

    def check(value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationFailure("The input must be a string.", 1001)
        if _is_blank(value):
            if not empty_able:
                raise ValidationFailure(
                    "The input string contains only whitespace characters or an empty string.",
                    1003,
                )
            return value
        if max_len is not None and len(value) > max_len:
            raise ValidationFailure(
                f"The input string exceeds the maximum length limit of {max_len} characters.",
                1004,
            )
        if pattern is not None and not pattern.search(value):
            raise ValidationFailure(
                "The input string does not match the specified regex pattern.", 1002
            )
        return value

    return check


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def number(
    *,
    max_value: int | None = None,
    min_value: int | None = None,
    exact: int | None = None,
) -> Validator:
    """Value must be an integer, or a string made only of ASCII digits.

    Returns the value as ``int``.
    """

    def check(value: Any) -> int:
        if isinstance(value, bool):
            raise ValidationFailure(
                "The input must be an integer or a string containing only digits.", 2001
            )
        if isinstance(value, int):
            result = value
        elif isinstance(value, str) and value.isascii() and value.isdigit():
            result = int(value)
        else:
            raise ValidationFailure(
                "The input must be an integer or a string containing only digits.", 2001
            )

        if exact is not None and result != exact:
            raise ValidationFailure("The input does not match the expected value.", 2002)
        if min_value is not None and result < min_value:
            raise ValidationFailure(
                f"The input must be greater than or equal to {min_value}.", 2003
            )
        if max_value is not None and result > max_value:
            raise ValidationFailure(
                f"The input must be less than or equal to {max_value}.", 2004
            )
        return result

    return check


# ---------------------------------------------------------------------------
# Uploaded files
# ---------------------------------------------------------------------------


def _allowed_extensions(mime_types: Sequence[str]) -> frozenset[str]:
    extensions: set[str] = set()
    for mime_type in mime_types:
        guessed = mimetypes.guess_all_extensions(mime_type)
        extensions.update(ext.lstrip(".").lower() for ext in guessed)
    return frozenset(extensions)


def upload(
    allowed_mime_types: Sequence[str],
    *,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    empty_able: bool = True,
) -> Validator:
    """Value must be an uploaded file of an allowed type.

    *max_file_size* is in kilobytes. A missing or empty upload is
    returned as ``None`` when *empty_able*, and fails with 3004 otherwise.
    """
    allowed = frozenset(mime.lower() for mime in allowed_mime_types)
    extensions = _allowed_extensions(allowed_mime_types)
    max_bytes = max_file_size * 1024

    def check(value: Any) -> UploadFile | None:
        if not isinstance(value, UploadFile) or (value.size == 0 and not value.filename):
            if empty_able:
                return None
            raise ValidationFailure("No file was uploaded.", 3004)

        if value.size > max_bytes:
            raise ValidationFailure("File too large.", 3001)

        suffix = PurePosixPath(value.filename).suffix.lstrip(".").lower()
        if suffix not in extensions:
            raise ValidationFailure("File extension not allowed.", 3002)

        content_type = value.content_type.split(";")[0].strip().lower()
        if content_type not in allowed:
            raise ValidationFailure("File type does not match.", 3003)
        return value

    return check
