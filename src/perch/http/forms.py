"""Form body parsing: URL-encoded and multipart.

URL-encoded bodies use stdlib ``urllib.parse``. Multipart bodies are
parsed with ``python-multipart``; uploaded parts become ``UploadFile``
objects held in memory.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl

import anyio

from perch.errors import BadRequest
from perch.http.query import nest_pairs


@dataclass(frozen=True, slots=True)
class UploadFile:
    """An uploaded file from a multipart form submission.

    ``content_type`` is what the client declared; the upload validator
    checks it together with the filename extension.
    """

    filename: str
    content_type: str
    size: int
    _content: bytes

    async def read(self) -> bytes:
        """Return the file content as bytes."""
        return self._content

    async def save(self, path: str | Path) -> None:
        """Write the file content to *path* in a worker thread.

        Parent directories must exist.
        """
        await anyio.to_thread.run_sync(Path(path).write_bytes, self._content)

    def __repr__(self) -> str:
        return f"UploadFile({self.filename!r}, {self.content_type!r}, {self.size} bytes)"


class FormData(Mapping[str, str]):
    """Immutable parsed form body: string fields plus uploaded files.

    ``__getitem__`` returns the last value submitted for a field, the way
    request input sees it. ``get_list`` returns every value.
    """

    __slots__ = ("_fields", "_files")

    def __init__(
        self,
        fields: list[tuple[str, str]] | None = None,
        files: list[tuple[str, UploadFile]] | None = None,
    ) -> None:
        self._fields: tuple[tuple[str, str], ...] = tuple(fields or ())
        self._files: tuple[tuple[str, UploadFile], ...] = tuple(files or ())

    def __getitem__(self, key: str) -> str:
        values = self.get_list(key)
        if not values:
            raise KeyError(key)
        return values[-1]

    def __iter__(self) -> Iterator[str]:
        return iter(dict.fromkeys(name for name, _ in self._fields))

    def __len__(self) -> int:
        return len({name for name, _ in self._fields})

    def __repr__(self) -> str:
        return f"FormData({dict(self)!r}, files={len(self._files)})"

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key* (checkboxes, multi-selects)."""
        return [value for name, value in self._fields if name == key]

    @property
    def files(self) -> dict[str, UploadFile]:
        """Uploaded files by field name (last upload wins)."""
        return dict(self._files)

    def to_input(self) -> dict[str, Any]:
        """Nested mapping of the string fields (bracket notation expanded)."""
        return nest_pairs(self._fields)

    def files_input(self) -> dict[str, Any]:
        """Nested mapping of the uploaded files (bracket notation expanded)."""
        return nest_pairs(self._files)


async def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a form body into ``FormData``.

    Raises ``BadRequest`` for unsupported content types and malformed
    multipart bodies.
    """
    media_type = content_type.lower().split(";")[0].strip()

    if media_type in ("", "application/x-www-form-urlencoded"):
        return FormData(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))

    if media_type == "multipart/form-data":
        return _parse_multipart(body, content_type)

    msg = f"Unsupported form content type: {content_type!r}"
    raise BadRequest(msg)


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    """Parse a multipart body with python-multipart's callback parser."""
    from python_multipart.exceptions import MultipartParseError
    from python_multipart.multipart import MultipartParser, parse_options_header

    _, options = parse_options_header(content_type.encode("latin-1"))
    boundary = options.get(b"boundary")
    if not boundary:
        msg = "Multipart form data missing boundary parameter"
        raise BadRequest(msg)

    fields: list[tuple[str, str]] = []
    files: list[tuple[str, UploadFile]] = []

    part_headers: dict[str, str] = {}
    header_name = ""
    part_data = bytearray()

    def on_part_begin() -> None:
        nonlocal part_data
        part_headers.clear()
        part_data = bytearray()

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        part_data.extend(chunk[start:end])

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        nonlocal header_name
        header_name = chunk[start:end].decode("latin-1").lower()

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        part_headers[header_name] = chunk[start:end].decode("latin-1")

    def on_part_end() -> None:
        _, params = parse_options_header(
            part_headers.get("content-disposition", "").encode("latin-1")
        )
        name = params.get(b"name")
        if name is None:
            return
        field_name = name.decode("utf-8")
        filename = params.get(b"filename")
        if filename is None:
            fields.append((field_name, part_data.decode("utf-8", errors="replace")))
            return
        content = bytes(part_data)
        files.append(
            (
                field_name,
                UploadFile(
                    filename=filename.decode("utf-8"),
                    content_type=part_headers.get("content-type", "application/octet-stream"),
                    size=len(content),
                    _content=content,
                ),
            )
        )

    parser = MultipartParser(
        boundary,
        {
            "on_part_begin": on_part_begin,
            "on_part_data": on_part_data,
            "on_part_end": on_part_end,
            "on_header_field": on_header_field,
            "on_header_value": on_header_value,
        },
    )
    try:
        parser.write(body)
        parser.finalize()
    except MultipartParseError as exc:
        msg = f"Malformed multipart body: {exc}"
        raise BadRequest(msg) from exc

    return FormData(fields, files)
