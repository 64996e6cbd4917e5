"""Form body parsing: URL-encoded and multipart.

URL-encoded bodies use ``urllib.parse``. Multipart bodies go through
``python-multipart``'s streaming parser; uploaded files are held in
memory as ``UploadFile`` and layered onto the request input after the
regular fields.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl

from python_multipart.multipart import MultipartParser, parse_options_header

from keel.http.params import MultiDict

URLENCODED = "application/x-www-form-urlencoded"
MULTIPART = "multipart/form-data"


@dataclass(frozen=True, slots=True)
class UploadFile:
    """An uploaded file from a multipart submission, held in memory."""

    filename: str
    content_type: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)

    async def read(self) -> bytes:
        return self.content


class FormData(MultiDict):
    """Parsed form fields plus uploaded files by field name."""

    __slots__ = ("files",)

    def __init__(
        self,
        items: Iterable[tuple[str, str]] = (),
        files: Mapping[str, UploadFile] | None = None,
    ) -> None:
        super().__init__(items)
        object.__setattr__(self, "files", dict(files or {}))


def is_form_content_type(content_type: str) -> bool:
    return content_type.split(";")[0].strip().lower() in (URLENCODED, MULTIPART)


def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a form body according to its Content-Type.

    Raises:
        ValueError: If the content type is not a form encoding, or the
            multipart boundary is missing.
    """
    media_type = content_type.split(";")[0].strip().lower()
    if media_type == URLENCODED:
        return FormData(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
    if media_type == MULTIPART:
        return _parse_multipart(body, content_type)
    msg = f"Unsupported form content type: {content_type!r}"
    raise ValueError(msg)


class _PartCollector:
    """Receives ``MultipartParser`` callbacks and assembles fields and files."""

    __slots__ = ("_data", "_field", "_headers", "_value", "fields", "files")

    def __init__(self) -> None:
        self.fields: list[tuple[str, str]] = []
        self.files: dict[str, UploadFile] = {}
        self._headers: dict[str, str] = {}
        self._field = bytearray()
        self._value = bytearray()
        self._data = bytearray()

    def callbacks(self) -> dict[str, object]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._data = bytearray()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value.extend(data[start:end])

    def on_header_end(self) -> None:
        name = self._field.decode("latin-1").lower()
        self._headers[name] = self._value.decode("latin-1")
        self._field = bytearray()
        self._value = bytearray()

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._data.extend(data[start:end])

    def on_part_end(self) -> None:
        disposition = self._headers.get("content-disposition")
        if disposition is None:
            return
        _, params = parse_options_header(disposition.encode("latin-1"))
        name = params.get(b"name")
        if name is None:
            return
        field_name = name.decode("utf-8")
        filename = params.get(b"filename")
        if filename is None:
            self.fields.append((field_name, self._data.decode("utf-8", errors="replace")))
            return
        self.files[field_name] = UploadFile(
            filename=filename.decode("utf-8"),
            content_type=self._headers.get("content-type", "application/octet-stream"),
            content=bytes(self._data),
        )


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    _, options = parse_options_header(content_type.encode("latin-1"))
    boundary = options.get(b"boundary")
    if not boundary:
        msg = "Multipart form data missing boundary parameter"
        raise ValueError(msg)

    collector = _PartCollector()
    parser = MultipartParser(boundary, collector.callbacks())
    parser.write(body)
    parser.finalize()
    return FormData(collector.fields, collector.files)
