"""Streams multipart/form-data bodies to disk with upload limits enforced."""

import asyncio
import random
import re
import time
from dataclasses import dataclass, field
from pathlib import Path, PureWindowsPath
from typing import BinaryIO

from python_multipart import MultipartParser
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import parse_options_header

from capsule_api.core.errors import (
    FieldTooLargeError,
    FileTooLargeError,
    MultipartParseError,
    TooManyFilesError,
    UnsupportedMediaTypeError,
    UploadError,
    UploadIOError,
)
from capsule_api.core.logger import LogIcon, logger
from capsule_api.core.settings import MIB
from capsule_api.models.files import StorageDestination, UploadedFile, filename_prefix

CHUNK_SIZE = 64 * 1024
DEFAULT_PART_TYPE = "application/octet-stream"

_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


def original_extension(original_filename: str) -> str:
    """Extension of a client filename, empty when absent or unusual."""
    suffix = PureWindowsPath(original_filename).suffix
    return suffix if _EXTENSION.match(suffix) else ""


def generate_filename(mimetype: str, original_filename: str) -> str:
    """``{prefix}-{unix_millis}-{random}{ext}``, unique without a disk lookup."""
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{filename_prefix(mimetype)}-{unique_suffix}{original_extension(original_filename)}"


@dataclass
class ParsedForm:
    files: list[UploadedFile] = field(default_factory=list)
    values: dict[str, str | list[str]] = field(default_factory=dict)

    def add_value(self, name: str, value: str) -> None:
        match self.values.get(name):
            case None:
                self.values[name] = value
            case list() as existing:
                existing.append(value)
            case existing:
                self.values[name] = [existing, value]


class _MultipartUpload:
    """Per-request parser callbacks. Each file part goes straight to its destination file."""

    def __init__(self, adapter: "MultipartParserAdapter") -> None:
        self._adapter = adapter
        self.form = ParsedForm()
        self.ended = False
        self._file_count = 0
        self._reset_part()

    def _reset_part(self) -> None:
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._headers: dict[str, str] = {}
        self._field_name: str | None = None
        self._original_filename: str | None = None
        self._mimetype = DEFAULT_PART_TYPE
        self._path: Path | None = None
        self._handle: BinaryIO | None = None
        self._size = 0
        self._data = bytearray()

    @property
    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_end": self.on_end,
        }

    def on_part_begin(self) -> None:
        self._reset_part()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        if self._header_field:
            name = self._header_field.decode("latin-1").lower()
            self._headers[name] = self._header_value.decode("latin-1")
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get("content-disposition", ""))
        name = options.get(b"name")
        if name is None:
            raise MultipartParseError("Multipart part without a field name")
        self._field_name = name.decode("utf-8", errors="replace")

        filename = options.get(b"filename")
        if filename is None:
            return

        self._original_filename = filename.decode("utf-8", errors="replace")
        mimetype, _ = parse_options_header(self._headers.get("content-type", DEFAULT_PART_TYPE))
        self._mimetype = mimetype.decode("latin-1").lower() or DEFAULT_PART_TYPE

        self._file_count += 1
        if self._file_count > self._adapter.max_files:
            raise TooManyFilesError(self._adapter.max_files)
        if self._mimetype not in self._adapter.allowed_mime_types:
            raise UnsupportedMediaTypeError(self._mimetype)

        destination = self._adapter.uploads_dir / StorageDestination.from_mimetype(self._mimetype).value
        self._path = destination / generate_filename(self._mimetype, self._original_filename)
        self._handle = self._path.open("xb")

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        chunk = data[start:end]
        if self._handle is None:
            if len(self._data) + len(chunk) > self._adapter.max_field_size:
                raise FieldTooLargeError(self._field_name or "", self._adapter.max_field_size)
            self._data.extend(chunk)
            return

        self._size += len(chunk)
        if self._size > self._adapter.max_file_size:
            raise FileTooLargeError(self._original_filename or "", self._adapter.max_file_size)
        self._handle.write(chunk)

    def on_part_end(self) -> None:
        if self._handle is None:
            if self._field_name is not None:
                self.form.add_value(self._field_name, self._data.decode("utf-8", errors="replace"))
            return

        self._handle.close()
        self._handle = None
        uploaded = UploadedFile(
            field_name=self._field_name or "",
            filename=self._path.name,
            original_filename=self._original_filename or "",
            mimetype=self._mimetype,
            size=self._size,
            path=self._path,
        )
        self._path = None
        self.form.files.append(uploaded)
        logger.debug(
            "Stored upload part",
            icon=LogIcon.UPLOAD,
            field=uploaded.field_name,
            filename=uploaded.filename,
            size=uploaded.size,
        )

    def on_end(self) -> None:
        self.ended = True

    def discard_current(self) -> None:
        """Drop the part being written. Completed parts stay on disk."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        if self._path is not None:
            self._path.unlink(missing_ok=True)
            self._path = None


class MultipartParserAdapter:
    """Validate and persist multipart file parts before any handler runs."""

    def __init__(
        self,
        uploads_dir: Path,
        max_file_size: int,
        max_files: int,
        allowed_mime_types: frozenset[str],
        max_field_size: int = MIB,
    ) -> None:
        self.uploads_dir = uploads_dir
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.allowed_mime_types = allowed_mime_types
        self.max_field_size = max_field_size

    async def parse(self, content_type: str, body: bytes) -> ParsedForm:
        """Parse a multipart body, writing file parts off the event loop."""
        boundary = self.boundary(content_type)
        return await asyncio.to_thread(self._parse, boundary, body)

    @staticmethod
    def boundary(content_type: str) -> bytes:
        _, options = parse_options_header(content_type)
        boundary = options.get(b"boundary")
        if not boundary:
            raise MultipartParseError("Missing boundary in multipart content-type")
        return boundary

    def _parse(self, boundary: bytes, body: bytes) -> ParsedForm:
        upload = _MultipartUpload(self)
        parser = MultipartParser(boundary, upload.callbacks)
        view = memoryview(body)
        try:
            for offset in range(0, len(view), CHUNK_SIZE):
                parser.write(bytes(view[offset : offset + CHUNK_SIZE]))
            parser.finalize()
        except UploadError:
            upload.discard_current()
            raise
        except FormParserError as ex:
            upload.discard_current()
            raise MultipartParseError(f"Multipart parsing failed: {ex}") from ex
        except OSError as ex:
            upload.discard_current()
            raise UploadIOError(f"Could not write upload: {ex}") from ex

        if not upload.ended:
            upload.discard_current()
            raise MultipartParseError("Unexpected end of multipart body")

        return upload.form
