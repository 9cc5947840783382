"""Upload file models shared by the parser, the middleware and the handlers."""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from beartype import beartype


class StorageDestination(StrEnum):
    """Upload subdirectory, routed by MIME type prefix."""

    IMAGES = "images"
    VIDEOS = "videos"
    AUDIO = "audio"

    @classmethod
    @beartype
    def from_mimetype(cls, mimetype: str) -> "StorageDestination":
        if mimetype.startswith("video/"):
            return cls.VIDEOS
        if mimetype.startswith("audio/"):
            return cls.AUDIO
        return cls.IMAGES


@beartype
def filename_prefix(mimetype: str) -> str:
    """Prefix of a generated filename: image, video, audio or file."""
    for prefix in ("image", "video", "audio"):
        if mimetype.startswith(f"{prefix}/"):
            return prefix
    return "file"


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """One file part written to disk by the multipart parser."""

    field_name: str
    filename: str
    original_filename: str
    mimetype: str
    size: int
    path: Path


class WebFile:
    """File value handed to request handlers.

    ``name`` is always the server generated filename. Lazy files carry no
    content and report the on-disk size instead.
    """

    __slots__ = ("name", "type", "_content", "_size")

    def __init__(self, content: bytes, name: str, type: str = "", size: int | None = None) -> None:
        self.name = name
        self.type = type
        self._content = content
        self._size = size

    @classmethod
    def lazy(cls, name: str, type: str, size: int) -> "WebFile":
        return cls(b"", name, type=type, size=size)

    @property
    def size(self) -> int:
        return len(self._content) if self._size is None else self._size

    @property
    def content(self) -> bytes:
        return self._content

    @property
    def is_lazy(self) -> bool:
        return self._size is not None

    def __repr__(self) -> str:
        return f"WebFile(name={self.name!r}, type={self.type!r}, size={self.size}, lazy={self.is_lazy})"


@dataclass(frozen=True, slots=True)
class SingleFile:
    file: WebFile


@dataclass(frozen=True, slots=True)
class FileList:
    files: tuple[WebFile, ...]

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self):
        return iter(self.files)


@dataclass(frozen=True, slots=True)
class FormValue:
    value: str | list[str]


FieldValue = SingleFile | FileList | FormValue
RequestFieldMap = dict[str, FieldValue]


def _plain(value: FieldValue) -> Any:
    match value:
        case SingleFile(file=file):
            return file
        case FileList(files=files):
            return list(files)
        case FormValue(value=raw):
            return raw


def expand_nested_fields(fields: RequestFieldMap) -> dict[str, Any]:
    """Expand dotted field names (``profile.avatar``) into nested dicts.

    A non-dict value sitting on an intermediate segment is replaced by a dict.
    """
    result: dict[str, Any] = {}
    for name, value in fields.items():
        *parents, leaf = name.split(".")
        current = result
        for part in parents:
            child = current.get(part)
            if not isinstance(child, dict):
                child = current[part] = {}
            current = child
        current[leaf] = _plain(value)
    return result
