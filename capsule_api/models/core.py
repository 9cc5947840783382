"""Core models for request/response handling."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from capsule_api.core.errors import MissingFileError
from capsule_api.models.files import FileList, FormValue, RequestFieldMap, SingleFile, WebFile, expand_nested_fields


class BodyType(StrEnum):
    """Body content type classification for request parsing."""

    PYDANTIC = "pydantic"
    JSONABLE = "jsonable"


class UploadForm:
    """Typed view over the fields of a multipart/form-data request."""

    __slots__ = ("fields",)

    def __init__(self, fields: RequestFieldMap | None = None) -> None:
        self.fields = fields or {}

    def __bool__(self) -> bool:
        return bool(self.fields)

    def __iter__(self):
        return iter(self.fields.items())

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def keys(self) -> list[str]:
        """Get all field names."""
        return list(self.fields.keys())

    def file(self, name: str) -> WebFile:
        """Get the single file uploaded under ``name``."""
        match self.fields.get(name):
            case SingleFile(file=file):
                return file
            case _:
                raise MissingFileError(name)

    def files(self, name: str) -> list[WebFile]:
        """Get every file uploaded under ``name``, in upload order."""
        match self.fields.get(name):
            case SingleFile(file=file):
                return [file]
            case FileList(files=files):
                return list(files)
            case _:
                return []

    def all_files(self) -> list[WebFile]:
        return [file for name in self.fields for file in self.files(name)]

    def value(self, name: str, default: Any = None) -> Any:
        """Get a plain text field value."""
        match self.fields.get(name):
            case FormValue(value=value):
                return value
            case _:
                return default

    def as_nested(self) -> dict[str, Any]:
        return expand_nested_fields(self.fields)


class StoredFile(BaseModel):
    """Servable location of a stored upload."""

    url: str
    file_path: str
    filename: str
    mimetype: str
    size: int


class StoredFilesResponse(BaseModel):
    files: list[StoredFile]
