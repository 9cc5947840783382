"""Exception hierarchy for the upload pipeline."""

from typing import Any


class CapsuleApiError(Exception):
    """Base exception for capsule-upload-api."""


class UploadError(CapsuleApiError):
    """Request-level upload failure, rendered by the router as an error response."""

    status_code: int = 400
    code: str = "upload_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class UnsupportedMediaTypeError(UploadError):
    status_code = 415
    code = "unsupported_media_type"

    def __init__(self, mimetype: str) -> None:
        super().__init__(f"File type {mimetype} is not supported", mimetype=mimetype)
        self.mimetype = mimetype


class FileTooLargeError(UploadError):
    status_code = 413
    code = "file_too_large"

    def __init__(self, filename: str, max_size: int) -> None:
        super().__init__(f"File {filename} exceeds {max_size} bytes", filename=filename, max_size=max_size)


class TooManyFilesError(UploadError):
    status_code = 413
    code = "too_many_files"

    def __init__(self, max_files: int) -> None:
        super().__init__(f"Too many files, at most {max_files} per request", max_files=max_files)


class FieldTooLargeError(UploadError):
    status_code = 413
    code = "field_too_large"

    def __init__(self, field_name: str, max_size: int) -> None:
        super().__init__(f"Field {field_name} exceeds {max_size} bytes", field=field_name, max_size=max_size)


class MultipartParseError(UploadError):
    code = "multipart_parse_error"


class UploadIOError(UploadError):
    status_code = 500
    code = "upload_io_error"


class PathTraversalError(CapsuleApiError):
    """Relative path escapes the uploads root."""

    def __init__(self, relative_path: str) -> None:
        super().__init__(f"Path {relative_path!r} escapes the uploads directory")
        self.relative_path = relative_path


class MissingFileError(CapsuleApiError):
    """A handler asked for a file field that carries no file."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Field {field_name!r} carries no uploaded file")
        self.field_name = field_name
