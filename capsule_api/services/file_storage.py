"""Maps stored uploads to their public URL and on-disk location."""

from pathlib import Path

from capsule_api.core.errors import PathTraversalError
from capsule_api.core.logger import LogIcon, logger
from capsule_api.core.settings import settings as st
from capsule_api.models.core import StoredFile
from capsule_api.models.files import StorageDestination, UploadedFile, WebFile


def ensure_upload_directories(uploads_dir: Path) -> list[Path]:
    """Create the uploads root and its type subdirectories if absent."""
    created = []
    for destination in StorageDestination:
        path = uploads_dir / destination.value
        path.mkdir(parents=True, exist_ok=True)
        created.append(path)
    return created


class FileStorageService:
    """Translate MIME type and generated filename into URL and path. Performs no I/O."""

    def __init__(self, uploads_dir: Path, url_prefix: str = st.UPLOADS_URL_PREFIX) -> None:
        self.uploads_dir = uploads_dir.resolve()
        self.url_prefix = url_prefix.rstrip("/")

    def relative_path(self, mimetype: str, filename: str) -> str:
        return f"{StorageDestination.from_mimetype(mimetype).value}/{filename}"

    def process_uploaded_file(self, file: UploadedFile | WebFile) -> StoredFile:
        match file:
            case UploadedFile(filename=filename, mimetype=mimetype, size=size):
                pass
            case WebFile():
                filename, mimetype, size = file.name, file.type, file.size
            case _:
                raise TypeError(f"Cannot store {type(file).__name__}")

        file_path = self.relative_path(mimetype, filename)
        return StoredFile(
            url=self.get_url(file_path),
            file_path=file_path,
            filename=filename,
            mimetype=mimetype,
            size=size,
        )

    def get_absolute_path(self, relative_path: str) -> Path:
        """Join ``relative_path`` onto the uploads root, refusing paths that leave it."""
        candidate = (self.uploads_dir / relative_path.lstrip("/")).resolve()
        if not candidate.is_relative_to(self.uploads_dir):
            logger.warning("Rejected path outside uploads", icon=LogIcon.FORBIDDEN, path=relative_path)
            raise PathTraversalError(relative_path)
        return candidate

    def get_url(self, relative_path: str) -> str:
        return f"{self.url_prefix}/{relative_path.lstrip('/')}"

    def resolve(self, file: WebFile) -> Path:
        """Absolute path of a stored file, looked up by its generated name."""
        return self.get_absolute_path(self.relative_path(file.type, file.name))
