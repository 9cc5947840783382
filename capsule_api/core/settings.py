"""Unified settings for capsule-upload-api."""

import tomllib
from pathlib import Path
from typing import ClassVar, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024

DEFAULT_ALLOWED_MIME_TYPES = frozenset(
    {
        # Images
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        # Videos
        "video/mp4",
        "video/webm",
        "video/ogg",
        "video/quicktime",
        "video/x-msvideo",
        "video/x-matroska",
        "video/mpeg",
        "video/x-flv",
        # Audio
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/ogg",
    }
)


def read_pyproject(pyproject_path: Path) -> dict:
    """Read pyproject.toml into a dict, empty when the file is not shipped."""
    if not pyproject_path.is_file():
        return {}
    with pyproject_path.open("rb") as file_handle:
        return tomllib.load(file_handle)


def get_version(base_dir: Path) -> str:
    """Get version from git tags or fallback to package metadata."""
    try:
        import git

        repo = git.Repo(base_dir, search_parent_directories=True)
        latest_tag = max(repo.tags, key=lambda t: t.commit.committed_datetime, default=None)
        return str(latest_tag) if latest_tag else "0.0.0"
    except Exception:
        try:
            import importlib.metadata

            return importlib.metadata.version("capsule-upload-api")
        except Exception:
            return "0.0.0"


class Settings(BaseSettings):
    """Unified settings for the capsule upload service."""

    DEBUG: bool = True
    ENVIRONMENT: Literal["DEV", "PROD"] = "DEV"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # ClassVar to prevent Pydantic from trying to load from env
    BASE_DIR: ClassVar[Path] = Path(__file__).parent.parent.parent
    PROJECT: ClassVar[dict] = read_pyproject(BASE_DIR / "pyproject.toml")
    API_NAME: ClassVar[str] = PROJECT.get("project", {}).get("name", "capsule-upload-api")
    API_VERSION: ClassVar[str] = get_version(BASE_DIR)

    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Uploads, relative paths resolve against the process working directory
    UPLOADS_DIR: Path = Path("uploads")
    UPLOADS_URL_PREFIX: ClassVar[str] = "/uploads"
    MAX_FILE_SIZE: int = 500 * MIB
    MAX_FILES: int = 10
    MAX_FIELD_SIZE: int = 1 * MIB
    LARGE_FILE_THRESHOLD: int = 10 * MIB
    ALLOWED_MIME_TYPES: frozenset[str] = DEFAULT_ALLOWED_MIME_TYPES

    # Streaming
    RANGE_CHUNK_SIZE: int = 512_000

    @property
    def uploads_root(self) -> Path:
        return self.UPLOADS_DIR.resolve()

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()  # type: ignore
