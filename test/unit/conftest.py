"""Test fixtures for capsule-upload-api unit tests."""

import json
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from capsule_api.core.lifespan import State
from capsule_api.core.settings import DEFAULT_ALLOWED_MIME_TYPES
from capsule_api.services.file_storage import FileStorageService, ensure_upload_directories
from capsule_api.services.multipart import MultipartParserAdapter

BOUNDARY = "capsule-test-boundary"
MULTIPART_CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


# -----------------------------------------------------------------------------
# Mock classes for Robyn Request
# -----------------------------------------------------------------------------


@dataclass
class MockHeaders:
    """Mock Headers object for Robyn Request."""

    _data: dict = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._data.get(key.lower(), default)

    def set(self, key: str, value: str) -> None:
        self._data[key.lower()] = value

    def __getitem__(self, key: str) -> str:
        return self._data[key.lower()]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key.lower()] = value


@dataclass
class MockRequest:
    """Mock Request object for Robyn."""

    body: bytes | str = b""
    headers: MockHeaders = field(default_factory=MockHeaders)
    method: str = "GET"
    path_params: dict = field(default_factory=dict)

    def json(self) -> dict:
        return json.loads(self.body)


# -----------------------------------------------------------------------------
# Multipart helpers
# -----------------------------------------------------------------------------


def encode_multipart(
    fields: list[tuple[str, str]] | None = None,
    files: list[tuple[str, str, str, bytes]] | None = None,
) -> bytes:
    """Encode text fields and (field, filename, mimetype, content) files as multipart/form-data."""
    chunks: list[bytes] = []
    for name, value in fields or []:
        chunks.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        )
    for name, filename, mimetype, content in files or []:
        chunks.append(
            (
                f"--{BOUNDARY}\r\n"
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: {mimetype}\r\n\r\n"
            ).encode()
            + content
            + b"\r\n"
        )
    chunks.append(f"--{BOUNDARY}--\r\n".encode())
    return b"".join(chunks)


# -----------------------------------------------------------------------------
# Storage fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def uploads_dir(tmp_path: Path) -> Path:
    """Upload tree rooted in a temporary directory."""
    root = tmp_path / "uploads"
    ensure_upload_directories(root)
    return root


@pytest.fixture
def make_parser(uploads_dir: Path):
    """Factory fixture for parser adapters with overridable limits."""

    def _make(max_file_size: int = 1024, max_files: int = 10, max_field_size: int = 1024) -> MultipartParserAdapter:
        return MultipartParserAdapter(
            uploads_dir=uploads_dir,
            max_file_size=max_file_size,
            max_files=max_files,
            allowed_mime_types=DEFAULT_ALLOWED_MIME_TYPES,
            max_field_size=max_field_size,
        )

    return _make


@pytest.fixture
def storage(uploads_dir: Path) -> FileStorageService:
    return FileStorageService(uploads_dir)


# -----------------------------------------------------------------------------
# State fixture
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def test_state() -> State:
    """Create a test state container."""
    return State()


@pytest.fixture
def global_dependencies(test_state: State, storage: FileStorageService) -> dict:
    """Setup global dependencies for tests."""
    test_state.file_storage = storage
    yield {"state": test_state}
    test_state.clear()


@pytest.fixture
def make_mock_request():
    """Factory fixture to create mock requests."""

    def _make(body: bytes | str = b"", content_type: str | None = None, **kwargs) -> MockRequest:
        headers = MockHeaders()
        if content_type:
            headers["content-type"] = content_type
        return MockRequest(body=body, headers=headers, **kwargs)

    return _make


@pytest.fixture
def multipart():
    """Multipart body encoder."""
    return encode_multipart


@pytest.fixture
def multipart_content_type() -> str:
    return MULTIPART_CONTENT_TYPE
