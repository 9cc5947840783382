"""Tests for serving stored uploads."""

from pathlib import Path

import pytest

from capsule_api.api.uploads import stored_file_response
from capsule_api.services.file_storage import FileStorageService

CHUNK = 4


def _body(response) -> bytes:
    body = response.description
    return body if isinstance(body, bytes) else body.encode()


@pytest.fixture
def stored_video(uploads_dir: Path) -> Path:
    path = uploads_dir / "videos" / "video-1-2.mp4"
    path.write_bytes(b"0123456789")
    return path


@pytest.fixture
def stored_image(uploads_dir: Path) -> Path:
    path = uploads_dir / "images" / "image-1-2.png"
    path.write_bytes(b"png")
    return path


# -----------------------------------------------------------------------------
# Full file Tests
# -----------------------------------------------------------------------------


class TestFullFile:
    """Requests without a Range header."""

    async def test_small_file_served_whole(self, storage: FileStorageService, stored_image: Path) -> None:
        response = await stored_file_response(storage, "images", stored_image.name, None, CHUNK)

        assert response.status_code == 200
        assert _body(response) == b"png"
        assert response.headers["Content-Length"] == "3"
        assert response.headers["Content-Type"] == "image/png"

    async def test_large_file_answered_with_first_chunk(
        self, storage: FileStorageService, stored_video: Path
    ) -> None:
        """Verify no request reads more than one chunk of a stored file."""
        response = await stored_file_response(storage, "videos", stored_video.name, None, CHUNK)

        assert response.status_code == 206
        assert _body(response) == b"0123"
        assert response.headers["Content-Range"] == "bytes 0-3/10"
        assert response.headers["Content-Type"] == "video/mp4"


# -----------------------------------------------------------------------------
# Range Tests
# -----------------------------------------------------------------------------


class TestRangeRequests:
    """Requests carrying a Range header."""

    async def test_range_served_as_partial_content(self, storage: FileStorageService, stored_video: Path) -> None:
        response = await stored_file_response(storage, "videos", stored_video.name, "bytes=4-5", CHUNK)

        assert response.status_code == 206
        assert _body(response) == b"45"
        assert response.headers["Content-Range"] == "bytes 4-5/10"

    async def test_open_range_capped_at_chunk(self, storage: FileStorageService, stored_video: Path) -> None:
        response = await stored_file_response(storage, "videos", stored_video.name, "bytes=5-", CHUNK)

        assert _body(response) == b"5678"

    @pytest.mark.parametrize("header", ["bytes=10-", "bytes=7-2", "frames=0-1"])
    async def test_unsatisfiable_range_returns_416(
        self, storage: FileStorageService, stored_video: Path, header: str
    ) -> None:
        response = await stored_file_response(storage, "videos", stored_video.name, header, CHUNK)

        assert response.status_code == 416
        assert response.headers["Content-Range"] == "bytes */10"


# -----------------------------------------------------------------------------
# Not found Tests
# -----------------------------------------------------------------------------


class TestNotFound:
    """Lookups that must not reveal anything outside the upload tree."""

    async def test_unknown_subdirectory(self, storage: FileStorageService, stored_video: Path) -> None:
        response = await stored_file_response(storage, "documents", stored_video.name, None, CHUNK)
        assert response.status_code == 404

    async def test_missing_file(self, storage: FileStorageService) -> None:
        response = await stored_file_response(storage, "videos", "video-0-0.mp4", None, CHUNK)
        assert response.status_code == 404

    async def test_traversal_outside_uploads(self, storage: FileStorageService, uploads_dir: Path) -> None:
        """Verify a filename climbing out of the tree is a 404, not a read."""
        (uploads_dir.parent / "secret.txt").write_text("key")

        response = await stored_file_response(storage, "images", "../../secret.txt", None, CHUNK)

        assert response.status_code == 404

    async def test_subdirectory_itself_is_not_a_file(self, storage: FileStorageService) -> None:
        response = await stored_file_response(storage, "videos", ".", None, CHUNK)
        assert response.status_code == 404
