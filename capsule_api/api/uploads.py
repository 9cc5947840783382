"""Upload endpoints: ingest multipart files and serve stored bytes."""

import asyncio
import mimetypes

from robyn import Request, Response, status_codes

from capsule_api.core.errors import PathTraversalError
from capsule_api.core.logger import LogIcon, logger
from capsule_api.core.router import Router
from capsule_api.core.settings import settings as st
from capsule_api.models.core import StoredFilesResponse, UploadForm
from capsule_api.models.files import StorageDestination
from capsule_api.services.file_range import (
    build_full_file_headers,
    build_range_headers,
    initial_range,
    parse_range_header,
    read_range,
)
from capsule_api.services.file_storage import FileStorageService

router = Router(__file__, prefix=st.UPLOADS_URL_PREFIX)


def _not_found() -> Response:
    return Response(status_code=status_codes.HTTP_404_NOT_FOUND, headers={}, description="Not found")


async def stored_file_response(
    storage: FileStorageService,
    subdir: str,
    filename: str,
    range_header: str | None,
    max_chunk_size: int,
) -> Response:
    """Build the response for one stored upload.

    At most ``max_chunk_size`` bytes are read per request. Files larger than one
    chunk are answered with a 206 for their first chunk even without ``Range``.
    """
    if subdir not in set(StorageDestination):
        return _not_found()

    try:
        path = storage.get_absolute_path(f"{subdir}/{filename}")
    except PathTraversalError:
        return _not_found()
    if not path.is_file():
        return _not_found()

    file_size = path.stat().st_size
    mimetype = mimetypes.guess_type(filename)[0] or "application/octet-stream"

    if range_header:
        byte_range = parse_range_header(range_header, file_size, max_chunk_size)
        if byte_range is None:
            return Response(
                status_code=416,
                headers={"Content-Range": f"bytes */{file_size}"},
                description="",
            )
    else:
        byte_range = initial_range(file_size, max_chunk_size)

    if byte_range is None:
        content = await asyncio.to_thread(read_range, path, None)
        headers = build_full_file_headers(file_size, mimetype)
        return Response(status_code=status_codes.HTTP_200_OK, headers=headers, description=content)

    logger.debug("Serving range", icon=LogIcon.STREAMING, start=byte_range.start, end=byte_range.end)
    content = await asyncio.to_thread(read_range, path, byte_range)
    return Response(
        status_code=206,
        headers=build_range_headers(byte_range, mimetype),
        description=content,
    )


@router.post("")
async def upload_files(form: UploadForm, global_dependencies) -> StoredFilesResponse:
    """Report where each file of the form is served. Parts are already on disk."""
    storage = global_dependencies["state"].file_storage
    stored = [storage.process_uploaded_file(file) for file in form.all_files()]
    logger.info("Upload stored", icon=LogIcon.UPLOAD, files=len(stored))
    return StoredFilesResponse(files=stored)


@router.get("/:subdir/:filename")
async def serve_file(request: Request, global_dependencies) -> Response:
    """Serve a stored upload, honouring a single ``Range`` header."""
    return await stored_file_response(
        global_dependencies["state"].file_storage,
        request.path_params["subdir"],
        request.path_params["filename"],
        request.headers.get("range"),
        st.RANGE_CHUNK_SIZE,
    )
