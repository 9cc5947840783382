"""File upload middleware: multipart bodies become typed request fields."""

import asyncio
from typing import Any

from capsule_api.core.errors import UploadIOError
from capsule_api.core.logger import LogIcon, logger
from capsule_api.middlewares.base import BaseMiddleware, CallNext, RequestContext
from capsule_api.models.files import FileList, FormValue, RequestFieldMap, SingleFile, UploadedFile, WebFile
from capsule_api.services.multipart import MultipartParserAdapter, ParsedForm


async def create_web_file(uploaded: UploadedFile, large_file_threshold: int) -> WebFile:
    """Build the handler-facing file, named after the generated filename.

    Files above ``large_file_threshold`` are not read; their size comes from disk.
    """
    if uploaded.size > large_file_threshold:
        return WebFile.lazy(uploaded.filename, uploaded.mimetype, uploaded.size)

    try:
        content = await asyncio.to_thread(uploaded.path.read_bytes)
    except OSError as ex:
        raise UploadIOError(f"Could not read upload {uploaded.filename}: {ex}") from ex
    return WebFile(content, uploaded.filename, type=uploaded.mimetype)


def group_by_field(files: list[UploadedFile]) -> dict[str, list[UploadedFile]]:
    grouped: dict[str, list[UploadedFile]] = {}
    for uploaded in files:
        grouped.setdefault(uploaded.field_name, []).append(uploaded)
    return grouped


async def build_field_map(parsed: ParsedForm, large_file_threshold: int) -> RequestFieldMap:
    """Text values first, then file fields, which take over any text value under the same key."""
    fields: RequestFieldMap = {name: FormValue(value) for name, value in parsed.values.items()}

    for field_name, uploads in group_by_field(parsed.files).items():
        # Sequential on purpose: list order must match upload order.
        web_files = [await create_web_file(uploaded, large_file_threshold) for uploaded in uploads]
        if len(web_files) == 1:
            fields[field_name] = SingleFile(web_files[0])
        else:
            fields[field_name] = FileList(tuple(web_files))

    return fields


class FileUploadMiddleware(BaseMiddleware):
    """Parses multipart/form-data requests ahead of the handler.

    Other content types pass through untouched. Any failure is raised to the
    caller with ``context.fields`` left as it was.
    """

    def __init__(
        self,
        parser: MultipartParserAdapter,
        large_file_threshold: int,
        endpoints: frozenset[str] | list[str] | None = None,
    ) -> None:
        super().__init__(endpoints)
        self.parser = parser
        self.large_file_threshold = large_file_threshold

    async def dispatch(self, context: RequestContext, call_next: CallNext) -> Any:
        if not context.is_multipart:
            return await call_next(context)

        try:
            parsed = await self.parser.parse(context.content_type, context.body)
            fields = await build_field_map(parsed, self.large_file_threshold)
        except Exception as ex:
            logger.error("File upload failed", icon=LogIcon.ERROR, endpoint=context.endpoint, error=str(ex))
            raise

        context.fields = fields
        logger.debug(
            f"Processed {len(parsed.files)} files for {len(fields)} fields",
            icon=LogIcon.UPLOAD,
            endpoint=context.endpoint,
        )
        return await call_next(context)
