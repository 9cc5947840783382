"""Upload directory lifespan event."""

from capsule_api.core.lifespan import BaseEvent
from capsule_api.core.logger import LogIcon, logger
from capsule_api.core.settings import settings as st
from capsule_api.services.file_storage import FileStorageService, ensure_upload_directories


class FileStorageEvent(BaseEvent[FileStorageService]):
    """Ensures the upload tree exists before the first request is served."""

    name = "file_storage"

    async def startup(self) -> FileStorageService:
        for path in ensure_upload_directories(st.uploads_root):
            logger.info("Upload directory ready", icon=LogIcon.STORAGE, path=str(path))
        return FileStorageService(st.uploads_root)
