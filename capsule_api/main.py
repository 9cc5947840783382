"""capsule-upload-api - upload ingestion service powered by Robyn."""

from robyn import Robyn

from capsule_api.api.health import router as health_router
from capsule_api.api.uploads import router as uploads_router
from capsule_api.core.lifespan import create_lifespan
from capsule_api.core.logger import LogIcon, logger
from capsule_api.core.settings import settings as st
from capsule_api.events.file_storage import FileStorageEvent
from capsule_api.middlewares.base import MiddlewareHandler
from capsule_api.middlewares.files import FileUploadMiddleware
from capsule_api.services.multipart import MultipartParserAdapter

app = Robyn(__file__)

# Lifespan events
lifespan = create_lifespan(app)
lifespan.register(FileStorageEvent)

app.startup_handler(lifespan.startup)
app.shutdown_handler(lifespan.shutdown)

# Middlewares
parser = MultipartParserAdapter(
    uploads_dir=st.uploads_root,
    max_file_size=st.MAX_FILE_SIZE,
    max_files=st.MAX_FILES,
    allowed_mime_types=st.ALLOWED_MIME_TYPES,
    max_field_size=st.MAX_FIELD_SIZE,
)
middlewares = MiddlewareHandler()
middlewares.register(FileUploadMiddleware(parser, large_file_threshold=st.LARGE_FILE_THRESHOLD))

# Routers
app.include_router(health_router)
app.include_router(uploads_router.use(middlewares))


def main() -> None:
    logger.info(f"Starting {st.API_NAME}", icon=LogIcon.START, host=st.API_HOST, port=st.API_PORT)
    app.start(host=st.API_HOST, port=st.API_PORT)


if __name__ == "__main__":
    main()
