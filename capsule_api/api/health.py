"""Health check endpoint."""

from pydantic import BaseModel

from capsule_api.core.logger import LogIcon, logger
from capsule_api.core.router import Router
from capsule_api.core.settings import settings as st

router = Router(__file__, prefix="/")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    uploads_dir: str


@router.get("/health")
async def health_check() -> HealthResponse:
    logger.info("Health check requested", icon=LogIcon.HEALTHCHECK)
    return HealthResponse(
        status="healthy",
        service=st.API_NAME,
        version=st.API_VERSION,
        uploads_dir=str(st.uploads_root),
    )
