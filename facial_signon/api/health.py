"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from facial_signon.core.logging import get_logger
from facial_signon.dependencies import CacheDep, ContextDep, SessionDep
from facial_signon.models.api import SuccessResponse

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthStatus(BaseModel):
    """Health status response model."""

    status: str
    version: str
    service: str


class ReadinessStatus(BaseModel):
    """Readiness status response model."""

    status: str
    version: str
    service: str
    database: str
    redis: str


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(context: ContextDep) -> SuccessResponse[HealthStatus]:
    """Liveness probe; does not touch any backend."""
    settings = context.settings
    logger.debug("health_check")

    return SuccessResponse(
        data=HealthStatus(
            status="healthy",
            version=settings.version,
            service=settings.app_name,
        )
    )


@router.get("/health/ready")
async def readiness_check(context: ContextDep, db: SessionDep, cache: CacheDep) -> Response:
    """Readiness probe: 200 when both the database and Redis answer, else 503."""
    settings = context.settings
    logger.debug("readiness_check")

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar_one()
        database_ok = True
    except SQLAlchemyError as e:
        logger.error("readiness_check_failed", backend="database", error=str(e))
        database_ok = False

    redis_ok = await cache.ping()
    if not redis_ok:
        logger.error("readiness_check_failed", backend="redis")

    ready = database_ok and redis_ok
    if ready:
        logger.info("readiness_check_passed")

    response_data = SuccessResponse(
        data=ReadinessStatus(
            status="ready" if ready else "not_ready",
            version=settings.version,
            service=settings.app_name,
            database="connected" if database_ok else "disconnected",
            redis="connected" if redis_ok else "disconnected",
        )
    )

    return Response(
        content=response_data.model_dump_json(),
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        media_type="application/json",
    )
