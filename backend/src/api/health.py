"""
Probe endpoints for load balancers and orchestrators.

``/health`` and ``/live`` only prove the process answers. ``/ready`` also
runs a single database round trip and reports 503 until it succeeds.
"""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from src.core.config import get_settings
from src.core.logging import get_logger
from src.database.connection import check_database_health

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


def _service_info() -> dict[str, Any]:
    settings = get_settings()
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health", summary="Process health")
async def health_check() -> dict[str, Any]:
    return {"status": "healthy", **_service_info()}


@router.get("/live", summary="Liveness probe")
async def liveness_check() -> dict[str, Any]:
    return {"status": "alive", **_service_info()}


@router.get(
    "/ready",
    summary="Readiness probe",
    responses={503: {"description": "Database unreachable"}},
)
async def readiness_check():
    """
    Report whether the order database accepts queries.

    A single attempt is made so the probe answers within the orchestrator's
    timeout; the orchestrator supplies the retries.
    """
    if await check_database_health(max_retries=1, retry_delay=0):
        return {
            "status": "ready",
            "dependencies_ready": True,
            "database": "healthy",
            **_service_info(),
        }

    logger.warning("Readiness probe failed", database="unhealthy")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "not_ready",
            "dependencies_ready": False,
            "database": "unhealthy",
            **_service_info(),
        },
    )
