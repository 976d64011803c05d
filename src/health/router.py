"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import ORJSONResponse

from src.config import get_settings
from src.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> ORJSONResponse:
    """Ready once the Cassandra cluster is open; the Redis relay is optional."""
    cluster = getattr(request.app.state, "cassandra", None)
    ready = cluster is not None and cluster.is_connected
    return ORJSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "unavailable",
            "environment": get_settings().environment,
            "database": ready,
            "realtime_relay": get_redis() is not None,
        },
    )


@router.get("")
async def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
