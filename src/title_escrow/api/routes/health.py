"""Health check endpoint.

Verifies database connectivity and, when the redis lock backend is in use,
Redis connectivity. Used by container healthchecks and load balancers.
"""

from __future__ import annotations

import redis.exceptions
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from title_escrow.api.deps import get_app_settings
from title_escrow.config import Settings
from title_escrow.infrastructure.database.engine import ping_db
from title_escrow.infrastructure.redis_client import get_redis
from title_escrow.logging_config import get_logger
from title_escrow.schemas.escrow import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    """Check connectivity to the database and, if used, Redis."""
    try:
        await ping_db()
        db_status = "healthy"
    except (SQLAlchemyError, OSError) as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    if settings.lock_backend != "redis":
        redis_status = "not_configured"
    else:
        try:
            await get_redis().ping()
            redis_status = "healthy"
        except (RuntimeError, redis.exceptions.RedisError) as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    healthy = db_status == "healthy" and not redis_status.startswith("unhealthy")
    overall = "ok" if healthy else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
    )
