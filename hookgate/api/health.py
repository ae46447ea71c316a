"""
Health check endpoints - used by load balancers, Docker healthcheck, and monitoring.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (pipeline + DB + Redis)
- GET /metrics      - Prometheus exposition
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text

from hookgate.config import get_settings
from hookgate.schemas.api_responses import ReadinessResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


async def _check_database() -> bool:
    if not get_settings().database_url:
        return True
    try:
        from hookgate.database import get_session_factory
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return False


async def _check_redis() -> bool:
    try:
        from hookgate.utils.rate_limiter import get_redis
        redis = await get_redis()
        await redis.ping()
        return True
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))
        return False


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request):
    """
    Readiness check - the pipeline is built and its stores are reachable.
    Redis is only checked when rate limiting is on (it fails open anyway).
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    checks = {
        "pipeline": pipeline is not None,
        "database": await _check_database(),
    }
    if pipeline is not None and pipeline.config.rate_limit_enabled:
        checks["redis"] = await _check_redis()

    return ReadinessResponse(
        status="ready" if all(checks.values()) else "degraded",
        checks=checks,
        replay_cache_entries=len(pipeline.replay_guard) if pipeline is not None else 0,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/metrics")
async def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
