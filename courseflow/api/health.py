"""Health and readiness endpoints.

/health (liveness) answers 200 whenever the process can respond and
reports per-dependency status in the body.  /ready (readiness) answers
503 when the database is configured but unreachable, which takes the
instance out of rotation without restarting it.  Redis only carries the
reconciliation queue, so it degrades /health but never fails /ready.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from courseflow.db import engine, redis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_status() -> str:
    if engine.async_session_factory is None:
        return "not_configured"
    try:
        async with engine.session_scope() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Database check failed", exc_info=True)
        return "degraded"
    return "ok"


async def _redis_status() -> str:
    if redis.redis_pool is None:
        return "not_configured"
    return "ok" if await redis.ping() else "degraded"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _database_status(),
        "redis": await _redis_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _database_status() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
