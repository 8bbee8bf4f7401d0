"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a pooled asyncio client
is created at import time; when it's None (local dev, tests) the task
queue falls back to its in-memory implementation.

Redis only carries the certificate reconciliation queue.  Everything
that must survive a restart lives in PostgreSQL.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from courseflow.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


async def ping() -> bool:
    """True when Redis answers, False when unreachable or not configured."""
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except aioredis.RedisError:
        logger.warning("Redis ping failed")
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, task queue runs in-process")
        yield
        return

    if await ping():
        logger.info("Redis connected")
    else:
        # Keep serving; enqueue failures surface per request.
        logger.error("Redis unreachable on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
