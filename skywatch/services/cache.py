"""Redis client for the fast cache layer.

``redis.asyncio.Redis`` keeps its own connection pool and is safe to share
between sync tasks, so one client is created at startup and handed to the
scheduler and the lock coordinator.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from skywatch.config import Settings, get_settings

logger = logging.getLogger("skywatch.cache")

_client: redis.Redis | None = None


async def init_redis(settings: Settings | None = None) -> redis.Redis:
    """Create the Redis client and verify it answers ``PING``.

    Call once at app startup.  A failed ping is fatal for the process.
    """
    global _client
    s = settings or get_settings()
    client = redis.from_url(
        s.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    try:
        await client.ping()
    except Exception as exc:
        logger.error("Failed to connect to Redis at %s: %s", s.redis_url, exc)
        await client.aclose()
        raise
    _client = client
    logger.info("Connected to Redis")
    return client


async def close_redis() -> None:
    """Close the Redis client. Call at app shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")


def get_redis() -> redis.Redis:
    if _client is None:
        raise RuntimeError("Redis not initialized — call init_redis() first")
    return _client
