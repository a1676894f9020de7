"""asyncpg connection pool for the durable store.

The pool is created once at startup and shared by every sync task, the
lock coordinator and the read API.  A pooled connection is only checked out
for the duration of a query (or of one advisory-lock bracket), never across a
task's interval sleep.

Every connection gets a JSON codec for ``json``/``jsonb`` so payloads go in
and come out as plain Python values.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

from skywatch.config import Settings, get_settings

logger = logging.getLogger("skywatch.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup.

    Raises whatever asyncpg raises when the database is unreachable; the
    caller treats that as fatal.
    """
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=s.db_pool_min_size,
        max_size=s.db_pool_max_size,
        command_timeout=s.db_command_timeout,
        init=_init_connection,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        s.db_pool_min_size,
        s.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


async def ping(pool: asyncpg.Pool | None = None) -> Any:
    """Run ``SELECT 1`` on a pooled connection."""
    p = pool or get_pool()
    async with p.acquire() as conn:
        return await conn.fetchval("SELECT 1")
