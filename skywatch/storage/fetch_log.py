"""Append-only fetch log.

Every successful fetch adds a row; nothing is ever updated.  Duplicate rows
from a retried or double-run cycle are harmless: readers only look at the
newest row per source.
"""

from __future__ import annotations

import logging

import asyncpg

from skywatch.storage.base import DurableTarget, check_identifier
from skywatch.sync.base import CacheEntry

logger = logging.getLogger("skywatch.storage.fetch_log")


class FetchLogRepo(DurableTarget):
    """Rows of ``(id, source, fetched_at, payload)`` in ``table``."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        table: str = "space_cache",
        acquire_timeout: float = 10.0,
    ) -> None:
        self._pool = pool
        self._acquire_timeout = acquire_timeout
        self.table = check_identifier(table)

    async def init_tables(self) -> None:
        async with self._pool.acquire(timeout=self._acquire_timeout) as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id BIGSERIAL PRIMARY KEY,
                    source TEXT NOT NULL,
                    fetched_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    payload JSONB NOT NULL
                )
                """
            )
            await conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_source "
                f"ON {self.table} (source, fetched_at DESC)"
            )
        logger.info("Table %s ready", self.table)

    async def write(self, entry: CacheEntry) -> int:
        async with self._pool.acquire(timeout=self._acquire_timeout) as conn:
            row_id = await conn.fetchval(
                f"""
                INSERT INTO {self.table} (source, fetched_at, payload)
                VALUES ($1, $2, $3)
                RETURNING id
                """,
                entry.source,
                entry.fetched_at,
                entry.payload,
            )
        logger.debug("Stored %s entry in %s with id %s", entry.source, self.table, row_id)
        return 1

    async def latest(self, source: str) -> CacheEntry | None:
        async with self._pool.acquire(timeout=self._acquire_timeout) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT source, fetched_at, payload
                FROM {self.table}
                WHERE source = $1
                ORDER BY fetched_at DESC, id DESC
                LIMIT 1
                """,
                source,
            )
        if row is None:
            return None
        return CacheEntry(
            source=row["source"],
            payload=row["payload"],
            fetched_at=row["fetched_at"],
        )
