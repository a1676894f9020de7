"""Dataset catalog upserted by natural key.

The OSDR dataset listing is a catalog rather than a time series: each
dataset has a stable ``dataset_id`` and a handful of mutable fields.  Every
fetch upserts the full listing so the table holds exactly one row per
dataset with the latest title, status and raw document.

Dedup key:
    osdr_items: (dataset_id) — UNIQUE constraint
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import asyncpg

from skywatch.errors import MalformedPayloadError
from skywatch.storage.base import DurableTarget, check_identifier
from skywatch.sync.base import CacheEntry

logger = logging.getLogger("skywatch.storage.catalog")

#: Rows returned by ``latest()``.
LATEST_LIMIT = 50


@dataclass
class CatalogItem:
    """One dataset extracted from an upstream listing.

    Attributes:
        dataset_id: Natural key (``dataset_id`` or ``accession`` upstream).
        title:      Dataset title, if present.
        status:     Upstream status string, if present.
        updated_at: Upstream modification time (``updated_at`` or
                    ``release_date``), if present and parseable.
        raw:        The item exactly as received.
    """

    dataset_id: str
    title: str | None
    status: str | None
    updated_at: datetime | None
    raw: dict


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def parse_catalog_items(payload: Any) -> list[CatalogItem]:
    """Extract catalog items from a listing payload.

    Items sharing a ``dataset_id`` collapse to the last one seen so a single
    upsert batch never touches the same row twice.

    Raises:
        MalformedPayloadError: If ``items`` is missing or not a list, or an
            item has no usable natural key.
    """
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Catalog payload is not a JSON object")
    items = payload.get("items")
    if not isinstance(items, list):
        raise MalformedPayloadError("Catalog payload missing 'items' array")

    by_key: dict[str, CatalogItem] = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise MalformedPayloadError(f"Catalog item {index} is not an object")
        dataset_id = item.get("dataset_id") or item.get("accession")
        if not isinstance(dataset_id, str) or not dataset_id:
            raise MalformedPayloadError(f"Catalog item {index} missing dataset_id")
        by_key[dataset_id] = CatalogItem(
            dataset_id=dataset_id,
            title=_optional_str(item.get("title")),
            status=_optional_str(item.get("status")),
            updated_at=_parse_timestamp(item.get("updated_at") or item.get("release_date")),
            raw=item,
        )
    return list(by_key.values())


class CatalogRepo(DurableTarget):
    """Upsert target keyed by ``dataset_id``."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        table: str = "osdr_items",
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
                    dataset_id TEXT UNIQUE NOT NULL,
                    title TEXT,
                    status TEXT,
                    updated_at TIMESTAMPTZ,
                    inserted_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    raw JSONB NOT NULL
                )
                """
            )
        logger.info("Table %s ready", self.table)

    def validate(self, entry: CacheEntry) -> None:
        parse_catalog_items(entry.payload)

    async def write(self, entry: CacheEntry) -> int:
        items = parse_catalog_items(entry.payload)
        if not items:
            logger.info("%s: catalog listing is empty, nothing to upsert", entry.source)
            return 0

        async with self._pool.acquire(timeout=self._acquire_timeout) as conn:
            async with conn.transaction():
                await conn.executemany(
                    f"""
                    INSERT INTO {self.table} (dataset_id, title, status, updated_at, raw)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (dataset_id)
                    DO UPDATE SET
                        title = EXCLUDED.title,
                        status = EXCLUDED.status,
                        updated_at = EXCLUDED.updated_at,
                        raw = EXCLUDED.raw,
                        inserted_at = now()
                    """,
                    [
                        (i.dataset_id, i.title, i.status, i.updated_at, i.raw)
                        for i in items
                    ],
                )
        logger.info("%s: upserted %d catalog items", entry.source, len(items))
        return len(items)

    async def latest(self, source: str) -> CacheEntry | None:
        async with self._pool.acquire(timeout=self._acquire_timeout) as conn:
            rows = await conn.fetch(
                f"""
                SELECT raw, inserted_at
                FROM {self.table}
                ORDER BY inserted_at DESC, id DESC
                LIMIT $1
                """,
                LATEST_LIMIT,
            )
        if not rows:
            return None
        return CacheEntry(
            source=source,
            payload={"items": [r["raw"] for r in rows]},
            fetched_at=rows[0]["inserted_at"],
        )
