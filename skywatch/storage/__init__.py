"""Durable persistence targets for Skywatch.

Available targets:
    iss_fetch_log — append-only log of ISS positions
    space_cache   — append-only log shared by the NASA/SpaceX feeds
    osdr_items    — OSDR dataset catalog, upserted by dataset_id
"""

from __future__ import annotations

import asyncpg

from skywatch.storage.base import DurableTarget
from skywatch.storage.catalog import CatalogRepo
from skywatch.storage.fetch_log import FetchLogRepo

__all__ = [
    "CatalogRepo",
    "DurableTarget",
    "FetchLogRepo",
    "build_targets",
]


def build_targets(pool: asyncpg.Pool, acquire_timeout: float = 10.0) -> dict[str, DurableTarget]:
    """Return target name → target instance, all sharing ``pool``."""
    return {
        "iss_fetch_log": FetchLogRepo(pool, table="iss_fetch_log", acquire_timeout=acquire_timeout),
        "space_cache": FetchLogRepo(pool, table="space_cache", acquire_timeout=acquire_timeout),
        "osdr_items": CatalogRepo(pool, table="osdr_items", acquire_timeout=acquire_timeout),
    }
