"""Durable persistence targets.

A target is where a source's entries end up in PostgreSQL.  Two shapes
exist:

    FetchLogRepo — append-only log, one row per successful fetch
    CatalogRepo  — upsert by natural key (one row per dataset)
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from skywatch.sync.base import CacheEntry

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


def check_identifier(name: str) -> str:
    """Return ``name`` if it is safe to interpolate as a table name.

    Raises:
        ValueError: For anything but a lowercase SQL identifier.
    """
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


class DurableTarget(ABC):
    """Where the Cache-Aside Store writes and reads the source of truth."""

    #: Table backing this target.
    table: str

    @abstractmethod
    async def init_tables(self) -> None:
        """Create the backing table(s) if they do not exist."""

    def validate(self, entry: CacheEntry) -> None:
        """Check that ``write`` would accept ``entry``'s payload.

        Called before the entry is cached so a payload the target rejects
        never reaches Redis.  The default accepts everything.

        Raises:
            MalformedPayloadError: If the payload lacks a required field.
        """

    @abstractmethod
    async def write(self, entry: CacheEntry) -> int:
        """Persist one entry.

        Returns:
            Number of rows inserted or updated.

        Raises:
            MalformedPayloadError: If the payload lacks a required field.
            Exception: Any database error; callers treat it as a failed write.
        """

    @abstractmethod
    async def latest(self, source: str) -> CacheEntry | None:
        """Return the most recent entry for ``source``, or None."""
