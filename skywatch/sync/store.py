"""Cache-aside store: Redis in front of the durable targets.

Reads try Redis first and fall back to PostgreSQL on a miss, a Redis error,
or an entry that no longer decodes.  Writes go to Redis (best effort) and
then to PostgreSQL (mandatory).  PostgreSQL is the source of truth; Redis
only ever saves a round trip.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from skywatch.errors import MalformedPayloadError, PersistenceError
from skywatch.storage.base import DurableTarget
from skywatch.sync.base import CacheEntry

logger = logging.getLogger("skywatch.sync.store")


class CacheAsideStore:
    """Pair a shared Redis client with per-source durable targets.

    Usage::

        store = CacheAsideStore(redis_client)
        await store.set("iss:last", entry, ttl=60, target=iss_log)
        latest = await store.get("iss:last", target=iss_log, source="iss")
    """

    def __init__(self, cache: redis.Redis) -> None:
        self._cache = cache

    async def get(
        self, key: str, target: DurableTarget, source: str
    ) -> CacheEntry | None:
        """Return the latest entry for ``source``.

        Args:
            key:    Redis key for the source.
            target: Durable target to fall back to.
            source: Source name used for the durable lookup.

        Returns:
            The cached entry on a hit, otherwise the durable target's latest
            entry, or None if neither has one.

        Raises:
            Exception: Whatever the durable target raises.
        """
        try:
            raw = await self._cache.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s. Falling back to database.", key, exc)
        else:
            if raw is not None:
                try:
                    entry = CacheEntry.from_json(raw)
                except ValueError as exc:
                    logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
                else:
                    logger.debug("Cache hit: %s", key)
                    return entry
            else:
                logger.debug("Cache miss: %s", key)

        return await target.latest(source)

    async def set(
        self, key: str, entry: CacheEntry, ttl: int, target: DurableTarget
    ) -> int:
        """Write ``entry`` to Redis with ``ttl`` and then to ``target``.

        The target validates the payload first, so a rejected payload is
        never cached.

        Returns:
            Rows written to the durable target.

        Raises:
            MalformedPayloadError: The target rejected the payload shape.
            PersistenceError:      The durable write failed.
        """
        target.validate(entry)

        try:
            await self._cache.set(key, entry.to_json(), ex=ttl)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s. Continuing with database.", key, exc)
        else:
            logger.debug("Cached %s with TTL %ds", key, ttl)

        try:
            return await target.write(entry)
        except MalformedPayloadError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Failed to write {entry.source} to {target.table}: {exc}"
            ) from exc
