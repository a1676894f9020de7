"""Non-blocking distributed locks keyed by integer id.

Every replica runs the same set of sync tasks; the lock for a source decides
which replica actually polls it in a given interval.  Locks are advisory:
they only constrain callers that go through ``try_acquire``/``release``.

Backends:
    PostgresAdvisoryLockCoordinator — ``pg_try_advisory_lock`` (default)
    RedisLockCoordinator            — ``SET NX PX`` + compare-and-delete
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod

import asyncpg
import redis.asyncio as redis
from redis.exceptions import RedisError

from skywatch.config import Settings
from skywatch.errors import ConfigValidationError, LockError

logger = logging.getLogger("skywatch.sync.locks")


class LockCoordinator(ABC):
    """Distributed mutual exclusion for sync cycles.

    ``try_acquire`` never waits for a holder to go away: a ``False`` return
    is the normal outcome when another replica is polling this interval.
    """

    @abstractmethod
    async def try_acquire(self, lock_id: int) -> bool:
        """Take ``lock_id`` if nobody holds it.

        Returns:
            True if this coordinator now holds the lock, False otherwise.
        """

    @abstractmethod
    async def release(self, lock_id: int) -> bool:
        """Give up ``lock_id``.

        Returns:
            True if the lock was held by this coordinator and is now free,
            False if it was not held (logged, otherwise a no-op).
        """

    async def close(self) -> None:
        """Release everything still held. Called at shutdown."""


# ---------------------------------------------------------------------------
# PostgreSQL advisory locks
# ---------------------------------------------------------------------------


class PostgresAdvisoryLockCoordinator(LockCoordinator):
    """Session-level advisory locks on a shared PostgreSQL database.

    An advisory lock belongs to the session that took it, so a pooled
    connection is checked out on a successful acquire and kept until the
    matching release, which unlocks on that same connection before handing
    it back to the pool.  asyncpg resets connections on release (including
    ``pg_advisory_unlock_all()``), so a connection returned after a failed
    unlock does not leak the lock.

    A lock id already held by this coordinator is reported as unavailable:
    Postgres would grant it again to the same session, which would let two
    tasks of one process into the same critical section.

    Every held lock pins one pool connection, so the pool must have room
    for one more connection than there are sources (see
    ``check_pool_capacity``).  Waiting for a connection is bounded by
    ``acquire_timeout``; running out raises ``LockError``.
    """

    def __init__(self, pool: asyncpg.Pool, acquire_timeout: float = 10.0) -> None:
        self._pool = pool
        self._acquire_timeout = acquire_timeout
        self._held: dict[int, asyncpg.Connection] = {}

    async def try_acquire(self, lock_id: int) -> bool:
        if lock_id in self._held:
            return False

        try:
            conn = await self._pool.acquire(timeout=self._acquire_timeout)
        except Exception as exc:
            raise LockError(f"Cannot acquire a connection for lock {lock_id}: {exc}") from exc
        try:
            acquired = await conn.fetchval("SELECT pg_try_advisory_lock($1)", lock_id)
        except asyncio.CancelledError:
            await self._pool.release(conn)
            raise
        except Exception as exc:
            await self._pool.release(conn)
            raise LockError(f"pg_try_advisory_lock({lock_id}) failed: {exc}") from exc

        if not acquired:
            await self._pool.release(conn)
            return False

        self._held[lock_id] = conn
        logger.debug("Acquired advisory lock %d", lock_id)
        return True

    async def release(self, lock_id: int) -> bool:
        conn = self._held.pop(lock_id, None)
        if conn is None:
            logger.warning("Release of advisory lock %d which is not held", lock_id)
            return False

        try:
            unlocked = await conn.fetchval("SELECT pg_advisory_unlock($1)", lock_id)
        finally:
            await self._pool.release(conn)

        if not unlocked:
            logger.warning("Postgres reported advisory lock %d as not held", lock_id)
        else:
            logger.debug("Released advisory lock %d", lock_id)
        return bool(unlocked)

    async def close(self) -> None:
        for lock_id in list(self._held):
            try:
                await self.release(lock_id)
            except Exception as exc:
                logger.warning("Failed to release advisory lock %d: %s", lock_id, exc)


# ---------------------------------------------------------------------------
# Redis locks
# ---------------------------------------------------------------------------

# Delete the key only if it still carries our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLockCoordinator(LockCoordinator):
    """Locks stored as Redis keys with an expiry.

    The expiry bounds how long a crashed replica can keep a source locked; it
    must be longer than the slowest fetch-and-store cycle.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = 300,
        key_prefix: str = "skywatch:lock:",
    ) -> None:
        self._client = client
        self._ttl_ms = int(ttl_seconds * 1000)
        self._prefix = key_prefix
        self._token = uuid.uuid4().hex
        self._held: set[int] = set()
        self._release_script = client.register_script(_RELEASE_SCRIPT)

    def _key(self, lock_id: int) -> str:
        return f"{self._prefix}{lock_id}"

    async def try_acquire(self, lock_id: int) -> bool:
        if lock_id in self._held:
            return False
        try:
            acquired = await self._client.set(
                self._key(lock_id), self._token, nx=True, px=self._ttl_ms
            )
        except RedisError as exc:
            raise LockError(f"SET NX for lock {lock_id} failed: {exc}") from exc
        if acquired:
            self._held.add(lock_id)
            return True
        return False

    async def release(self, lock_id: int) -> bool:
        if lock_id not in self._held:
            logger.warning("Release of redis lock %d which is not held", lock_id)
            return False
        self._held.discard(lock_id)
        deleted = await self._release_script(keys=[self._key(lock_id)], args=[self._token])
        if not deleted:
            logger.warning("Redis lock %d expired before release", lock_id)
        return bool(deleted)

    async def close(self) -> None:
        for lock_id in list(self._held):
            try:
                await self.release(lock_id)
            except Exception as exc:
                logger.warning("Failed to release redis lock %d: %s", lock_id, exc)


def check_pool_capacity(settings: Settings, source_count: int) -> None:
    """Reject a pool too small for advisory locks plus durable writes.

    With the postgres backend each source holding its lock pins a
    connection while its write needs another one.

    Raises:
        ConfigValidationError: If ``db_pool_max_size`` does not exceed
            ``source_count``.
    """
    if settings.lock_backend.lower() != "postgres":
        return
    if settings.db_pool_max_size <= source_count:
        raise ConfigValidationError(
            f"db_pool_max_size ({settings.db_pool_max_size}) must be greater than "
            f"the number of sources ({source_count}) with the postgres lock backend"
        )


def build_lock_coordinator(
    settings: Settings,
    pool: asyncpg.Pool,
    client: redis.Redis,
    source_count: int = 0,
) -> LockCoordinator:
    """Return the coordinator selected by ``settings.lock_backend``.

    Raises:
        ConfigValidationError: For an unknown backend, or a postgres pool
            that cannot serve ``source_count`` held locks and a write.
    """
    backend = settings.lock_backend.lower()
    if backend == "postgres":
        check_pool_capacity(settings, source_count)
        return PostgresAdvisoryLockCoordinator(pool, acquire_timeout=settings.db_acquire_timeout)
    if backend == "redis":
        return RedisLockCoordinator(client, ttl_seconds=settings.redis_lock_ttl_seconds)
    raise ConfigValidationError(
        f"Unknown lock_backend '{settings.lock_backend}'. Available: ['postgres', 'redis']"
    )
