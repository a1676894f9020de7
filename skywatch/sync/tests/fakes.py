"""In-memory stand-ins for Redis, the lock table and durable targets."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from skywatch.storage.base import DurableTarget
from skywatch.sync.base import CacheEntry, FetchOperation, SourceDescriptor
from skywatch.sync.locks import LockCoordinator


class LockTable:
    """Lock ownership shared by several ``FakeLockCoordinator``s, like one database."""

    def __init__(self) -> None:
        self.owners: dict[int, object] = {}
        self.acquired = 0


class FakeLockCoordinator(LockCoordinator):
    def __init__(self, table: LockTable | None = None) -> None:
        self.table = table or LockTable()
        self.fail_acquire = False
        self.fail_release = False
        self.released: list[int] = []
        self.denied = 0

    async def try_acquire(self, lock_id: int) -> bool:
        if self.fail_acquire:
            raise ConnectionError("lock store unreachable")
        if lock_id in self.table.owners:
            self.denied += 1
            return False
        self.table.owners[lock_id] = self
        self.table.acquired += 1
        return True

    async def release(self, lock_id: int) -> bool:
        if self.table.owners.get(lock_id) is not self:
            return False
        del self.table.owners[lock_id]
        self.released.append(lock_id)
        if self.fail_release:
            raise ConnectionError("lock store unreachable")
        return True

    def holds(self, lock_id: int) -> bool:
        return self.table.owners.get(lock_id) is self


class FakeCache:
    """The subset of ``redis.asyncio.Redis`` the store uses."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_get = False
        self.fail_set = False

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise ConnectionError("redis down")
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        if self.fail_set:
            raise ConnectionError("redis down")
        self.data[key] = value
        self.ttls[key] = ex
        return True


class FakeTarget(DurableTarget):
    """Append-only list standing in for a PostgreSQL table."""

    def __init__(self, table: str = "fake_log") -> None:
        self.table = table
        self.entries: list[CacheEntry] = []
        self.fail_writes = False
        self.fail_reads = False
        self.latest_calls = 0

    async def init_tables(self) -> None:
        return None

    async def write(self, entry: CacheEntry) -> int:
        if self.fail_writes:
            raise ConnectionError("database down")
        self.entries.append(entry)
        return 1

    async def latest(self, source: str) -> CacheEntry | None:
        self.latest_calls += 1
        if self.fail_reads:
            raise ConnectionError("database down")
        for entry in reversed(self.entries):
            if entry.source == source:
                return entry
        return None


class ScriptedFetch:
    """Fetch operation that raises or returns from a script, then repeats ``default``."""

    def __init__(self, *steps: Any, default: Any = None) -> None:
        self.steps = list(steps)
        self.default = default if default is not None else {"ok": True}
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        step = self.steps.pop(0) if self.steps else self.default
        if isinstance(step, BaseException):
            raise step
        return step


def make_descriptor(
    name: str = "alpha",
    lock_id: int = 1,
    interval: float = 120,
    fetch: FetchOperation | None = None,
    target: DurableTarget | None = None,
    cache_key: str | None = None,
    cache_ttl: int = 60,
) -> SourceDescriptor:
    return SourceDescriptor(
        name=name,
        lock_id=lock_id,
        interval=interval,
        fetch=fetch or ScriptedFetch(),
        cache_key=cache_key or f"test:{name}",
        cache_ttl=cache_ttl,
        target=target or FakeTarget(),
    )


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class BoundedPool:
    """asyncpg-style pool with ``max_size`` connections.

    ``acquire(timeout=...)`` works both awaited and as an async context
    manager and raises ``asyncio.TimeoutError`` when no connection frees up.
    Connections answer every ``fetchval`` with True.
    """

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self.in_use = 0
        self._free = asyncio.Semaphore(max_size)

    def acquire(self, timeout: float | None = None) -> _PoolAcquire:
        return _PoolAcquire(self, timeout)

    async def release(self, conn: MagicMock) -> None:
        self.in_use -= 1
        self._free.release()

    async def _checkout(self, timeout: float | None) -> MagicMock:
        await asyncio.wait_for(self._free.acquire(), timeout)
        self.in_use += 1
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=True)
        return conn


class _PoolAcquire:
    def __init__(self, pool: BoundedPool, timeout: float | None) -> None:
        self._pool = pool
        self._timeout = timeout
        self._conn: MagicMock | None = None

    def __await__(self):
        return self._pool._checkout(self._timeout).__await__()

    async def __aenter__(self) -> MagicMock:
        self._conn = await self._pool._checkout(self._timeout)
        return self._conn

    async def __aexit__(self, *exc_info: object) -> None:
        await self._pool.release(self._conn)
