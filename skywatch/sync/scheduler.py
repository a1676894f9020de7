"""Background sync scheduler.

Starts one ``SyncTask`` per configured source and otherwise stays out of the
way: tasks do not talk to each other and share only the connection pools
behind the lock coordinator and the cache-aside store.

Default sync intervals (see ``skywatch.config.Settings``):
    ISS:        every 2 minutes
    OSDR:       every 10 minutes
    APOD:       every 12 hours
    NEO:        every 2 hours
    DONKI:      every hour (FLR and CME)
    SpaceX:     every hour

Every replica of the service runs the same scheduler; the per-source lock
decides which replica polls a source in a given interval.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from skywatch.errors import ConfigValidationError, UnknownSourceError
from skywatch.sync.base import CacheEntry, SourceDescriptor
from skywatch.sync.locks import LockCoordinator
from skywatch.sync.retry import DEFAULT_RETRY_POLICY, RetryPolicy, SleepFn
from skywatch.sync.store import CacheAsideStore
from skywatch.sync.task import CycleResult, SyncTask

logger = logging.getLogger("skywatch.sync.scheduler")


def _check_unique(sources: list[SourceDescriptor]) -> None:
    errors: list[str] = []
    names: set[str] = set()
    locks: dict[int, str] = {}
    for s in sources:
        if s.name in names:
            errors.append(f"duplicate source name '{s.name}'")
        names.add(s.name)
        if s.lock_id in locks:
            errors.append(
                f"lock_id {s.lock_id} used by both '{locks[s.lock_id]}' and '{s.name}'"
            )
        locks.setdefault(s.lock_id, s.name)
    if errors:
        raise ConfigValidationError("; ".join(errors))


class SyncScheduler:
    """Supervise one sync task per source.

    Usage::

        scheduler = SyncScheduler(descriptors, locks=coordinator, store=store)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        sources: list[SourceDescriptor],
        locks: LockCoordinator,
        store: CacheAsideStore,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        retry_sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            sources:      Source descriptors; names and lock ids must be unique.
            locks:        Lock coordinator shared by all tasks.
            store:        Cache-aside store shared by all tasks.
            retry_policy: Fetch backoff passed to every task.
            retry_sleep:  Coroutine function used between fetch attempts.

        Raises:
            ConfigValidationError: On duplicate names or lock ids.
        """
        _check_unique(sources)
        self._locks = locks
        self._store = store
        self._stop = asyncio.Event()
        self._tasks: dict[str, SyncTask] = {
            s.name: SyncTask(
                s,
                locks,
                store,
                stop_event=self._stop,
                retry_policy=retry_policy,
                retry_sleep=retry_sleep,
            )
            for s in sources
        }
        self._running: dict[str, asyncio.Task] = {}

    @property
    def sources(self) -> list[SourceDescriptor]:
        return [t.source for t in self._tasks.values()]

    @property
    def running(self) -> int:
        """Number of task loops currently alive."""
        return sum(1 for t in self._running.values() if not t.done())

    def get_task(self, name: str) -> SyncTask:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownSourceError(name) from None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the task loop for every source that is not already running.

        Must be called from a running event loop.
        """
        self._stop.clear()
        started = 0
        for name, task in self._tasks.items():
            existing = self._running.get(name)
            if existing is not None and not existing.done():
                continue
            handle = asyncio.create_task(task.run(), name=f"sync:{name}")
            handle.add_done_callback(self._on_task_done)
            self._running[name] = handle
            started += 1
        logger.info("SyncScheduler: started %d of %d sync tasks", started, len(self._tasks))

    def _on_task_done(self, handle: asyncio.Task) -> None:
        if handle.cancelled():
            return
        exc = handle.exception()
        if exc is not None:
            logger.error("Sync task %s exited with an error: %s", handle.get_name(), exc)
        elif not self._stop.is_set():
            logger.warning("Sync task %s exited without a shutdown request", handle.get_name())

    async def stop(self, timeout: float = 10.0) -> None:
        """Signal shutdown and wait for every task loop to finish.

        Loops still busy after ``timeout`` seconds are cancelled; any lock
        they hold is released by their cycle's cleanup.
        """
        self._stop.set()
        pending = [t for t in self._running.values() if not t.done()]
        if pending:
            _, still_pending = await asyncio.wait(pending, timeout=timeout)
            for t in still_pending:
                logger.warning("Cancelling sync task %s after %.1fs", t.get_name(), timeout)
                t.cancel()
            if still_pending:
                await asyncio.gather(*still_pending, return_exceptions=True)
        self._running.clear()
        await self._locks.close()
        logger.info("SyncScheduler: all sync tasks stopped")

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    async def trigger(self, name: str) -> CycleResult:
        """Run one cycle for ``name`` now, outside its timer.

        The cycle takes the source lock like any other, so it is skipped
        (``LOCK_DENIED``) while another replica is polling the source.
        """
        task = self.get_task(name)
        logger.info("Manual sync requested for %s", name)
        return await task.run_cycle()

    async def latest(self, name: str) -> CacheEntry | None:
        """Return the latest entry for ``name`` via the cache-aside store."""
        source = self.get_task(name).source
        return await self._store.get(source.cache_key, source.target, source.name)

    async def latest_all(self) -> dict[str, CacheEntry | None]:
        """Return the latest entry for every source, keyed by name.

        A source whose read fails maps to None; the other sources are
        still returned.
        """
        names = list(self._tasks)
        results = await asyncio.gather(
            *(self.latest(n) for n in names), return_exceptions=True
        )
        out: dict[str, CacheEntry | None] = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning("Reading latest entry for %s failed: %s", name, result)
                out[name] = None
            elif isinstance(result, BaseException):
                raise result
            else:
                out[name] = result
        return out

    def status(self) -> list[dict[str, Any]]:
        """Per-source state and last cycle outcome."""
        out: list[dict[str, Any]] = []
        for name, task in self._tasks.items():
            last = task.last_result
            out.append(
                {
                    "source": name,
                    "lock_id": task.source.lock_id,
                    "interval": task.source.interval,
                    "state": task.state.value,
                    "cycles": task.cycles,
                    "last_outcome": last.outcome.value if last else None,
                    "last_error": last.error if last else None,
                    "last_finished_at": last.finished_at if last else None,
                }
            )
        return out
