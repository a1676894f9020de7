"""Per-source sync task.

One ``SyncTask`` runs per configured source for the lifetime of the process.
Each cycle walks the same states:

    IDLE → ACQUIRING_LOCK ─┬─ LOCK_DENIED ───────────────────────────────┐
                           └─ LOCK_GRANTED → FETCHING ─┬─ FETCH_FAILED ─┐ │
                                                       └─ FETCH_OK      │ │
                                                           → PERSISTING │ │
                                       RELEASING_LOCK ←─────────────────┘ │
                                             → SLEEPING ←─────────────────┘
                                             → IDLE

A cycle that took the lock always releases it, and nothing that goes wrong
inside a cycle ends the task: every error is logged with the source name and
cycle number and the task goes back to sleep.  Only cancellation or the
shutdown event stops the loop.

Skipped intervals (lock held elsewhere, failures) are dropped, not caught up.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from skywatch.errors import MalformedPayloadError
from skywatch.sync.base import (
    CacheEntry,
    FetchResult,
    LockHandle,
    SourceDescriptor,
    utc_now,
)
from skywatch.sync.locks import LockCoordinator
from skywatch.sync.retry import DEFAULT_RETRY_POLICY, RetryPolicy, SleepFn, fetch_with_retry
from skywatch.sync.store import CacheAsideStore

logger = logging.getLogger("skywatch.sync.task")


class SyncState(str, Enum):
    IDLE = "idle"
    ACQUIRING_LOCK = "acquiring_lock"
    LOCK_DENIED = "lock_denied"
    LOCK_GRANTED = "lock_granted"
    FETCHING = "fetching"
    FETCH_FAILED = "fetch_failed"
    FETCH_OK = "fetch_ok"
    PERSISTING = "persisting"
    RELEASING_LOCK = "releasing_lock"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class CycleOutcome(str, Enum):
    SUCCESS = "success"
    LOCK_DENIED = "lock_denied"
    LOCK_ERROR = "lock_error"
    FETCH_FAILED = "fetch_failed"
    PERSIST_FAILED = "persist_failed"
    STOPPED = "stopped"


@dataclass
class CycleResult:
    """What happened in one cycle.

    Attributes:
        source:          Source name.
        cycle:           1-based cycle number within this task.
        outcome:         How the cycle ended.
        error:           Error message for failed outcomes.
        records_written: Rows written to the durable target.
        started_at:      UTC start of the cycle.
        finished_at:     UTC end of the cycle (before sleeping).
    """

    source: str
    cycle: int
    outcome: CycleOutcome = CycleOutcome.SUCCESS
    error: str | None = None
    records_written: int = 0
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == CycleOutcome.SUCCESS


class SyncTask:
    """Fetch-and-store loop for a single source.

    Args:
        source:       The source to poll.
        locks:        Distributed lock coordinator shared by all tasks.
        store:        Cache-aside store shared by all tasks.
        stop_event:   Shutdown signal, usually owned by the scheduler.
        retry_policy: Backoff for the fetch step.
        retry_sleep:  Coroutine function used between fetch attempts.
    """

    def __init__(
        self,
        source: SourceDescriptor,
        locks: LockCoordinator,
        store: CacheAsideStore,
        stop_event: asyncio.Event | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        retry_sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.source = source
        self._locks = locks
        self._store = store
        self._stop = stop_event or asyncio.Event()
        self._retry_policy = retry_policy
        self._retry_sleep = retry_sleep
        self._cycle_lock = asyncio.Lock()
        self._cycles = 0
        self.state = SyncState.IDLE
        self.last_result: CycleResult | None = None

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def cycles(self) -> int:
        return self._cycles

    def _enter(self, state: SyncState) -> None:
        logger.debug("[%s] %s → %s", self.name, self.state.value, state.value)
        self.state = state

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run cycles until the stop event is set or the task is cancelled."""
        logger.info(
            "%s sync task started (interval=%ss, lock_id=%d)",
            self.name,
            self.source.interval,
            self.source.lock_id,
        )
        try:
            while not self._stop.is_set():
                try:
                    await self.run_cycle()
                except Exception:
                    logger.exception("[%s] unexpected error escaped a sync cycle", self.name)
                if await self._sleep_interval():
                    break
                self._enter(SyncState.IDLE)
        finally:
            self._enter(SyncState.STOPPED)
            logger.info("%s sync task stopped after %d cycles", self.name, self._cycles)

    async def _sleep_interval(self) -> bool:
        """Wait one interval. Returns True if shutdown was requested."""
        self._enter(SyncState.SLEEPING)
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.source.interval)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """Run one acquire/fetch/persist/release cycle.

        Cycles of the same task never overlap: a forced cycle waits for a
        timer cycle in progress and vice versa.

        Returns:
            The cycle's result; failures are reported here, never raised.
        """
        async with self._cycle_lock:
            self._cycles += 1
            result = CycleResult(source=self.name, cycle=self._cycles)
            try:
                await self._cycle(result)
            finally:
                result.finished_at = utc_now()
                self.last_result = result
            return result

    async def _cycle(self, result: CycleResult) -> None:
        if self._stop.is_set():
            result.outcome = CycleOutcome.STOPPED
            return

        self._enter(SyncState.ACQUIRING_LOCK)
        handle = LockHandle(lock_id=self.source.lock_id)
        try:
            handle.held = await self._locks.try_acquire(handle.lock_id)
        except Exception as exc:
            logger.error(
                "[%s] cycle %d: lock %d check failed: %s",
                self.name, result.cycle, handle.lock_id, exc,
            )
            result.outcome = CycleOutcome.LOCK_ERROR
            result.error = str(exc)
            return

        if not handle.held:
            self._enter(SyncState.LOCK_DENIED)
            logger.debug(
                "[%s] cycle %d: lock %d held by another worker, skipping",
                self.name, result.cycle, handle.lock_id,
            )
            result.outcome = CycleOutcome.LOCK_DENIED
            return

        self._enter(SyncState.LOCK_GRANTED)
        logger.info("[%s] cycle %d: acquired lock %d", self.name, result.cycle, handle.lock_id)
        try:
            if self._stop.is_set():
                result.outcome = CycleOutcome.STOPPED
                return
            fetched = await self._fetch(result)
            if fetched is not None:
                await self._persist(fetched, result)
        finally:
            await self._release(handle, result)

    async def _fetch(self, result: CycleResult) -> FetchResult | None:
        self._enter(SyncState.FETCHING)
        try:
            payload = await fetch_with_retry(
                self.source.fetch,
                self._retry_policy,
                label=self.name,
                sleep=self._retry_sleep,
            )
        except MalformedPayloadError as exc:
            self._enter(SyncState.FETCH_FAILED)
            logger.error("[%s] cycle %d: malformed payload: %s", self.name, result.cycle, exc)
            result.outcome = CycleOutcome.PERSIST_FAILED
            result.error = str(exc)
            return None
        except Exception as exc:
            self._enter(SyncState.FETCH_FAILED)
            logger.error(
                "[%s] cycle %d: fetch failed after retries: %s", self.name, result.cycle, exc
            )
            result.outcome = CycleOutcome.FETCH_FAILED
            result.error = str(exc)
            return None

        self._enter(SyncState.FETCH_OK)
        return FetchResult(payload=payload)

    async def _persist(self, fetched: FetchResult, result: CycleResult) -> None:
        self._enter(SyncState.PERSISTING)
        entry = CacheEntry.from_fetch(self.name, fetched)
        try:
            result.records_written = await self._store.set(
                self.source.cache_key,
                entry,
                ttl=self.source.cache_ttl,
                target=self.source.target,
            )
        except Exception as exc:
            logger.error("[%s] cycle %d: persist failed: %s", self.name, result.cycle, exc)
            result.outcome = CycleOutcome.PERSIST_FAILED
            result.error = str(exc)
            return

        result.outcome = CycleOutcome.SUCCESS
        logger.info(
            "[%s] cycle %d: sync completed (%d records)",
            self.name, result.cycle, result.records_written,
        )

    async def _release(self, handle: LockHandle, result: CycleResult) -> None:
        self._enter(SyncState.RELEASING_LOCK)
        try:
            await self._locks.release(handle.lock_id)
        except Exception as exc:
            logger.error(
                "[%s] cycle %d: failed to release lock %d: %s",
                self.name, result.cycle, handle.lock_id, exc,
            )
        finally:
            handle.held = False
