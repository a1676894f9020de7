"""Shared fixtures for sync tests."""

from __future__ import annotations

import pytest

from skywatch.sync.store import CacheAsideStore
from skywatch.sync.tests.fakes import (
    FakeCache,
    FakeLockCoordinator,
    FakeTarget,
    LockTable,
    SleepRecorder,
)


@pytest.fixture
def lock_table() -> LockTable:
    return LockTable()


@pytest.fixture
def locks(lock_table: LockTable) -> FakeLockCoordinator:
    return FakeLockCoordinator(lock_table)


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def target() -> FakeTarget:
    return FakeTarget()


@pytest.fixture
def store(cache: FakeCache) -> CacheAsideStore:
    return CacheAsideStore(cache)  # type: ignore[arg-type]


@pytest.fixture
def no_sleep() -> SleepRecorder:
    """Retry sleep that records delays without waiting."""
    return SleepRecorder()
