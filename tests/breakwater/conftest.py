from __future__ import annotations

import pytest

from breakwater.circuit_breaker.storage import (
    CircuitStateRepository,
    InMemoryStorageAdapter,
)
from breakwater.clock import FakeClock
from tests.breakwater.support.fakes import (
    FakeCache,
    FakeLogger,
    RecordingAdapter,
    RecordingListener,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a frozen clock starting at a fixed epoch second."""
    return FakeClock(1_700_000_000)


@pytest.fixture
def memory_adapter(clock: FakeClock) -> InMemoryStorageAdapter:
    return InMemoryStorageAdapter(clock=clock)


@pytest.fixture
def recording_adapter() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture
def repository(
    recording_adapter: RecordingAdapter, fake_logger: FakeLogger
) -> CircuitStateRepository:
    """Provide a repository whose writes can be inspected."""
    return CircuitStateRepository(recording_adapter, logger=fake_logger)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()
