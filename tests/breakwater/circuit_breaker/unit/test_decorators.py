from collections.abc import Mapping

import pytest

from breakwater.circuit_breaker import StorageError, StorageWriteError
from breakwater.circuit_breaker.storage import (
    InMemoryStorageAdapter,
    LoggingStorageDecorator,
    MetricsStorageDecorator,
    RetryStorageDecorator,
    decorate,
)
from breakwater.retry import RetryBackoffPolicy
from tests.breakwater.support.fakes import BrokenAdapter, FakeLogger

_FAST = RetryBackoffPolicy(attempts=3, min_seconds=0.01, max_seconds=0.02)


class _Collector:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, bool, dict[str, object]]] = []

    def record_operation(
        self,
        operation: str,
        adapter: str,
        duration_ms: float,
        success: bool,
        tags: Mapping[str, object],
    ) -> None:
        assert duration_ms >= 0
        self.records.append((operation, adapter, success, dict(tags)))


def test_logging_decorator_logs_successes_at_debug(fake_logger: FakeLogger) -> None:
    adapter = LoggingStorageDecorator(InMemoryStorageAdapter(), fake_logger)

    adapter.write("cb_a", b"abc", ttl=30)
    assert adapter.read("cb_a") == b"abc"
    assert adapter.exists("cb_missing") is False

    assert adapter.name == "logging(memory)"
    assert fake_logger.levels_for("storage.write.succeeded") == ["debug"]
    write_fields = fake_logger.fields_for("storage.write.succeeded")[0]
    assert write_fields["key"] == "cb_a"
    assert write_fields["value_length"] == 3
    assert write_fields["ttl"] == 30
    assert "duration_ms" in write_fields
    assert fake_logger.fields_for("storage.read.succeeded")[0]["found"] is True
    assert fake_logger.fields_for("storage.exists.succeeded")[0]["exists"] is False


def test_logging_decorator_logs_and_reraises_failures(
    fake_logger: FakeLogger,
) -> None:
    adapter = LoggingStorageDecorator(
        BrokenAdapter("redis"), fake_logger, error_level="warning"
    )

    with pytest.raises(StorageError, match="redis delete failed"):
        adapter.delete("cb_a")

    assert fake_logger.levels_for("storage.delete.failed") == ["warning"]
    assert fake_logger.fields_for("storage.delete.failed")[0]["adapter"] == "redis"


def test_metrics_decorator_records_each_operation() -> None:
    collector = _Collector()
    adapter = MetricsStorageDecorator(InMemoryStorageAdapter(), collector)

    adapter.write("cb_a", b"abcd")
    adapter.read("cb_a")
    adapter.delete("cb_a")
    adapter.clear()

    assert adapter.name == "metrics(memory)"
    assert collector.records == [
        ("write", "memory", True, {"value_size": 4, "has_ttl": False}),
        ("read", "memory", True, {}),
        ("delete", "memory", True, {}),
        ("clear", "memory", True, {}),
    ]


def test_metrics_decorator_records_failures() -> None:
    collector = _Collector()
    adapter = MetricsStorageDecorator(BrokenAdapter("redis"), collector)

    with pytest.raises(StorageError):
        adapter.exists("cb_a")

    assert collector.records == [("exists", "redis", False, {})]


def test_retry_decorator_retries_storage_errors(fake_logger: FakeLogger) -> None:
    sleeps: list[float] = []
    inner = BrokenAdapter("redis", failures=2)
    adapter = RetryStorageDecorator(
        inner, policy=_FAST, sleep=sleeps.append, logger=fake_logger
    )

    adapter.write("cb_a", b"x")

    assert inner.calls == ["write", "write", "write"]
    assert len(sleeps) == 2
    assert adapter.read("cb_a") == b"x"
    scheduled = fake_logger.fields_for("storage.retry.scheduled")
    assert [fields["attempt"] for fields in scheduled] == [1, 2]


def test_retry_decorator_gives_up_after_policy_attempts() -> None:
    inner = BrokenAdapter("redis", error=StorageWriteError)
    adapter = RetryStorageDecorator(inner, policy=_FAST, sleep=lambda _: None)

    with pytest.raises(StorageWriteError):
        adapter.write("cb_a", b"x")

    assert inner.calls == ["write", "write", "write"]


def test_retry_decorator_does_not_retry_other_errors() -> None:
    inner = BrokenAdapter("redis", error=TypeError)
    adapter = RetryStorageDecorator(inner, policy=_FAST, sleep=lambda _: None)

    with pytest.raises(TypeError):
        adapter.read("cb_a")

    assert inner.calls == ["read"]


def test_decorate_stacks_logging_outside_metrics_outside_retry(
    fake_logger: FakeLogger,
) -> None:
    base = InMemoryStorageAdapter()

    adapter = decorate(base, logger=fake_logger, metrics=_Collector(), retry=_FAST)

    assert adapter.name == "logging(metrics(retry(memory)))"
    assert adapter.root is base
    assert decorate(base) is base
