import pytest

from breakwater.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    StorageChainError,
    StorageError,
)
from breakwater.circuit_breaker.storage import (
    CircuitStateRepository,
    FallbackStorageAdapter,
    InMemoryStorageAdapter,
)
from tests.breakwater.support.fakes import BrokenAdapter, FakeLogger


def test_requires_at_least_one_adapter() -> None:
    with pytest.raises(ValueError):
        FallbackStorageAdapter([])


def test_name_lists_chain_members() -> None:
    chain = FallbackStorageAdapter([BrokenAdapter("redis"), InMemoryStorageAdapter()])

    assert chain.name == "fallback(redis,memory)"
    assert len(chain.adapters) == 2


def test_read_returns_first_successful_answer(fake_logger: FakeLogger) -> None:
    primary = BrokenAdapter("redis")
    secondary = InMemoryStorageAdapter()
    secondary.write("cb_a", b"from-memory")
    chain = FallbackStorageAdapter([primary, secondary], logger=fake_logger)

    assert chain.read("cb_a") == b"from-memory"
    assert fake_logger.fields_for("storage.fallback.adapter_failed") == [
        {
            "adapter": "redis",
            "operation": "read",
            "index": 0,
            "error": "redis read failed",
            "error_type": "StorageError",
        }
    ]


def test_read_miss_from_healthy_primary_is_final() -> None:
    primary = InMemoryStorageAdapter()
    secondary = InMemoryStorageAdapter()
    secondary.write("cb_a", b"stale")
    chain = FallbackStorageAdapter([primary, secondary])

    assert chain.read("cb_a") is None


def test_read_raises_chain_error_when_every_adapter_fails(
    fake_logger: FakeLogger,
) -> None:
    chain = FallbackStorageAdapter(
        [BrokenAdapter("redis"), BrokenAdapter("file")], logger=fake_logger
    )

    with pytest.raises(StorageChainError) as exc_info:
        chain.read("cb_a")

    error = exc_info.value
    assert isinstance(error, StorageError)
    assert error.operation == "read"
    assert [name for name, _ in error.failures] == ["redis", "file"]
    assert error.__cause__ is error.failures[-1][1]
    assert str(error).startswith("All storage adapters failed for read operation")


def test_write_reaches_every_healthy_adapter(fake_logger: FakeLogger) -> None:
    broken = BrokenAdapter("redis")
    first = InMemoryStorageAdapter()
    second = InMemoryStorageAdapter()
    chain = FallbackStorageAdapter([broken, first, second], logger=fake_logger)

    chain.write("cb_a", b"payload")

    assert first.read("cb_a") == b"payload"
    assert second.read("cb_a") == b"payload"
    assert broken.calls == ["write"]
    assert fake_logger.levels_for("storage.fallback.adapter_failed") == ["warning"]


def test_write_fails_only_when_all_adapters_fail() -> None:
    chain = FallbackStorageAdapter([BrokenAdapter("a"), BrokenAdapter("b")])

    with pytest.raises(StorageChainError) as exc_info:
        chain.write("cb_a", b"payload")

    assert exc_info.value.operation == "write"


def test_exists_is_true_if_any_adapter_has_the_key() -> None:
    holder = InMemoryStorageAdapter()
    holder.write("cb_a", b"x")
    chain = FallbackStorageAdapter(
        [BrokenAdapter("redis"), InMemoryStorageAdapter(), holder]
    )

    assert chain.exists("cb_a") is True
    assert chain.exists("cb_b") is False


def test_exists_never_raises() -> None:
    chain = FallbackStorageAdapter([BrokenAdapter("a"), BrokenAdapter("b")])

    assert chain.exists("cb_a") is False


def test_delete_and_clear_broadcast() -> None:
    first = InMemoryStorageAdapter()
    second = InMemoryStorageAdapter()
    for adapter in (first, second):
        adapter.write("cb_a", b"x")
        adapter.write("cb_b", b"y")
    chain = FallbackStorageAdapter([first, BrokenAdapter("redis"), second])

    chain.delete("cb_a")
    assert not first.exists("cb_a")
    assert not second.exists("cb_a")

    chain.clear()
    assert not first.exists("cb_b")
    assert not second.exists("cb_b")


def test_recovered_primary_serves_again() -> None:
    primary = BrokenAdapter("redis", failures=1)
    secondary = InMemoryStorageAdapter()
    chain = FallbackStorageAdapter([primary, secondary])

    chain.write("cb_a", b"v1")
    chain.write("cb_a", b"v2")

    assert chain.read("cb_a") == b"v2"
    assert primary.calls == ["write", "write", "read"]


def test_breaker_keeps_working_when_primary_storage_is_down() -> None:
    secondary = InMemoryStorageAdapter()
    chain = FallbackStorageAdapter(
        [BrokenAdapter("redis"), secondary], logger=FakeLogger()
    )
    repository = CircuitStateRepository(chain, logger=FakeLogger())
    breaker = CircuitBreaker(
        "search",
        config=CircuitBreakerConfig(failure_threshold=1),
        repository=repository,
    )

    def _slow_search() -> None:
        raise TimeoutError("slow")

    with pytest.raises(TimeoutError):
        breaker.call(_slow_search)

    assert breaker.state == CircuitState.OPEN
    assert repository.load("search").state == CircuitState.OPEN
