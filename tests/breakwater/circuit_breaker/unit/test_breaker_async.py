import asyncio

import pytest

from breakwater.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
)
from breakwater.clock import FakeClock
from tests.breakwater.support.fakes import RecordingListener

pytestmark = pytest.mark.asyncio


async def _ok() -> str:
    return "ok"


async def _fail(exc: Exception) -> None:
    raise exc


def _build(clock: FakeClock, **config: object) -> CircuitBreaker:
    return CircuitBreaker(
        "inventory",
        config=CircuitBreakerConfig.from_mapping(config),
        clock=clock,
    )


async def test_call_async_returns_result_and_stays_closed(clock) -> None:
    breaker = _build(clock)

    assert await breaker.call_async(_ok) == "ok"
    assert breaker.state == CircuitState.CLOSED


async def test_call_async_opens_after_threshold_and_rejects(clock) -> None:
    breaker = _build(clock, failure_threshold=2, timeout=10)

    for _ in range(2):
        with pytest.raises(ConnectionError):
            await breaker.call_async(_fail, ConnectionError("refused"))

    assert breaker.state == CircuitState.OPEN
    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.call_async(_ok)
    assert exc_info.value.retry_after == pytest.approx(10.0)


async def test_call_async_recovers_through_half_open(clock) -> None:
    breaker = _build(clock, failure_threshold=1, success_threshold=2, timeout=5)
    with pytest.raises(ConnectionError):
        await breaker.call_async(_fail, ConnectionError("refused"))

    clock.advance(5)
    await breaker.call_async(_ok)
    assert breaker.state == CircuitState.HALF_OPEN
    await breaker.call_async(_ok)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


async def test_half_open_trial_limit_applies_to_concurrent_tasks(clock) -> None:
    breaker = _build(
        clock,
        failure_threshold=1,
        success_threshold=1,
        timeout=1,
        half_open_max_attempts=2,
    )
    with pytest.raises(ConnectionError):
        await breaker.call_async(_fail, ConnectionError("refused"))
    clock.advance(1)
    release = asyncio.Event()
    entered = 0

    async def _slow() -> str:
        nonlocal entered
        entered += 1
        await release.wait()
        return "slow"

    first = asyncio.create_task(breaker.call_async(_slow))
    second = asyncio.create_task(breaker.call_async(_slow))
    while entered < 2:
        await asyncio.sleep(0)

    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.call_async(_ok)
    assert exc_info.value.state == CircuitState.HALF_OPEN

    release.set()
    results = await asyncio.gather(first, second)

    assert results == ["slow", "slow"]
    assert breaker.state == CircuitState.CLOSED


async def test_cancelled_trial_releases_its_slot(clock) -> None:
    breaker = _build(clock, failure_threshold=1, success_threshold=1, timeout=1)
    with pytest.raises(ConnectionError):
        await breaker.call_async(_fail, ConnectionError("refused"))
    clock.advance(1)
    started = asyncio.Event()

    async def _hang() -> None:
        started.set()
        await asyncio.Event().wait()

    task = asyncio.create_task(breaker.call_async(_hang))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert breaker.state == CircuitState.HALF_OPEN
    assert await breaker.call_async(_ok) == "ok"
    assert breaker.state == CircuitState.CLOSED


async def test_call_with_fallback_async_accepts_sync_and_async_fallbacks(
    clock,
) -> None:
    listener = RecordingListener()
    breaker = CircuitBreaker(
        "inventory",
        config=CircuitBreakerConfig(failure_threshold=1),
        clock=clock,
        listeners=[listener],
    )

    async def _async_fallback(exc: Exception) -> str:
        return f"async:{type(exc).__name__}"

    first = await breaker.call_with_fallback_async(
        _fail, lambda exc: f"sync:{exc}", ConnectionError("refused")
    )
    second = await breaker.call_with_fallback_async(_ok, _async_fallback)

    assert first == "sync:refused"
    assert second == "async:CircuitOpenError"
    assert listener.kinds().count("fallback") == 2


async def test_protect_wraps_coroutine_functions(clock) -> None:
    breaker = _build(clock, failure_threshold=1)

    @breaker.protect
    async def lookup(sku: str) -> str:
        if not sku:
            raise LookupError("empty sku")
        return sku.upper()

    assert await lookup("abc") == "ABC"
    with pytest.raises(LookupError):
        await lookup("")
    with pytest.raises(CircuitOpenError):
        await lookup("abc")
