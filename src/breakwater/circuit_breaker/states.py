"""Closed, open and half-open behaviour.

A breaker always holds exactly one state object and replaces it wholesale on
every transition. State objects decide whether a call may run and how an
outcome changes the counters; the breaker owns the lock, the snapshot and
persistence. Every ``report_*`` method runs with the breaker lock held and
only for the currently active state object.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from breakwater.circuit_breaker.state import CircuitState

if TYPE_CHECKING:
    from breakwater.circuit_breaker.breaker import CircuitBreaker

T = TypeVar("T")


class _TrialGate:
    """Counting gate admitting at most ``limit`` in-flight half-open trials."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def try_acquire(self) -> bool:
        with self._lock:
            if self._in_flight >= self._limit:
                return False
            self._in_flight += 1
            return True

    def release(self) -> None:
        with self._lock:
            if self._in_flight > 0:
                self._in_flight -= 1


class CircuitStateBehavior(ABC):
    """Per-state decision logic for call attempts and reported outcomes."""

    name: ClassVar[CircuitState]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"

    @abstractmethod
    def call(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run, reject, or transition and delegate a synchronous call."""

    @abstractmethod
    async def call_async(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run, reject, or transition and delegate an asynchronous call."""

    @abstractmethod
    def report_success(self, breaker: CircuitBreaker) -> None:
        """Apply a successful outcome."""

    @abstractmethod
    def report_failure(self, breaker: CircuitBreaker) -> None:
        """Apply a counted failure."""

    def _run(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., T],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> T:
        config = breaker.config
        start = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except config.excluded_exceptions:
            raise
        except config.expected_exceptions as exc:
            breaker._emit_call_failed(exc, max(time.monotonic() - start, 0.0))
            breaker._report_failure(self)
            raise
        breaker._report_success(self)
        breaker._emit_call_succeeded(max(time.monotonic() - start, 0.0))
        return result

    async def _run_async(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., Awaitable[T]],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> T:
        config = breaker.config
        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except config.excluded_exceptions:
            raise
        except config.expected_exceptions as exc:
            breaker._emit_call_failed(exc, max(time.monotonic() - start, 0.0))
            breaker._report_failure(self)
            raise
        breaker._report_success(self)
        breaker._emit_call_succeeded(max(time.monotonic() - start, 0.0))
        return result


class ClosedState(CircuitStateBehavior):
    """Normal operation: calls pass through and failures are counted."""

    name = CircuitState.CLOSED

    def call(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        return self._run(breaker, func, args, kwargs)

    async def call_async(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        return await self._run_async(breaker, func, args, kwargs)

    def report_success(self, breaker: CircuitBreaker) -> None:
        breaker._update(failure_count=0)

    def report_failure(self, breaker: CircuitBreaker) -> None:
        failures = breaker.failure_count + 1
        if failures >= breaker.config.failure_threshold:
            breaker._transition(
                CircuitState.OPEN,
                failure_count=failures,
                success_count=0,
                last_failure_time=breaker.clock.time(),
            )
            return
        breaker._update(failure_count=failures)


class OpenState(CircuitStateBehavior):
    """Tripped: fail fast until ``timeout`` seconds have passed.

    Counters are read-only here, so ``report_*`` are no-ops.
    """

    name = CircuitState.OPEN

    def call(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        return breaker._leave_open(self).call(breaker, func, *args, **kwargs)

    async def call_async(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        target = breaker._leave_open(self)
        return await target.call_async(breaker, func, *args, **kwargs)

    def report_success(self, breaker: CircuitBreaker) -> None:
        return

    def report_failure(self, breaker: CircuitBreaker) -> None:
        return

    @staticmethod
    def retry_after(breaker: CircuitBreaker) -> float:
        """Return seconds left before a trial is allowed; ``0`` when due.

        A missing failure timestamp counts as "long ago".
        """
        last_failure_time = breaker.last_failure_time
        if last_failure_time is None:
            return 0.0
        elapsed = breaker.clock.time() - last_failure_time
        return float(max(breaker.timeout - elapsed, 0))


class HalfOpenState(CircuitStateBehavior):
    """Trial mode: a bounded number of concurrent calls probe recovery."""

    name = CircuitState.HALF_OPEN

    def __init__(self, max_attempts: int) -> None:
        self._gate = _TrialGate(max_attempts)

    @property
    def in_flight(self) -> int:
        return self._gate.in_flight

    def _admit(self, breaker: CircuitBreaker) -> CircuitStateBehavior | None:
        """Take a trial slot, or return the state to delegate to instead.

        Raises:
            CircuitOpenError: If every trial slot is taken.
        """
        with breaker._lock:
            active = breaker._state
            if active is not self:
                return active
            if not self._gate.try_acquire():
                breaker._reject(retry_after=0.0)
            return None

    def call(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        delegate = self._admit(breaker)
        if delegate is not None:
            return delegate.call(breaker, func, *args, **kwargs)
        try:
            return self._run(breaker, func, args, kwargs)
        finally:
            self._gate.release()

    async def call_async(
        self,
        breaker: CircuitBreaker,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        delegate = self._admit(breaker)
        if delegate is not None:
            return await delegate.call_async(breaker, func, *args, **kwargs)
        try:
            return await self._run_async(breaker, func, args, kwargs)
        finally:
            self._gate.release()

    def report_success(self, breaker: CircuitBreaker) -> None:
        successes = breaker.success_count + 1
        if successes >= breaker.config.success_threshold:
            breaker._transition(CircuitState.CLOSED, failure_count=0, success_count=0)
            return
        breaker._update(success_count=successes)

    def report_failure(self, breaker: CircuitBreaker) -> None:
        breaker._transition(
            CircuitState.OPEN,
            success_count=0,
            last_failure_time=breaker.clock.time(),
        )


def build_state(
    state: CircuitState, *, half_open_max_attempts: int
) -> CircuitStateBehavior:
    """Return a fresh state object for ``state``."""
    if state is CircuitState.OPEN:
        return OpenState()
    if state is CircuitState.HALF_OPEN:
        return HalfOpenState(half_open_max_attempts)
    return ClosedState()
