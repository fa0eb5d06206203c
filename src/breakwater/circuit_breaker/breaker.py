"""Core circuit breaker implementation."""

import functools
import inspect
import threading
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, ParamSpec, TypeVar

from breakwater.circuit_breaker.config import CircuitBreakerConfig
from breakwater.circuit_breaker.exceptions import CircuitOpenError
from breakwater.circuit_breaker.health import HealthReport, build_health_report
from breakwater.circuit_breaker.metrics import BreakerListener
from breakwater.circuit_breaker.state import CircuitSnapshot, CircuitState
from breakwater.circuit_breaker.states import (
    CircuitStateBehavior,
    OpenState,
    build_state,
)
from breakwater.circuit_breaker.storage import (
    CircuitStateRepository,
    InMemoryStorageAdapter,
)
from breakwater.clock import Clock, SystemClock
from breakwater.logging import AnyLogger, get_logger, log_exception, log_info

T = TypeVar("T")
P = ParamSpec("P")


class CircuitBreaker:
    """Stateful proxy around a dangerous operation.

    Each instance guards one service key. All reads and writes of the
    counters happen under a single re-entrant lock, and the snapshot is
    persisted through the repository after every change. The protected
    operation itself always runs outside the lock.
    """

    def __init__(
        self,
        service_key: str,
        *,
        config: CircuitBreakerConfig | None = None,
        repository: CircuitStateRepository | None = None,
        clock: Clock | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Build a circuit breaker and restore its persisted state.

        Args:
            service_key: Unique breaker name used for storage and metrics.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            repository: State repository. Defaults to in-memory storage.
            clock: Time source. Defaults to the system clock.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger for transitions and listener errors.
        """
        if not service_key:
            raise ValueError("service_key must not be empty")
        self._service_key = service_key
        self._config = CircuitBreakerConfig() if config is None else config
        self._clock = SystemClock() if clock is None else clock
        self._logger = get_logger(__name__) if logger is None else logger
        self._repository = (
            CircuitStateRepository(
                InMemoryStorageAdapter(clock=self._clock), logger=self._logger
            )
            if repository is None
            else repository
        )
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = threading.RLock()
        self._snapshot = self._repository.load(service_key)
        self._state = self._build_state(self._snapshot.state)

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(service_key={self._service_key!r}, "
            f"state={self.state.value!r})"
        )

    # -- accessors ---------------------------------------------------------

    @property
    def service_key(self) -> str:
        return self._service_key

    @property
    def name(self) -> str:
        return self._service_key

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def repository(self) -> CircuitStateRepository:
        return self._repository

    @property
    def snapshot(self) -> CircuitSnapshot:
        return self._snapshot

    @property
    def state(self) -> CircuitState:
        return self._snapshot.state

    @property
    def failure_count(self) -> int:
        return self._snapshot.failure_count

    @property
    def success_count(self) -> int:
        return self._snapshot.success_count

    @property
    def last_failure_time(self) -> int | None:
        return self._snapshot.last_failure_time

    @property
    def timeout(self) -> int:
        return self._config.timeout

    def health(self) -> HealthReport:
        """Return a health classification of the current snapshot."""
        return build_health_report(self._snapshot, self._config)

    # -- protected calls ---------------------------------------------------

    def call(
        self,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke a callable under circuit breaker protection.

        Args:
            func: Dangerous callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit rejects the call.
            StorageWriteError: When the updated state cannot be persisted.
            Exception: The original exception raised by ``func``.
        """
        return self._state.call(self, func, *args, **kwargs)

    async def call_async(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Await a coroutine function under circuit breaker protection.

        Same contract as ``call``. The breaker lock is never held across the
        ``await``.
        """
        return await self._state.call_async(self, func, *args, **kwargs)

    def call_with_fallback(
        self,
        func: Callable[P, T],
        fallback: Callable[[Exception], T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Like ``call`` but return ``fallback(exc)`` instead of raising.

        Any ``Exception`` from ``call`` triggers the fallback, including
        ``CircuitOpenError``. Errors raised by the fallback propagate.
        """
        try:
            return self.call(func, *args, **kwargs)
        except Exception as exc:
            self._emit_fallback_executed(exc)
            return fallback(exc)

    async def call_with_fallback_async(
        self,
        func: Callable[P, Awaitable[T]],
        fallback: Callable[[Exception], T | Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Async variant of ``call_with_fallback``.

        ``fallback`` may be a plain callable or a coroutine function.
        """
        try:
            return await self.call_async(func, *args, **kwargs)
        except Exception as exc:
            self._emit_fallback_executed(exc)
            result = fallback(exc)
            if inspect.isawaitable(result):
                return await result
            return result

    def protect(self, func: Callable[P, Any]) -> Callable[P, Any]:
        """Decorate ``func`` so every invocation goes through this breaker."""
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                return await self.call_async(func, *args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
            return self.call(func, *args, **kwargs)

        return wrapper

    # -- manual overrides --------------------------------------------------

    def force_open(self) -> None:
        """Open the circuit now and restart the recovery timeout."""
        with self._lock:
            self._transition(
                CircuitState.OPEN,
                success_count=0,
                last_failure_time=self._clock.time(),
            )

    def force_close(self) -> None:
        """Close the circuit and clear both counters."""
        with self._lock:
            self._transition(CircuitState.CLOSED, failure_count=0, success_count=0)

    # -- state machine internals, used by ``states`` -----------------------

    def _build_state(self, state: CircuitState) -> CircuitStateBehavior:
        return build_state(
            state, half_open_max_attempts=self._config.half_open_max_attempts
        )

    def _report_success(self, origin: CircuitStateBehavior) -> None:
        with self._lock:
            if self._state is origin:
                origin.report_success(self)

    def _report_failure(self, origin: CircuitStateBehavior) -> None:
        with self._lock:
            if self._state is origin:
                origin.report_failure(self)

    def _leave_open(self, origin: OpenState) -> CircuitStateBehavior:
        """Return the state a call arriving at ``origin`` should run in.

        Raises:
            CircuitOpenError: If the recovery timeout has not yet elapsed.
        """
        with self._lock:
            if self._state is not origin:
                return self._state
            retry_after = origin.retry_after(self)
            if retry_after > 0:
                self._reject(retry_after=retry_after)
            self._transition(CircuitState.HALF_OPEN, success_count=0)
            return self._state

    def _reject(self, *, retry_after: float) -> None:
        self._emit_call_rejected()
        raise CircuitOpenError(
            self._service_key,
            state=self.state,
            failure_count=self.failure_count,
            retry_after=retry_after,
        )

    def _update(self, **changes: Any) -> None:
        """Apply counter changes within the current state."""
        self._commit(self._snapshot.evolve(**changes))

    def _transition(self, new: CircuitState, **changes: Any) -> None:
        """Replace the active state object and persist the new snapshot."""
        old = self._snapshot.state
        self._state = self._build_state(new)
        self._commit(self._snapshot.evolve(state=new, **changes))
        if old is new:
            return
        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            service_key=self._service_key,
            old_state=old.value,
            new_state=new.value,
            failure_count=self.failure_count,
        )
        self._emit_state_change(old, new)

    def _commit(self, snapshot: CircuitSnapshot) -> None:
        if snapshot == self._snapshot:
            return
        self._snapshot = snapshot
        self._repository.save(snapshot)

    # -- listeners ---------------------------------------------------------

    def _notify(self, hook: str, *args: Any) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, hook)(self._service_key, *args)
            except Exception as exc:
                log_exception(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    service_key=self._service_key,
                    hook=hook,
                    listener=type(listener).__name__,
                    error=str(exc),
                )

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        self._notify("on_state_change", old, new)

    def _emit_call_rejected(self) -> None:
        self._notify("on_call_rejected")

    def _emit_call_succeeded(self, elapsed: float) -> None:
        self._notify("on_call_succeeded", elapsed)

    def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        self._notify("on_call_failed", exc, elapsed)

    def _emit_fallback_executed(self, exc: Exception) -> None:
        self._notify("on_fallback_executed", exc)
