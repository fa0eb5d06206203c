"""Observability hooks for circuit breakers."""

import threading
from dataclasses import dataclass, replace
from typing import Protocol

from breakwater.circuit_breaker.state import CircuitState
from breakwater.clock import Clock, SystemClock


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Each protected call produces exactly one of ``on_call_succeeded``,
    ``on_call_failed`` or ``on_call_rejected``. ``on_fallback_executed`` follows
    when ``call_with_fallback`` recovers from that outcome. Listener errors
    are logged by the breaker and never reach the caller.
    """

    def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""

    def on_fallback_executed(self, name: str, exc: Exception) -> None:
        """Handle a fallback replacing a failed or rejected call."""


@dataclass(frozen=True, slots=True)
class CircuitMetrics:
    """Cumulative call statistics for one breaker."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    fallback_calls: int = 0
    state_transitions: int = 0
    last_state_change_time: int | None = None
    last_success_time: int | None = None
    last_failure_time: int | None = None

    def _rate(self, count: int) -> float:
        if self.total_calls == 0:
            return 0.0
        return count / self.total_calls * 100

    @property
    def success_rate(self) -> float:
        return self._rate(self.successful_calls)

    @property
    def failure_rate(self) -> float:
        return self._rate(self.failed_calls)

    @property
    def rejection_rate(self) -> float:
        return self._rate(self.rejected_calls)

    def to_dict(self) -> dict[str, object]:
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "rejected_calls": self.rejected_calls,
            "fallback_calls": self.fallback_calls,
            "state_transitions": self.state_transitions,
            "success_rate": round(self.success_rate, 2),
            "failure_rate": round(self.failure_rate, 2),
            "rejection_rate": round(self.rejection_rate, 2),
            "last_state_change_time": self.last_state_change_time,
            "last_success_time": self.last_success_time,
            "last_failure_time": self.last_failure_time,
        }


class InMemoryMetricsCollector:
    """``BreakerListener`` that aggregates events into ``CircuitMetrics``.

    One collector is meant to observe one breaker; share it across breakers
    only if aggregated totals are what you want.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = SystemClock() if clock is None else clock
        self._metrics = CircuitMetrics()
        self._lock = threading.Lock()

    @property
    def metrics(self) -> CircuitMetrics:
        return self._metrics

    def reset(self) -> None:
        with self._lock:
            self._metrics = CircuitMetrics()

    def _record(self, *counters: str, **timestamps: int) -> None:
        with self._lock:
            current = self._metrics
            changes: dict[str, object] = {
                counter: getattr(current, counter) + 1 for counter in counters
            }
            changes.update(timestamps)
            self._metrics = replace(current, **changes)  # type: ignore[arg-type]

    def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        self._record("state_transitions", last_state_change_time=self._clock.time())

    def on_call_rejected(self, name: str) -> None:
        self._record("total_calls", "rejected_calls")

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        self._record(
            "total_calls", "successful_calls", last_success_time=self._clock.time()
        )

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        self._record(
            "total_calls", "failed_calls", last_failure_time=self._clock.time()
        )

    def on_fallback_executed(self, name: str, exc: Exception) -> None:
        self._record("fallback_calls")
