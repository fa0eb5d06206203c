"""Persistent, thread-safe circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Every state change is persisted through a ``CircuitStateRepository`` so a
    tripped circuit survives restarts and can be shared between processes
    pointing at the same storage. Persistence is last-writer-wins.
  - ``HALF_OPEN`` is a real, persisted state. At most
    ``half_open_max_attempts`` trial calls run concurrently per breaker
    instance; extra callers are rejected with ``CircuitOpenError``.
  - Excluded exceptions propagate without counting as a success or a failure.
    A half-open trial that raises one frees its slot and leaves the counters
    untouched.
  - Operation errors are always re-raised unchanged. Storage write errors
    propagate; storage read errors on load fall back to a closed circuit.
"""

from breakwater.circuit_breaker.breaker import CircuitBreaker
from breakwater.circuit_breaker.config import CircuitBreakerConfig
from breakwater.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    InvalidConfigurationError,
    StorageChainError,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from breakwater.circuit_breaker.health import HealthReport, HealthStatus
from breakwater.circuit_breaker.metrics import (
    BreakerListener,
    CircuitMetrics,
    InMemoryMetricsCollector,
)
from breakwater.circuit_breaker.registry import BreakerRegistry
from breakwater.circuit_breaker.state import CircuitSnapshot, CircuitState
from breakwater.circuit_breaker.states import (
    CircuitStateBehavior,
    ClosedState,
    HalfOpenState,
    OpenState,
)
from breakwater.circuit_breaker.storage import (
    AbstractStorageAdapter,
    CircuitStateRepository,
    FallbackStorageAdapter,
    FileStorageAdapter,
    InMemoryStorageAdapter,
)

__all__ = [
    "AbstractStorageAdapter",
    "BreakerListener",
    "BreakerRegistry",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitMetrics",
    "CircuitOpenError",
    "CircuitSnapshot",
    "CircuitState",
    "CircuitStateBehavior",
    "CircuitStateRepository",
    "ClosedState",
    "FallbackStorageAdapter",
    "FileStorageAdapter",
    "HalfOpenState",
    "HealthReport",
    "HealthStatus",
    "InMemoryMetricsCollector",
    "InMemoryStorageAdapter",
    "InvalidConfigurationError",
    "OpenState",
    "StorageChainError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
]
