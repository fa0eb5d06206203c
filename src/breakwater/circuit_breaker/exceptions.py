"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open or the half-open trial
    limit is exhausted (``CircuitOpenError``).
  - Invalid breaker configuration (``InvalidConfigurationError``).
  - Persistence problems (``StorageError`` and its subclasses).

Failures raised by the protected operation itself are never wrapped.
"""

from collections.abc import Sequence

from breakwater.circuit_breaker.state import CircuitState


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected without running the operation.

    Attributes:
        service_key: Key of the breaker rejecting the call.
        state: Breaker state at rejection time.
        failure_count: Failure count at rejection time.
        retry_after: Seconds until a half-open trial may be attempted.
    """

    def __init__(
        self,
        service_key: str,
        *,
        state: CircuitState = CircuitState.OPEN,
        failure_count: int = 0,
        retry_after: float = 0.0,
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            service_key: Breaker rejecting the call.
            state: State the breaker was in.
            failure_count: Consecutive failure count when rejecting.
            retry_after: Seconds until the next trial window opens.
        """
        self.service_key = service_key
        self.state = state
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(
            f"circuit_open: {service_key} state={state.value} "
            f"retry_after={retry_after:g}s"
        )


class InvalidConfigurationError(CircuitBreakerError, ValueError):
    """Raised when breaker configuration values are out of range."""


class StorageError(CircuitBreakerError):
    """Base exception for persistence failures."""


class StorageReadError(StorageError):
    """Raised when stored data cannot be read or decoded."""


class StorageWriteError(StorageError):
    """Raised when data cannot be encoded or written."""


class StorageChainError(StorageError):
    """Raised when every adapter in a fallback chain failed.

    The last underlying error is chained as ``__cause__``.

    Attributes:
        operation: Storage operation that failed.
        failures: ``(adapter_name, error)`` pairs in chain order.
    """

    def __init__(
        self, operation: str, failures: Sequence[tuple[str, Exception]]
    ) -> None:
        self.operation = operation
        self.failures = tuple(failures)
        names = ", ".join(name for name, _ in self.failures)
        super().__init__(
            f"All storage adapters failed for {operation} operation: {names}"
        )
