"""Circuit breaker state primitives."""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values, as persisted."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True, slots=True)
class CircuitSnapshot:
    """Immutable persisted condition of one breaker.

    Attributes:
        service_key: Stable breaker identity.
        state: Breaker state when the snapshot was taken.
        failure_count: Consecutive failures since the last reset.
        success_count: Consecutive half-open successes.
        last_failure_time: Epoch seconds of the failure that last opened the
            circuit, or ``None`` if it never failed.
    """

    service_key: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: int | None = None

    @classmethod
    def default(cls, service_key: str) -> "CircuitSnapshot":
        """Return the CLOSED snapshot with zeroed counters."""
        return cls(service_key=service_key)

    @classmethod
    def from_payload(
        cls, service_key: str, payload: Mapping[str, object]
    ) -> "CircuitSnapshot":
        """Build a snapshot from an already-validated persisted mapping."""
        last_failure_time = payload.get("last_failure_time")
        return cls(
            service_key=service_key,
            state=CircuitState(str(payload["state"])),
            failure_count=int(payload["failure_count"]),  # type: ignore[call-overload]
            success_count=int(payload["success_count"]),  # type: ignore[call-overload]
            last_failure_time=(
                int(last_failure_time)  # type: ignore[call-overload]
                if last_failure_time
                else None
            ),
        )

    def to_payload(self) -> dict[str, object]:
        """Return the persisted mapping for this snapshot."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time or 0,
        }

    def evolve(self, **changes: object) -> "CircuitSnapshot":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)  # type: ignore[arg-type]
