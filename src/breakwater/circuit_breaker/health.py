"""Health reporting for operational dashboards."""

from dataclasses import dataclass
from enum import StrEnum

from breakwater.circuit_breaker.config import CircuitBreakerConfig
from breakwater.circuit_breaker.state import CircuitSnapshot, CircuitState


class HealthStatus(StrEnum):
    """Coarse health of one breaker."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Immutable health view of one breaker."""

    status: HealthStatus
    state: CircuitState
    failure_count: int
    success_count: int
    failure_threshold: int
    success_threshold: int
    last_failure_time: int | None
    message: str = ""

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    @property
    def is_degraded(self) -> bool:
        return self.status is HealthStatus.DEGRADED

    @property
    def is_unhealthy(self) -> bool:
        return self.status is HealthStatus.UNHEALTHY

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "last_failure_time": self.last_failure_time,
            "message": self.message,
        }


def build_health_report(
    snapshot: CircuitSnapshot, config: CircuitBreakerConfig
) -> HealthReport:
    """Classify ``snapshot``.

    ``OPEN`` is unhealthy, ``HALF_OPEN`` degraded, and ``CLOSED`` degraded
    once half of the failure threshold has been used up.
    """
    if snapshot.state is CircuitState.OPEN:
        status = HealthStatus.UNHEALTHY
        message = "Circuit is open; calls are failing fast."
    elif snapshot.state is CircuitState.HALF_OPEN:
        status = HealthStatus.DEGRADED
        message = "Circuit is half-open; probing for recovery."
    elif snapshot.failure_count * 2 >= config.failure_threshold:
        status = HealthStatus.DEGRADED
        message = (
            f"{snapshot.failure_count} of {config.failure_threshold} "
            "failures before opening."
        )
    else:
        status = HealthStatus.HEALTHY
        message = "Circuit is closed."
    return HealthReport(
        status=status,
        state=snapshot.state,
        failure_count=snapshot.failure_count,
        success_count=snapshot.success_count,
        failure_threshold=config.failure_threshold,
        success_threshold=config.success_threshold,
        last_failure_time=snapshot.last_failure_time,
        message=message,
    )
