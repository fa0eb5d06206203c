"""Circuit breaker configuration."""

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from breakwater.circuit_breaker.exceptions import InvalidConfigurationError

_LIMITS: dict[str, tuple[int, int]] = {
    "failure_threshold": (1, 1000),
    "success_threshold": (1, 100),
    "timeout": (0, 3600),
    "half_open_max_attempts": (1, 10),
}


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        success_threshold: Consecutive successes while ``HALF_OPEN`` before
            closing.
        timeout: Seconds to wait while ``OPEN`` before allowing a trial call.
        half_open_max_attempts: Concurrent trial calls admitted while
            ``HALF_OPEN``.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: int = 30
    half_open_max_attempts: int = 1
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        for name, (low, high) in _LIMITS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigurationError(f"{name} must be an integer")
            if value < low:
                raise InvalidConfigurationError(
                    f"{name} must be >= {low}, got {value}"
                )
            if value > high:
                raise InvalidConfigurationError(
                    f"{name} must be <= {high}, got {value}"
                )

    @classmethod
    def from_mapping(cls, options: Mapping[str, object]) -> "CircuitBreakerConfig":
        """Build a config from snake_case keys, ignoring unknown keys."""
        known = {field.name for field in fields(cls)}
        values = {key: value for key, value in options.items() if key in known}
        return cls(**values)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, int]:
        """Return the numeric settings keyed by name."""
        return {name: getattr(self, name) for name in _LIMITS}

    def with_changes(self, **changes: object) -> "CircuitBreakerConfig":
        """Return a validated copy with ``changes`` applied.

        Raises:
            InvalidConfigurationError: If a key is not a config field.
        """
        known = {field.name for field in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise InvalidConfigurationError(
                f"unknown configuration keys: {', '.join(unknown)}"
            )
        return replace(self, **changes)  # type: ignore[arg-type]
