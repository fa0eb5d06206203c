"""Caller-owned registry of named circuit breakers.

A registry hands out one breaker per service key, all sharing the same
repository, clock, listeners and logger. Per-service configuration can be
registered ahead of time with ``configure``; it only affects breakers created
afterwards.
"""

import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from breakwater.circuit_breaker.breaker import CircuitBreaker
from breakwater.circuit_breaker.config import CircuitBreakerConfig
from breakwater.circuit_breaker.health import HealthReport
from breakwater.circuit_breaker.metrics import BreakerListener
from breakwater.circuit_breaker.storage import (
    CircuitStateRepository,
    InMemoryStorageAdapter,
)
from breakwater.clock import Clock, SystemClock
from breakwater.logging import AnyLogger, get_logger, log_debug

T = TypeVar("T")

ConfigLike = CircuitBreakerConfig | Mapping[str, Any]


class BreakerRegistry:
    """Create and cache ``CircuitBreaker`` instances by service key."""

    def __init__(
        self,
        *,
        repository: CircuitStateRepository | None = None,
        clock: Clock | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        default_config: CircuitBreakerConfig | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        self._clock = SystemClock() if clock is None else clock
        self._logger = get_logger(__name__) if logger is None else logger
        self._repository = (
            CircuitStateRepository(
                InMemoryStorageAdapter(clock=self._clock), logger=self._logger
            )
            if repository is None
            else repository
        )
        self._default_config = (
            CircuitBreakerConfig() if default_config is None else default_config
        )
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._configs: dict[str, ConfigLike] = {}
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, service_key: object) -> bool:
        return service_key in self._breakers

    @property
    def repository(self) -> CircuitStateRepository:
        return self._repository

    def configure(self, service_key: str, config: ConfigLike) -> None:
        """Register configuration for breakers created later for ``service_key``."""
        with self._lock:
            self._configs[service_key] = config

    def _resolve_config(
        self, service_key: str, override: ConfigLike | None
    ) -> CircuitBreakerConfig:
        resolved = self._default_config
        for layer in (self._configs.get(service_key), override):
            if layer is None:
                continue
            if isinstance(layer, CircuitBreakerConfig):
                resolved = layer
            else:
                resolved = resolved.with_changes(**dict(layer))
        return resolved

    def get(
        self, service_key: str, config: ConfigLike | None = None
    ) -> CircuitBreaker:
        """Return the breaker for ``service_key``, creating it on first use.

        ``config`` is layered over the registered and default configuration
        and is ignored when the breaker already exists.
        """
        with self._lock:
            breaker = self._breakers.get(service_key)
            if breaker is not None:
                return breaker
            breaker = CircuitBreaker(
                service_key,
                config=self._resolve_config(service_key, config),
                repository=self._repository,
                clock=self._clock,
                listeners=self._listeners,
                logger=self._logger,
            )
            self._breakers[service_key] = breaker
        log_debug(
            self._logger,
            "circuit_breaker.registry.created",
            service_key=service_key,
            state=breaker.state.value,
        )
        return breaker

    def protect(
        self,
        service_key: str,
        func: Callable[..., T],
        *args: Any,
        fallback: Callable[[Exception], T] | None = None,
        **kwargs: Any,
    ) -> T:
        """Run ``func`` through the breaker for ``service_key``."""
        breaker = self.get(service_key)
        if fallback is not None:
            return breaker.call_with_fallback(func, fallback, *args, **kwargs)
        return breaker.call(func, *args, **kwargs)

    def forget(self, service_key: str) -> bool:
        """Drop the cached breaker. Persisted state is left untouched."""
        with self._lock:
            return self._breakers.pop(service_key, None) is not None

    def flush(self) -> None:
        """Drop every cached breaker."""
        with self._lock:
            self._breakers.clear()

    def all(self) -> dict[str, CircuitBreaker]:
        with self._lock:
            return dict(self._breakers)

    def health(
        self, service_key: str | None = None
    ) -> HealthReport | dict[str, HealthReport]:
        """Return one report, or a report per cached breaker."""
        if service_key is not None:
            return self.get(service_key).health()
        return {key: breaker.health() for key, breaker in self.all().items()}
