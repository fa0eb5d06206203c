"""Cross-cutting wrappers for storage adapters."""

import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Protocol, TypeVar

from tenacity import RetryCallState, retry_if_exception_type

from breakwater.circuit_breaker.exceptions import StorageError
from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.logging import AnyLogger, LogLevelName, log_event, log_warning
from breakwater.retry import RetryBackoffPolicy, build_exponential_jitter_retrying

T = TypeVar("T")


class StorageAdapterDecorator(AbstractStorageAdapter):
    """Forward every operation to ``inner``."""

    def __init__(self, inner: AbstractStorageAdapter) -> None:
        self._inner = inner

    @property
    def name(self) -> str:
        return self._inner.name

    @property
    def inner(self) -> AbstractStorageAdapter:
        return self._inner

    @property
    def root(self) -> AbstractStorageAdapter:
        """Return the innermost adapter below any number of decorators."""
        adapter = self._inner
        while isinstance(adapter, StorageAdapterDecorator):
            adapter = adapter.inner
        return adapter

    def read(self, key: str) -> bytes | None:
        return self._inner.read(key)

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self._inner.write(key, value, ttl)

    def exists(self, key: str) -> bool:
        return self._inner.exists(key)

    def delete(self, key: str) -> None:
        self._inner.delete(key)

    def clear(self) -> None:
        self._inner.clear()


class LoggingStorageDecorator(StorageAdapterDecorator):
    """Log each storage operation with its duration."""

    def __init__(
        self,
        inner: AbstractStorageAdapter,
        logger: AnyLogger,
        *,
        success_level: LogLevelName = "debug",
        error_level: LogLevelName = "error",
    ) -> None:
        super().__init__(inner)
        self._logger = logger
        self._success_level = success_level
        self._error_level = error_level

    @property
    def name(self) -> str:
        return f"logging({self._inner.name})"

    def _logged(
        self,
        operation: str,
        action: Callable[[], T],
        describe: Callable[[T], Mapping[str, object]] | None = None,
        **fields: object,
    ) -> T:
        start = time.perf_counter()
        try:
            result = action()
        except Exception as exc:
            log_event(
                self._logger,
                self._error_level,
                f"storage.{operation}.failed",
                adapter=self._inner.name,
                error=str(exc),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                **fields,
            )
            raise
        extra = dict(describe(result)) if describe is not None else {}
        log_event(
            self._logger,
            self._success_level,
            f"storage.{operation}.succeeded",
            adapter=self._inner.name,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **fields,
            **extra,
        )
        return result

    def read(self, key: str) -> bytes | None:
        return self._logged(
            "read",
            lambda: self._inner.read(key),
            lambda result: {"found": result is not None},
            key=key,
        )

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self._logged(
            "write",
            lambda: self._inner.write(key, value, ttl),
            key=key,
            value_length=len(value),
            ttl=ttl,
        )

    def exists(self, key: str) -> bool:
        return self._logged(
            "exists",
            lambda: self._inner.exists(key),
            lambda result: {"exists": result},
            key=key,
        )

    def delete(self, key: str) -> None:
        self._logged("delete", lambda: self._inner.delete(key), key=key)

    def clear(self) -> None:
        self._logged("clear", self._inner.clear)


class StorageMetricsCollector(Protocol):
    """Sink for per-operation storage measurements."""

    def record_operation(
        self,
        operation: str,
        adapter: str,
        duration_ms: float,
        success: bool,
        tags: Mapping[str, object],
    ) -> None:
        """Record one storage operation."""


class MetricsStorageDecorator(StorageAdapterDecorator):
    """Report duration and outcome of each operation to a collector."""

    def __init__(
        self, inner: AbstractStorageAdapter, metrics: StorageMetricsCollector
    ) -> None:
        super().__init__(inner)
        self._metrics = metrics

    @property
    def name(self) -> str:
        return f"metrics({self._inner.name})"

    @contextmanager
    def _measured(self, operation: str, **tags: object) -> Iterator[None]:
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            self._metrics.record_operation(
                operation,
                self._inner.name,
                (time.perf_counter() - start) * 1000,
                success,
                tags,
            )

    def read(self, key: str) -> bytes | None:
        with self._measured("read"):
            return self._inner.read(key)

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        with self._measured("write", value_size=len(value), has_ttl=ttl is not None):
            self._inner.write(key, value, ttl)

    def exists(self, key: str) -> bool:
        with self._measured("exists"):
            return self._inner.exists(key)

    def delete(self, key: str) -> None:
        with self._measured("delete"):
            self._inner.delete(key)

    def clear(self) -> None:
        with self._measured("clear"):
            self._inner.clear()


DEFAULT_STORAGE_RETRY_POLICY = RetryBackoffPolicy(
    attempts=3, min_seconds=0.1, max_seconds=2.0
)


class RetryStorageDecorator(StorageAdapterDecorator):
    """Retry failed operations with exponential jitter backoff.

    Only ``StorageError`` is retried; anything else is a programming error and
    propagates on the first attempt.
    """

    def __init__(
        self,
        inner: AbstractStorageAdapter,
        *,
        policy: RetryBackoffPolicy = DEFAULT_STORAGE_RETRY_POLICY,
        sleep: Callable[[float], None] | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        super().__init__(inner)
        self._policy = policy
        self._sleep = sleep
        self._logger = logger

    @property
    def name(self) -> str:
        return f"retry({self._inner.name})"

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        if self._logger is None:
            return
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        log_warning(
            self._logger,
            "storage.retry.scheduled",
            adapter=self._inner.name,
            attempt=retry_state.attempt_number,
            error=str(error),
        )

    def _retry(self, action: Callable[[], T]) -> T:
        retrying = build_exponential_jitter_retrying(
            retry=retry_if_exception_type(StorageError),
            policy=self._policy,
            sleep=self._sleep,
            before_sleep=self._before_sleep,
        )
        return retrying(action)

    def read(self, key: str) -> bytes | None:
        return self._retry(lambda: self._inner.read(key))

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self._retry(lambda: self._inner.write(key, value, ttl))

    def exists(self, key: str) -> bool:
        return self._retry(lambda: self._inner.exists(key))

    def delete(self, key: str) -> None:
        self._retry(lambda: self._inner.delete(key))

    def clear(self) -> None:
        self._retry(self._inner.clear)
