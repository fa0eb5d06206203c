"""Storage adapter that cascades across several backends.

Typical chain: a shared cache first, a local file second, memory last.
Reads return the first backend that answers; mutations go to every backend
and succeed if any one of them does. Backends are not reconciled, so a
backend that missed a write may serve a stale value later.
"""

from collections.abc import Callable, Sequence
from typing import TypeVar

from breakwater.circuit_breaker.exceptions import StorageChainError
from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.logging import AnyLogger, get_logger, log_warning

T = TypeVar("T")


class FallbackStorageAdapter(AbstractStorageAdapter):
    """Try adapters in priority order, degrading gracefully."""

    def __init__(
        self,
        adapters: Sequence[AbstractStorageAdapter],
        *,
        logger: AnyLogger | None = None,
    ) -> None:
        """Build a chain from ``adapters`` in priority order.

        Args:
            adapters: Backends, highest priority first.
            logger: Receives one warning per failing backend call.

        Raises:
            ValueError: If ``adapters`` is empty.
        """
        resolved = tuple(adapters)
        if not resolved:
            raise ValueError("At least one storage adapter is required")
        self._adapters = resolved
        self._logger = get_logger(__name__) if logger is None else logger

    @property
    def name(self) -> str:
        return "fallback(" + ",".join(adapter.name for adapter in self._adapters) + ")"

    @property
    def adapters(self) -> tuple[AbstractStorageAdapter, ...]:
        return self._adapters

    def _report_failure(
        self,
        operation: str,
        index: int,
        adapter: AbstractStorageAdapter,
        exc: Exception,
    ) -> None:
        log_warning(
            self._logger,
            "storage.fallback.adapter_failed",
            adapter=adapter.name,
            operation=operation,
            index=index,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )

    def _first_success(
        self,
        operation: str,
        action: Callable[[AbstractStorageAdapter], T],
    ) -> T:
        failures: list[tuple[str, Exception]] = []
        for index, adapter in enumerate(self._adapters):
            try:
                return action(adapter)
            except Exception as exc:
                failures.append((adapter.name, exc))
                self._report_failure(operation, index, adapter, exc)
        raise StorageChainError(operation, failures) from failures[-1][1]

    def _broadcast(
        self,
        operation: str,
        action: Callable[[AbstractStorageAdapter], None],
    ) -> None:
        failures: list[tuple[str, Exception]] = []
        for index, adapter in enumerate(self._adapters):
            try:
                action(adapter)
            except Exception as exc:
                failures.append((adapter.name, exc))
                self._report_failure(operation, index, adapter, exc)
        if len(failures) == len(self._adapters):
            raise StorageChainError(operation, failures) from failures[-1][1]

    def read(self, key: str) -> bytes | None:
        return self._first_success("read", lambda adapter: adapter.read(key))

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self._broadcast("write", lambda adapter: adapter.write(key, value, ttl))

    def exists(self, key: str) -> bool:
        for index, adapter in enumerate(self._adapters):
            try:
                if adapter.exists(key):
                    return True
            except Exception as exc:
                self._report_failure("exists", index, adapter, exc)
        return False

    def delete(self, key: str) -> None:
        self._broadcast("delete", lambda adapter: adapter.delete(key))

    def clear(self) -> None:
        self._broadcast("clear", lambda adapter: adapter.clear())
