"""Helpers for assembling adapters, decorator stacks and repositories."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Literal

from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.circuit_breaker.storage.decorators import (
    DEFAULT_STORAGE_RETRY_POLICY,
    LoggingStorageDecorator,
    MetricsStorageDecorator,
    RetryStorageDecorator,
    StorageMetricsCollector,
)
from breakwater.circuit_breaker.storage.file import FileStorageAdapter
from breakwater.circuit_breaker.storage.memory import (
    InMemoryStorageAdapter,
    NullStorageAdapter,
)
from breakwater.circuit_breaker.storage.repository import CircuitStateRepository
from breakwater.circuit_breaker.storage.serializer import SnapshotSerializer
from breakwater.logging import AnyLogger
from breakwater.retry import RetryBackoffPolicy

if TYPE_CHECKING:
    from breakwater.settings import BreakerSettings

AdapterKind = Literal["memory", "file", "null"]


def create_adapter(kind: AdapterKind, **options: object) -> AbstractStorageAdapter:
    """Create a base adapter by kind.

    ``file`` requires a ``path`` option and accepts ``max_temp_file_age``.
    """
    if kind == "memory":
        return InMemoryStorageAdapter()
    if kind == "null":
        return NullStorageAdapter()
    if kind == "file":
        path = options.get("path")
        if path is None:
            raise ValueError("file adapter requires a 'path' option")
        max_age = options.get("max_temp_file_age", 3600)
        return FileStorageAdapter(
            str(path),
            max_temp_file_age=int(max_age),  # type: ignore[call-overload]
        )
    raise ValueError(f"Unknown adapter type: {kind}")


def decorate(
    adapter: AbstractStorageAdapter,
    *,
    logger: AnyLogger | None = None,
    metrics: StorageMetricsCollector | None = None,
    retry: RetryBackoffPolicy | None = None,
    retry_sleep: Callable[[float], None] | None = None,
) -> AbstractStorageAdapter:
    """Wrap ``adapter`` with the requested decorators.

    Order from the outside in: logging, metrics, retry. Logging and metrics
    therefore observe one entry per logical operation, retries included.
    """
    decorated = adapter
    if retry is not None:
        decorated = RetryStorageDecorator(
            decorated, policy=retry, sleep=retry_sleep, logger=logger
        )
    if metrics is not None:
        decorated = MetricsStorageDecorator(decorated, metrics)
    if logger is not None:
        decorated = LoggingStorageDecorator(decorated, logger)
    return decorated


def create_repository(
    adapter: AbstractStorageAdapter | None = None,
    serializer: SnapshotSerializer | None = None,
    *,
    logger: AnyLogger | None = None,
) -> CircuitStateRepository:
    """Build a repository, defaulting to in-memory storage and JSON."""
    resolved = InMemoryStorageAdapter() if adapter is None else adapter
    return CircuitStateRepository(resolved, serializer, logger=logger)


def build_repository(
    settings: BreakerSettings,
    *,
    logger: AnyLogger | None = None,
) -> CircuitStateRepository:
    """Build the repository described by ``settings``."""
    adapter = create_adapter(
        settings.storage_backend,
        path=settings.storage_dir,
        max_temp_file_age=settings.max_temp_file_age,
    )
    if settings.storage_retry_attempts > 1:
        policy = RetryBackoffPolicy(
            attempts=settings.storage_retry_attempts,
            min_seconds=DEFAULT_STORAGE_RETRY_POLICY.min_seconds,
            max_seconds=DEFAULT_STORAGE_RETRY_POLICY.max_seconds,
        )
        adapter = decorate(adapter, retry=policy, logger=logger)
    return create_repository(adapter, logger=logger)
