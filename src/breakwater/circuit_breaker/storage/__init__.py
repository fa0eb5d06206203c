"""State storage for circuit breakers.

Storage is decoupled from breaker logic in two layers: byte-level adapters
(memory, file, external cache, fallback chains and decorators) and the
``CircuitStateRepository`` that maps service keys to snapshots.
"""

from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.circuit_breaker.storage.cache import CacheBackend, CacheStorageAdapter
from breakwater.circuit_breaker.storage.decorators import (
    LoggingStorageDecorator,
    MetricsStorageDecorator,
    RetryStorageDecorator,
    StorageAdapterDecorator,
    StorageMetricsCollector,
)
from breakwater.circuit_breaker.storage.factory import (
    build_repository,
    create_adapter,
    create_repository,
    decorate,
)
from breakwater.circuit_breaker.storage.fallback import FallbackStorageAdapter
from breakwater.circuit_breaker.storage.file import FileStorageAdapter
from breakwater.circuit_breaker.storage.memory import (
    InMemoryStorageAdapter,
    NullStorageAdapter,
)
from breakwater.circuit_breaker.storage.repository import (
    CircuitStateRepository,
    storage_key,
)
from breakwater.circuit_breaker.storage.serializer import (
    JsonSnapshotSerializer,
    SnapshotSerializer,
)

__all__ = [
    "AbstractStorageAdapter",
    "CacheBackend",
    "CacheStorageAdapter",
    "CircuitStateRepository",
    "FallbackStorageAdapter",
    "FileStorageAdapter",
    "InMemoryStorageAdapter",
    "JsonSnapshotSerializer",
    "LoggingStorageDecorator",
    "MetricsStorageDecorator",
    "NullStorageAdapter",
    "RetryStorageDecorator",
    "SnapshotSerializer",
    "StorageAdapterDecorator",
    "StorageMetricsCollector",
    "build_repository",
    "create_adapter",
    "create_repository",
    "decorate",
    "storage_key",
]
