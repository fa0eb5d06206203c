"""Map service keys to persisted circuit snapshots."""

import hashlib

from breakwater.circuit_breaker.exceptions import (
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from breakwater.circuit_breaker.state import CircuitSnapshot
from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.circuit_breaker.storage.serializer import (
    JsonSnapshotSerializer,
    SnapshotSerializer,
)
from breakwater.logging import AnyLogger, get_logger, log_warning

STORAGE_KEY_PREFIX = "cb_"


def storage_key(service_key: str) -> str:
    """Return the fixed-length, filesystem-safe storage key for a service."""
    digest = hashlib.sha256(service_key.encode("utf-8")).hexdigest()
    return f"{STORAGE_KEY_PREFIX}{digest}"


class CircuitStateRepository:
    """Load and save snapshots through a storage adapter and a serializer."""

    def __init__(
        self,
        adapter: AbstractStorageAdapter,
        serializer: SnapshotSerializer | None = None,
        *,
        logger: AnyLogger | None = None,
    ) -> None:
        self._adapter = adapter
        self._serializer = (
            JsonSnapshotSerializer() if serializer is None else serializer
        )
        self._logger = get_logger(__name__) if logger is None else logger

    @property
    def adapter(self) -> AbstractStorageAdapter:
        return self._adapter

    def find(self, service_key: str) -> CircuitSnapshot | None:
        """Return the stored snapshot, ``None`` when absent.

        Raises:
            StorageReadError: If the adapter fails or the data is malformed.
        """
        try:
            raw = self._adapter.read(storage_key(service_key))
        except StorageReadError:
            raise
        except StorageError as exc:
            raise StorageReadError(
                f"Storage error for service '{service_key}': {exc}"
            ) from exc
        if raw is None:
            return None
        return self._serializer.decode(service_key, raw)

    def load(self, service_key: str) -> CircuitSnapshot:
        """Return the stored snapshot or a default CLOSED one.

        Unreadable or corrupt data is logged and treated as "no prior state",
        whatever the adapter or serializer raised.
        """
        try:
            snapshot = self.find(service_key)
        except Exception as exc:
            log_warning(
                self._logger,
                "circuit_breaker.state_load_failed",
                service_key=service_key,
                adapter=self._adapter.name,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return CircuitSnapshot.default(service_key)
        if snapshot is None:
            return CircuitSnapshot.default(service_key)
        return snapshot

    def save(self, snapshot: CircuitSnapshot) -> None:
        """Persist ``snapshot``.

        Raises:
            StorageWriteError: If encoding or writing fails.
        """
        data = self._serializer.encode(snapshot)
        try:
            self._adapter.write(storage_key(snapshot.service_key), data)
        except StorageWriteError:
            raise
        except StorageError as exc:
            raise StorageWriteError(
                f"Storage error for service '{snapshot.service_key}': {exc}"
            ) from exc

    def delete(self, service_key: str) -> None:
        self._adapter.delete(storage_key(service_key))

    def exists(self, service_key: str) -> bool:
        return self._adapter.exists(storage_key(service_key))
