"""In-process storage adapters."""

import threading
from dataclasses import dataclass

from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.clock import Clock, SystemClock


@dataclass(frozen=True, slots=True)
class _Entry:
    value: bytes
    expires_at: float | None


class InMemoryStorageAdapter(AbstractStorageAdapter):
    """Dictionary-backed adapter, shared safely between threads of one process.

    Expired entries are dropped lazily on access or via ``cleanup_expired``.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = SystemClock() if clock is None else clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def _is_expired(self, entry: _Entry) -> bool:
        return entry.expires_at is not None and self._clock.time() > entry.expires_at

    def _get_live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            return None
        return entry

    def read(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._get_live(key)
            return None if entry is None else entry.value

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        expires_at = None if ttl is None else self._clock.time() + ttl
        with self._lock:
            self._entries[key] = _Entry(value=bytes(value), expires_at=expires_at)

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._get_live(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            expired = [
                key for key, entry in self._entries.items() if self._is_expired(entry)
            ]
            for key in expired:
                del self._entries[key]
            return len(expired)


class NullStorageAdapter(AbstractStorageAdapter):
    """Adapter that stores nothing and never fails."""

    @property
    def name(self) -> str:
        return "null"

    def read(self, key: str) -> bytes | None:
        return None

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        return

    def exists(self, key: str) -> bool:
        return False

    def delete(self, key: str) -> None:
        return

    def clear(self) -> None:
        return
