from __future__ import annotations

import threading

from breakwater.circuit_breaker.exceptions import StorageError
from breakwater.circuit_breaker.state import CircuitState
from breakwater.circuit_breaker.storage import (
    AbstractStorageAdapter,
    InMemoryStorageAdapter,
)


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: object) -> None:
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)

    def levels_for(self, event: str) -> list[str]:
        return [level for level, name, _ in self.calls if name == event]

    def fields_for(self, event: str) -> list[dict[str, object]]:
        return [fields for _, name, fields in self.calls if name == event]


class RecordingAdapter(InMemoryStorageAdapter):
    """In-memory adapter that counts every write."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[tuple[str, bytes, int | None]] = []

    @property
    def name(self) -> str:
        return "recording"

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self.writes.append((key, value, ttl))
        super().write(key, value, ttl)


class BrokenAdapter(AbstractStorageAdapter):
    """Adapter whose operations raise until ``healthy`` is set."""

    def __init__(
        self,
        name: str = "broken",
        *,
        error: type[Exception] = StorageError,
        failures: int | None = None,
    ) -> None:
        self._name = name
        self._error = error
        self._remaining = failures
        self._delegate = InMemoryStorageAdapter()
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        if self._remaining is None:
            raise self._error(f"{self._name} {operation} failed")
        if self._remaining > 0:
            self._remaining -= 1
            raise self._error(f"{self._name} {operation} failed")

    def read(self, key: str) -> bytes | None:
        self._maybe_fail("read")
        return self._delegate.read(key)

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self._maybe_fail("write")
        self._delegate.write(key, value, ttl)

    def exists(self, key: str) -> bool:
        self._maybe_fail("exists")
        return self._delegate.exists(key)

    def delete(self, key: str) -> None:
        self._maybe_fail("delete")
        self._delegate.delete(key)

    def clear(self) -> None:
        self._maybe_fail("clear")
        self._delegate.clear()


class FakeCache:
    """Dictionary-backed cache with a PSR-16 style boolean API."""

    def __init__(self) -> None:
        self.data: dict[str, object] = {}
        self.ttls: dict[str, int | None] = {}
        self.accept_writes = True
        self.raise_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.raise_on:
            raise ConnectionError(f"cache {operation} unavailable")

    def get(self, key: str) -> object | None:
        self._check("get")
        return self.data.get(key)

    def set(self, key: str, value: object, ttl: int | None = None) -> bool:
        self._check("set")
        if not self.accept_writes:
            return False
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def has(self, key: str) -> bool:
        self._check("has")
        return key in self.data

    def delete(self, key: str) -> bool:
        self._check("delete")
        self.data.pop(key, None)
        return True

    def clear(self) -> bool:
        self._check("clear")
        self.data.clear()
        return True


class RecordingListener:
    """Capture breaker listener callbacks in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self._lock = threading.Lock()

    def _append(self, kind: str, payload: object) -> None:
        with self._lock:
            self.events.append((kind, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState):
        self._append("state", (name, old, new))

    def on_call_rejected(self, name: str):
        self._append("rejected", name)

    def on_call_succeeded(self, name: str, elapsed: float):
        self._append("succeeded", name)

    def on_call_failed(self, name: str, exc: Exception, elapsed: float):
        self._append("failed", (name, exc.__class__.__name__))

    def on_fallback_executed(self, name: str, exc: Exception):
        self._append("fallback", (name, exc.__class__.__name__))


class ExplodingListener:
    def on_state_change(self, name: str, old: CircuitState, new: CircuitState):
        raise RuntimeError("boom")

    def on_call_rejected(self, name: str):
        raise RuntimeError("boom")

    def on_call_succeeded(self, name: str, elapsed: float):
        raise RuntimeError("boom")

    def on_call_failed(self, name: str, exc: Exception, elapsed: float):
        raise RuntimeError("boom")

    def on_fallback_executed(self, name: str, exc: Exception):
        raise RuntimeError("boom")
