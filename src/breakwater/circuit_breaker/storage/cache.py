"""Adapter for pluggable external caches (Redis clients, memcached wrappers...)."""

from typing import Protocol, runtime_checkable

from breakwater.circuit_breaker.exceptions import (
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter


@runtime_checkable
class CacheBackend(Protocol):
    """Minimal cache surface consumed by ``CacheStorageAdapter``."""

    def get(self, key: str) -> object | None:
        """Return the cached value or ``None``."""

    def set(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """Store a value; return ``False`` on failure."""

    def has(self, key: str) -> bool:
        """Return whether ``key`` is cached."""

    def delete(self, key: str) -> bool:
        """Remove ``key``; return ``False`` on failure."""

    def clear(self) -> bool:
        """Remove every key; return ``False`` on failure."""


class CacheStorageAdapter(AbstractStorageAdapter):
    """Store breaker state in any ``CacheBackend`` implementation."""

    def __init__(self, cache: CacheBackend, *, default_ttl: int | None = None) -> None:
        """Wrap ``cache``.

        Args:
            cache: Backend implementing ``get/set/has/delete/clear``.
            default_ttl: TTL in seconds used when ``write`` gets none.
        """
        self._cache = cache
        self._default_ttl = default_ttl

    @property
    def name(self) -> str:
        return "cache"

    @property
    def cache(self) -> CacheBackend:
        return self._cache

    def read(self, key: str) -> bytes | None:
        try:
            value = self._cache.get(key)
        except Exception as exc:
            raise StorageReadError(f"Failed to read from cache: {exc}") from exc
        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise StorageReadError(
                f"Expected bytes value from cache, got: {type(value).__name__}"
            )
        return bytes(value)

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        effective_ttl = self._default_ttl if ttl is None else ttl
        try:
            stored = self._cache.set(key, value, effective_ttl)
        except Exception as exc:
            raise StorageWriteError(f"Failed to write to cache: {exc}") from exc
        if stored is False:
            raise StorageWriteError(f"Failed to write to cache: {key}")

    def exists(self, key: str) -> bool:
        try:
            return bool(self._cache.has(key))
        except Exception as exc:
            raise StorageError(f"Failed to check cache key existence: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            deleted = self._cache.delete(key)
        except Exception as exc:
            raise StorageError(f"Failed to delete from cache: {exc}") from exc
        if deleted is False:
            raise StorageError(f"Failed to delete from cache: {key}")

    def clear(self) -> None:
        try:
            cleared = self._cache.clear()
        except Exception as exc:
            raise StorageError(f"Failed to clear cache: {exc}") from exc
        if cleared is False:
            raise StorageError("Failed to clear cache")
