"""Raw key/bytes storage adapter interface."""

from abc import ABC, abstractmethod


class AbstractStorageAdapter(ABC):
    """Byte-level persistence backend.

    Keys handed to adapters are already hashed by the repository, so they are
    safe to use as file names or cache keys without further escaping.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return an adapter identifier for logs, e.g. ``file`` or ``memory``."""

    @abstractmethod
    def read(self, key: str) -> bytes | None:
        """Return the stored bytes for ``key`` or ``None`` if missing.

        Raises:
            StorageReadError: If the backend cannot be read.
        """

    @abstractmethod
    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``, optionally expiring after ``ttl`` seconds.

        Raises:
            StorageWriteError: If the backend cannot be written.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return whether ``key`` is currently stored."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every key owned by this adapter."""
