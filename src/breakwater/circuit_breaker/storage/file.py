"""Filesystem storage adapter with atomic writes and ``fcntl`` locking.

Layout for a key ``k`` inside ``storage_dir``:
  - ``k.dat``: committed value.
  - ``k.dat.tmp``: value being written; renamed over ``k.dat`` on success.
  - ``k.dat.lock``: writers hold an exclusive ``flock`` on this file.

Readers take a shared ``flock`` on ``k.dat`` itself. Lock files are left in
place after writes so that every process locks the same inode.
"""

import fcntl
import os
import threading
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path

from breakwater.circuit_breaker.exceptions import (
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from breakwater.circuit_breaker.storage.base import AbstractStorageAdapter
from breakwater.clock import Clock, SystemClock
from breakwater.logging import AnyLogger, get_logger, log_warning

FILE_EXTENSION = ".dat"
TEMP_EXTENSION = ".tmp"
LOCK_EXTENSION = ".lock"
FILE_PERMISSIONS = 0o644


class FileStorageAdapter(AbstractStorageAdapter):
    """Store each key as one file inside ``storage_dir``."""

    def __init__(
        self,
        storage_dir: str | os.PathLike[str],
        *,
        max_temp_file_age: int = 3600,
        clock: Clock | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Prepare the storage directory and purge stale temp files.

        Args:
            storage_dir: Directory holding the data files. Created if missing.
            max_temp_file_age: Seconds after which an orphaned ``.tmp`` file
                left by a crashed writer is deleted on startup.
            clock: Time source used for temp-file ageing.
            logger: Logger for non-fatal problems.

        Raises:
            StorageWriteError: If the directory is not writable.
            StorageError: If the directory cannot be created.
        """
        if max_temp_file_age < 0:
            raise ValueError("max_temp_file_age must be >= 0")
        self._storage_dir = Path(storage_dir)
        self._max_temp_file_age = max_temp_file_age
        self._clock = SystemClock() if clock is None else clock
        self._logger = get_logger(__name__) if logger is None else logger
        self._key_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._key_locks_guard = threading.Lock()

        self._ensure_directory()
        self.cleanup_orphaned_temp_files()

    @property
    def name(self) -> str:
        return "file"

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    def file_path(self, key: str) -> Path:
        """Return the committed data path for ``key``."""
        return self._storage_dir / f"{key}{FILE_EXTENSION}"

    def _ensure_directory(self) -> None:
        try:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as exc:
            raise StorageWriteError(
                f"Permission denied creating '{self._storage_dir}'"
            ) from exc
        except OSError as exc:
            raise StorageError(
                f"Failed to create storage directory: {self._storage_dir}"
            ) from exc
        if not self._storage_dir.is_dir():
            raise StorageError(f"Storage path is not a directory: {self._storage_dir}")
        if not os.access(self._storage_dir, os.W_OK):
            raise StorageWriteError(
                f"Permission denied writing to '{self._storage_dir}'"
            )

    def cleanup_orphaned_temp_files(self) -> int:
        """Delete ``.tmp`` files older than ``max_temp_file_age``; return count."""
        now = self._clock.time()
        removed = 0
        for temp_path in self._storage_dir.glob(f"*{TEMP_EXTENSION}"):
            try:
                mtime = temp_path.stat().st_mtime
            except OSError:
                continue
            if now - mtime <= self._max_temp_file_age:
                continue
            with suppress(FileNotFoundError):
                temp_path.unlink()
                removed += 1
        return removed

    def _key_lock(self, key: str) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks[key]

    @contextmanager
    def _exclusive(self, key: str) -> Iterator[None]:
        lock_path = Path(f"{self.file_path(key)}{LOCK_EXTENSION}")
        with self._key_lock(key):
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_RDWR, FILE_PERMISSIONS)
            except OSError as exc:
                raise StorageWriteError(f"Failed to write to '{lock_path}'") from exc
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

    def read(self, key: str) -> bytes | None:
        path = self.file_path(key)
        try:
            with path.open("rb") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_SH)
                try:
                    return handle.read()
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return None
        except PermissionError as exc:
            raise StorageReadError(f"Permission denied reading from '{path}'") from exc
        except OSError as exc:
            raise StorageReadError(f"Failed to read from '{path}'") from exc

    def write(self, key: str, value: bytes, ttl: int | None = None) -> None:
        """Atomically replace the value for ``key``.

        ``ttl`` is accepted for interface compatibility; files never expire.
        """
        path = self.file_path(key)
        temp_path = Path(f"{path}{TEMP_EXTENSION}")
        with self._exclusive(key):
            try:
                with temp_path.open("wb") as handle:
                    handle.write(value)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(temp_path, path)
            except OSError as exc:
                with suppress(OSError):
                    temp_path.unlink()
                raise StorageWriteError(f"Failed to write to '{path}'") from exc

            try:
                os.chmod(path, FILE_PERMISSIONS)
            except OSError as exc:
                log_warning(
                    self._logger,
                    "storage.file.chmod_failed",
                    path=str(path),
                    error=str(exc),
                )

    def exists(self, key: str) -> bool:
        return self.file_path(key).is_file()

    def delete(self, key: str) -> None:
        path = self.file_path(key)
        with self._exclusive(key):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to delete file: {path}") from exc

    def clear(self) -> None:
        for path in self._storage_dir.glob(f"*{FILE_EXTENSION}"):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to delete file: {path}") from exc
