"""Durable key/value stores for identity records and unsent buffers.

The pipeline only needs get/set/remove of string blobs with an expiration
policy. Writes may fail (read-only home, disk quota); callers treat a failed
write as non-fatal and keep their in-memory state authoritative.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from beacon.errors import StorageError

# Cross-platform file locking
if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)


def _lock_file(file_handle) -> None:
    """Acquire exclusive lock on file (cross-platform)."""
    if sys.platform == "win32":
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_LOCK, 1)
    else:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX)


def _unlock_file(file_handle) -> None:
    """Release lock on file (cross-platform)."""
    if sys.platform == "win32":
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)


def _expires_at(expiration_days: int | None) -> datetime | None:
    if not expiration_days:
        return None
    return datetime.now(timezone.utc) + timedelta(days=expiration_days)


class KeyValueStore(Protocol):
    """Contract the identity state and event queue persist through."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> bool:
        ...

    def remove(self, key: str) -> bool:
        ...


class MemoryStore:
    """In-process store. Survives client re-creation, not process restarts."""

    def __init__(self, expiration_days: int | None = None) -> None:
        self.expiration_days = expiration_days
        self._data: dict[str, tuple[str, datetime | None]] = {}

    def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= datetime.now(timezone.utc):
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: str) -> bool:
        self._data[key] = (value, _expires_at(self.expiration_days))
        return True

    def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileStore:
    """
    One JSON file per key under ``root/<path>``.

    Each file holds ``{"value": ..., "expires_at": ...}``. Writes go through a
    locked temp file and an atomic rename so a crash never leaves a torn
    record behind.
    """

    def __init__(
        self,
        root: Path,
        path: str = "/",
        expiration_days: int | None = None,
        max_retries: int = 2,
    ) -> None:
        """
        Initialize FileStore.

        Args:
            root: Base directory for all records
            path: Scope below ``root`` (``"/"`` means ``root`` itself)
            expiration_days: Lifetime of written records (None or 0: no expiry)
            max_retries: Write attempts before a transient I/O error is reported
        """
        self.root = Path(root)
        self.path = path
        self.expiration_days = expiration_days
        self.max_retries = max_retries

    @property
    def directory(self) -> Path:
        scope = self.path.strip("/")
        return self.root / scope if scope else self.root

    def key_path(self, key: str) -> Path:
        """Get path to the record file for ``key``."""
        return self.directory / f"{quote(key, safe='')}.json"

    def _read_record(self, key: str) -> dict | None:
        record_path = self.key_path(key)
        if not record_path.exists():
            return None
        try:
            with open(record_path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Corrupted store record %s: %s", record_path, e)
            return None
        except OSError as e:
            raise StorageError(f"Failed to read store record {record_path}: {e}") from e
        return data if isinstance(data, dict) else None

    def get(self, key: str) -> str | None:
        """
        Read the value stored under ``key``.

        Returns:
            Stored string, or None if missing, expired, or corrupted

        Raises:
            StorageError: If the record exists but cannot be read
        """
        record = self._read_record(key)
        if record is None:
            return None

        expires_at = record.get("expires_at")
        if expires_at:
            try:
                expired = datetime.fromisoformat(str(expires_at)) <= datetime.now(timezone.utc)
            except ValueError:
                expired = True
            if expired:
                self.remove(key)
                return None

        value = record.get("value")
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> bool:
        """
        Write ``value`` under ``key`` (atomic write with file locking).

        Raises:
            StorageError: If the directory cannot be created, the file cannot
                be written after retries, or permissions deny the write
        """
        record_path = self.key_path(key)

        try:
            record_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create store directory {record_path.parent}. Error: {e}"
            ) from e

        expires_at = _expires_at(self.expiration_days)
        payload = json.dumps(
            {"value": value, "expires_at": expires_at.isoformat() if expires_at else None},
            separators=(",", ":"),
        )

        temp_path = record_path.with_suffix(".tmp")
        for attempt in range(self.max_retries):
            try:
                with open(temp_path, "w") as f:
                    _lock_file(f)
                    try:
                        f.write(payload)
                        f.flush()
                        os.fsync(f.fileno())
                    finally:
                        _unlock_file(f)
                temp_path.replace(record_path)
                break
            except PermissionError as e:
                # Not transient, no retry
                raise StorageError(
                    f"Cannot write store record {record_path}. "
                    f"Check file permissions and ownership. Error: {e}"
                ) from e
            except OSError as e:
                if attempt < self.max_retries - 1:
                    time.sleep(0.05)
                    continue
                raise StorageError(
                    f"Failed to write store record after {self.max_retries} attempts. "
                    f"Key: {key}. Last error: {e}"
                ) from e

        # Owner read/write only
        try:
            record_path.chmod(0o600)
        except OSError:
            logger.debug("Could not set permissions on %s (continuing)", record_path)

        return True

    def remove(self, key: str) -> bool:
        try:
            self.key_path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove store record for {key}: {e}") from e
        return True
