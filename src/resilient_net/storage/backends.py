"""
Durable key-value backends.

Provides file-backed and in-memory stores holding opaque byte values.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from abc import ABC, abstractmethod
from pathlib import Path

from resilient_net.errors import StoreError


class KeyValueStore(ABC):
    """Abstract base class for durable key-value persistence."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Get a value.

        Args:
            key: Storage key

        Returns:
            Stored bytes or None

        Raises:
            StoreError: If the backend cannot be read
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Store a value, replacing any previous one.

        Args:
            key: Storage key
            value: Bytes to store

        Raises:
            StoreError: If the write fails
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value.

        Args:
            key: Storage key

        Returns:
            True if deleted, False if not found
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Close the backend (cleanup)."""
        pass


class MemoryStore(KeyValueStore):
    """In-memory store; contents do not survive the process.

    Example:
        >>> store = MemoryStore()
        >>> await store.set("queue", b"[]")
        >>> await store.get("queue")
        b'[]'
    """

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        path = self._key_to_path(key)

        async with self._lock:
            try:
                return await asyncio.to_thread(self._read, path)
            except OSError as e:
                raise StoreError(f"Failed to read '{key}': {e}", key=key, cause=e) from e

    async def set(self, key: str, value: bytes) -> None:
        path = self._key_to_path(key)

        async with self._lock:
            try:
                await asyncio.to_thread(self._write, path, value)
            except OSError as e:
                raise StoreError(f"Failed to write '{key}': {e}", key=key, cause=e) from e

    async def delete(self, key: str) -> bool:
        path = self._key_to_path(key)

        async with self._lock:
            try:
                return await asyncio.to_thread(self._remove, path)
            except OSError as e:
                raise StoreError(f"Failed to delete '{key}': {e}", key=key, cause=e) from e

    # Blocking helpers, run in a worker thread

    @staticmethod
    def _read(path: Path) -> bytes | None:
        if not path.exists():
            return None
        return path.read_bytes()

    def _write(self, path: Path, value: bytes) -> None:
        tmp = path.with_suffix(".tmp")
        try:
            with open(tmp, "wb") as f:
                f.write(value)
                if self._fsync:
                    f.flush()
                    os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    @staticmethod
    def _remove(path: Path) -> bool:
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        return True
