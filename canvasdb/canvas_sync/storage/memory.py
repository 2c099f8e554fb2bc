"""
In-memory blob store implementation for testing.

This module provides a simple in-memory blob backend for:
- Unit tests
- Integration tests
- Local development without S3/MinIO

Invariants:
    - All data is lost on process exit
    - Stored bytes are copied, so callers cannot mutate stored objects

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with BlobStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from .base import BlobStoreConnectionError, BlobStoreError

logger = logging.getLogger(__name__)


class InMemoryBlobStore:
    """In-memory implementation of BlobStore for testing.

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> store = InMemoryBlobStore()
        >>> await store.connect()
        >>> await store.put("k", b"v")
        >>> await store.get("k")
        b'v'
    """

    def __init__(self) -> None:
        self._objects: Dict[str, bytes] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self._fail_puts = 0
        self.put_count = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryBlobStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._objects.clear()
        logger.debug("InMemoryBlobStore closed")

    async def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        if not self._connected:
            raise BlobStoreConnectionError("Not connected")

        async with self._lock:
            if self._fail_puts > 0:
                self._fail_puts -= 1
                raise BlobStoreError(f"Injected put failure for {key}")
            self._objects[key] = bytes(data)
            self.put_count += 1

    async def get(self, key: str) -> Optional[bytes]:
        if not self._connected:
            raise BlobStoreConnectionError("Not connected")

        async with self._lock:
            return self._objects.get(key)

    async def remove(self, key: str) -> None:
        if not self._connected:
            raise BlobStoreConnectionError("Not connected")

        async with self._lock:
            self._objects.pop(key, None)

    # Testing helpers

    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys with the given prefix, sorted."""
        return sorted(k for k in self._objects if k.startswith(prefix))

    def fail_next_puts(self, count: int = 1) -> None:
        """Make the next `count` put() calls raise BlobStoreError."""
        self._fail_puts = count
