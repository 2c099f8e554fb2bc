"""
Base protocol and errors for the blob store abstraction.

The blob store holds canvas snapshots (and legacy Yjs documents) keyed by
string. It has no versioning logic of its own; version bookkeeping lives in
the catalog.

Invariants:
    - put() returns only after the object is durably stored
    - get() returns None for a missing key, never raises for absence
    - remove() of a missing key is not an error

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable
import logging

if TYPE_CHECKING:
    from ..config import SyncConfig

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """Base exception for blob store operations."""
    pass


class BlobStoreConnectionError(BlobStoreError):
    """Blob store is not connected or unreachable."""
    pass


@runtime_checkable
class BlobStore(Protocol):
    """Protocol for blob store backends.

    Example:
        >>> store = S3BlobStore(s3_config)
        >>> await store.connect()
        >>> await store.put("canvas-state/c1/1", b"{...}")
        >>> data = await store.get("canvas-state/c1/1")
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            BlobStoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        """Store an object, replacing any existing object under the key.

        Raises:
            BlobStoreConnectionError: If not connected
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Fetch an object.

        Returns:
            Object bytes, or None if the key does not exist
        """
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete an object if it exists."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_blob_store(config: "SyncConfig") -> BlobStore:
    """Factory function to create a blob store from configuration.

    Args:
        config: Canvas sync configuration

    Returns:
        Appropriate BlobStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import BlobBackend
    from .memory import InMemoryBlobStore
    from .s3 import S3BlobStore

    if config.blob_backend == BlobBackend.S3:
        return S3BlobStore(config.s3)
    elif config.blob_backend == BlobBackend.MEMORY:
        return InMemoryBlobStore()
    else:
        raise ValueError(f"Unsupported blob backend: {config.blob_backend}")
