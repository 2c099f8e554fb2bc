"""
Blob storage abstraction for Canvas Sync.

This module provides a pluggable blob backend interface supporting:
- S3 / MinIO (production)
- In-memory (for testing)

Invariants:
    - put() returns only after durable storage is confirmed
    - get() of a missing key returns None

How to change safely:
    - New backends must implement the BlobStore protocol
"""

from .base import (
    BlobStore,
    BlobStoreConnectionError,
    BlobStoreError,
    create_blob_store,
)
from .memory import InMemoryBlobStore
from .s3 import S3BlobStore

__all__ = [
    # Protocol and errors
    "BlobStore",
    "BlobStoreError",
    "BlobStoreConnectionError",
    # Factory
    "create_blob_store",
    # Implementations
    "InMemoryBlobStore",
    "S3BlobStore",
]
