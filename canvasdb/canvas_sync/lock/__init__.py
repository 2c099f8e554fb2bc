"""
Distributed locking for Canvas Sync.

This module provides:
- LockProvider protocol with Redis and in-memory backends
- LockHandle: idempotent, renewable release handle
- LockCoordinator: per-canvas acquisition with bounded exponential backoff

Invariants:
    - Every lock has a provider-side TTL
    - Release is token-checked
"""

from .base import (
    LockConnectionError,
    LockError,
    LockHandle,
    LockProvider,
    create_lock_provider,
)
from .coordinator import LockCoordinator
from .memory import InMemoryLockProvider
from .redis_lock import RedisLockProvider

__all__ = [
    "LockProvider",
    "LockHandle",
    "LockError",
    "LockConnectionError",
    "create_lock_provider",
    "LockCoordinator",
    "InMemoryLockProvider",
    "RedisLockProvider",
]
