"""
Error types for Canvas Sync.

This module defines the exceptions surfaced to callers of the synchronizer:
- CanvasSyncError: Base exception
- CanvasNotFoundError: Unknown, deleted or inaccessible canvas
- CanvasVersionNotFoundError: No catalog row for the requested version
- OperationTooFrequentError: Lock contention exceeded the retry budget
- CanvasConflictError: Local and remote states touch the same entity
- CanvasStateCorruptedError: Catalog points at a missing or unreadable blob
- CanvasAlreadyExistsError: Canvas id already registered
- CanvasVersionExistsError: Version number already committed
- LockLostError: Canvas lock expired or was taken over mid-commit

Invariants:
    - All errors inherit from CanvasSyncError
    - Errors carry a stable code for programmatic handling
    - Storage and transport errors are NOT wrapped here; they propagate as-is
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CanvasSyncError(Exception):
    """Base exception for all Canvas Sync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CANVAS_SYNC_ERROR"
        self.details = details or {}


class CanvasNotFoundError(CanvasSyncError):
    """Canvas does not exist, is deleted, or belongs to another owner."""

    def __init__(self, canvas_id: str) -> None:
        super().__init__(
            f"Canvas not found: {canvas_id}",
            code="CANVAS_NOT_FOUND",
            details={"canvas_id": canvas_id},
        )
        self.canvas_id = canvas_id


class CanvasVersionNotFoundError(CanvasSyncError):
    """No version resolves for the canvas.

    Raised when:
    - An explicit version has no catalog row
    - A commit is attempted on a canvas that has no head version yet
    """

    def __init__(self, canvas_id: str, version: Optional[int] = None) -> None:
        if version is None:
            message = f"Canvas {canvas_id} has no version"
        else:
            message = f"Canvas {canvas_id} has no version {version}"
        super().__init__(
            message,
            code="CANVAS_VERSION_NOT_FOUND",
            details={"canvas_id": canvas_id, "version": version},
        )
        self.canvas_id = canvas_id
        self.version = version


class OperationTooFrequentError(CanvasSyncError):
    """Lock for a canvas could not be acquired within the retry budget."""

    def __init__(self, canvas_id: str, attempts: int) -> None:
        super().__init__(
            f"Failed to get lock for canvas {canvas_id} after {attempts} attempts",
            code="OPERATION_TOO_FREQUENT",
            details={"canvas_id": canvas_id, "attempts": attempts},
        )
        self.canvas_id = canvas_id
        self.attempts = attempts


class CanvasConflictError(CanvasSyncError):
    """Two states modify the same entity, or are based on different versions.

    Attributes:
        conflict_type: "node", "edge" or "version"
        item_id: Conflicting entity id (or version for version conflicts)
        local_item: Local side of the conflict
        remote_item: Remote side of the conflict
    """

    def __init__(
        self,
        conflict_type: str,
        item_id: str,
        local_item: Any = None,
        remote_item: Any = None,
    ) -> None:
        super().__init__(
            f"Canvas conflict detected for {conflict_type} with id: {item_id}",
            code="CANVAS_CONFLICT",
            details={"conflict_type": conflict_type, "item_id": item_id},
        )
        self.conflict_type = conflict_type
        self.item_id = item_id
        self.local_item = local_item
        self.remote_item = remote_item


class CanvasStateCorruptedError(CanvasSyncError):
    """Catalog row exists but its snapshot blob is missing or unparseable."""

    def __init__(self, canvas_id: str, blob_key: str, reason: str) -> None:
        super().__init__(
            f"Canvas state {blob_key} is unreadable: {reason}",
            code="CANVAS_STATE_CORRUPTED",
            details={"canvas_id": canvas_id, "blob_key": blob_key},
        )
        self.canvas_id = canvas_id
        self.blob_key = blob_key


class CanvasAlreadyExistsError(CanvasSyncError):
    """A canvas with this id is already registered in the catalog."""

    def __init__(self, canvas_id: str) -> None:
        super().__init__(
            f"Canvas already exists: {canvas_id}",
            code="CANVAS_ALREADY_EXISTS",
            details={"canvas_id": canvas_id},
        )
        self.canvas_id = canvas_id


class CanvasVersionExistsError(CanvasSyncError):
    """A commit targeted a version number that already has a catalog row."""

    def __init__(self, canvas_id: str, version: int) -> None:
        super().__init__(
            f"Canvas {canvas_id} already has version {version}",
            code="CANVAS_VERSION_EXISTS",
            details={"canvas_id": canvas_id, "version": version},
        )
        self.canvas_id = canvas_id
        self.version = version


class LockLostError(CanvasSyncError):
    """The canvas lock is no longer owned by the committing handle.

    Raised before any blob write, so a writer whose lock expired never
    touches snapshots committed by the next holder.
    """

    def __init__(self, lock_key: str) -> None:
        super().__init__(
            f"Lock {lock_key} was lost before commit",
            code="LOCK_LOST",
            details={"lock_key": lock_key},
        )
        self.lock_key = lock_key
