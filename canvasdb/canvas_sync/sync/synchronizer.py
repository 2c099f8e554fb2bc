"""
State synchronizer for Canvas Sync.

The synchronizer is the single writer of canvas versions. Every mutation
follows the same commit path:

    resolve version -> lock canvas -> read snapshot -> apply diffs in memory
    -> confirm lock ownership -> write new snapshot blob
    -> insert version row + advance head -> unlock

Invariants:
    - Snapshots are immutable: every mutation writes a new version
    - Head moves only in the catalog commit, after the blob write succeeded
    - A blob is never written under a key that already has a version row
    - A writer whose lock expired stops before touching storage
    - The lock is released on every exit path, including a caller-supplied one
    - Reads take no lock; they see whatever head points at

How to change safely:
    - Keep blob writes before catalog commits (an orphan blob is harmless,
      a version row without its blob is corruption)
    - Never retry lookups; lock contention is the only retried condition
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Optional

from ..catalog import CanvasRecord, CanvasVersionRecord, VersionCatalog
from ..errors import (
    CanvasAlreadyExistsError,
    CanvasConflictError,
    CanvasNotFoundError,
    CanvasStateCorruptedError,
    CanvasVersionExistsError,
    CanvasVersionNotFoundError,
)
from ..legacy import LEGACY_VERSION, LegacyBridge
from ..lock import LockCoordinator, LockHandle
from ..state import (
    CanvasData,
    CanvasState,
    HistoryEntry,
    Transaction,
    init_empty_state,
    merge_canvas_states,
    now_ms,
    state_checksum,
    update_canvas_state,
)
from ..storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class VersionConflict:
    """Both sides of a rejected create_version call."""

    local_state: CanvasState
    remote_state: CanvasState


@dataclass
class CreateVersionResult:
    """Outcome of create_version.

    Exactly one of new_state and conflict is set.
    """

    canvas_id: str
    new_state: Optional[CanvasState] = None
    conflict: Optional[VersionConflict] = None


class CanvasSyncService:
    """Reads and commits versioned canvas snapshots.

    Example:
        >>> service = CanvasSyncService(catalog, blob_store, LockCoordinator(provider))
        >>> await service.create_canvas("c1", owner_id="u1")
        >>> version = await service.sync_state("c1", [tx])
        >>> state = await service.get_state("c1")
    """

    def __init__(
        self,
        catalog: VersionCatalog,
        blob_store: BlobStore,
        lock_coordinator: LockCoordinator,
        legacy_bridge: Optional[LegacyBridge] = None,
        state_prefix: str = "canvas-state",
    ) -> None:
        self.catalog = catalog
        self.blob_store = blob_store
        self.lock_coordinator = lock_coordinator
        self.legacy_bridge = legacy_bridge or LegacyBridge(blob_store)
        self.state_prefix = state_prefix

    def blob_key(self, canvas_id: str, version: int) -> str:
        return f"{self.state_prefix}/{canvas_id}/{version}"

    async def _require_canvas(self, canvas_id: str, owner_id: Optional[str] = None) -> CanvasRecord:
        canvas = await self.catalog.get_canvas(canvas_id, owner_id=owner_id)
        if canvas is None:
            raise CanvasNotFoundError(canvas_id)
        return canvas

    async def _load_version(self, canvas_id: str, version: int) -> CanvasState:
        record = await self.catalog.get_version(canvas_id, version)
        if record is None:
            raise CanvasVersionNotFoundError(canvas_id, version)

        raw = await self.blob_store.get(record.blob_key)
        if raw is None:
            raise CanvasStateCorruptedError(canvas_id, record.blob_key, "blob is missing")

        try:
            state = CanvasState.from_json(raw)
        except (ValueError, TypeError, KeyError) as e:
            raise CanvasStateCorruptedError(canvas_id, record.blob_key, str(e)) from e

        if state.version is None:
            state.version = record.version
        return state

    async def _migrate_legacy(self, canvas: CanvasRecord) -> CanvasState:
        state = await self.legacy_bridge.materialize(canvas.legacy_state_key or "")
        if state.version is None:
            return state

        key = await self.save_state(canvas.canvas_id, state)
        inserted = await self.catalog.commit_version(
            canvas.canvas_id,
            LEGACY_VERSION,
            key,
            content_hash=state_checksum(state),
            if_absent=True,
        )
        logger.info(
            "Migrated legacy canvas",
            extra={"canvas_id": canvas.canvas_id, "inserted": inserted},
        )
        return state

    async def get_state(
        self,
        canvas_id: str,
        version: Optional[int] = None,
        owner_id: Optional[str] = None,
    ) -> CanvasState:
        """Get the canvas state at a version (head by default).

        A canvas without a head is materialized from its legacy document,
        persisted as version 1, or returned as a fresh empty state when it
        has no legacy document either.

        Raises:
            CanvasNotFoundError: Canvas missing, deleted or not owned by owner_id
            CanvasVersionNotFoundError: Requested version has no catalog row
            CanvasStateCorruptedError: Catalog row points at an unreadable blob
        """
        canvas = await self._require_canvas(canvas_id, owner_id)

        if version is not None:
            return await self._load_version(canvas_id, version)

        if canvas.head_version is None:
            if canvas.legacy_state_key:
                return await self._migrate_legacy(canvas)
            return init_empty_state()

        return await self._load_version(canvas_id, canvas.head_version)

    async def get_canvas_data(
        self,
        canvas_id: str,
        version: Optional[int] = None,
        owner_id: Optional[str] = None,
    ) -> CanvasData:
        """Get the renderable nodes and edges of a canvas."""
        state = await self.get_state(canvas_id, version=version, owner_id=owner_id)
        return state.data()

    async def get_transactions(
        self,
        canvas_id: str,
        since: int,
        version: Optional[int] = None,
        owner_id: Optional[str] = None,
    ) -> list[Transaction]:
        """Get log transactions created strictly after `since` (Unix ms)."""
        state = await self.get_state(canvas_id, version=version, owner_id=owner_id)
        return [tx for tx in state.transactions if tx.created_at > since]

    async def save_state(self, canvas_id: str, state: CanvasState) -> str:
        """Write a snapshot blob. Catalog rows and head are left alone.

        Assigns the next catalog version to the state if it has none.

        Returns:
            Blob key the snapshot was written to
        """
        if state.version is None:
            state.version = await self.catalog.next_version(canvas_id)

        key = self.blob_key(canvas_id, state.version)
        await self.blob_store.put(key, state.to_json())
        logger.debug(
            "Saved canvas state",
            extra={"canvas_id": canvas_id, "version": state.version, "blob_key": key},
        )
        return key

    async def _guard_write(self, canvas_id: str, version: int, lock: LockHandle) -> None:
        """Refuse a snapshot write unless lock is still owned and version is unused."""
        await lock.ensure_held()
        if await self.catalog.get_version(canvas_id, version) is not None:
            raise CanvasVersionExistsError(canvas_id, version)

    async def _commit_new_version(self, canvas_id: str, state: CanvasState, lock: LockHandle) -> int:
        """Write state as the next version and advance head under lock."""
        state.version = await self.catalog.next_version(canvas_id)
        await self._guard_write(canvas_id, state.version, lock)
        key = await self.save_state(canvas_id, state)
        await self.catalog.commit_version(
            canvas_id, state.version, key, content_hash=state_checksum(state)
        )
        return state.version

    async def sync_state(
        self,
        canvas_id: str,
        transactions: list[Transaction],
        version: Optional[int] = None,
        lock: Optional[LockHandle] = None,
        owner_id: Optional[str] = None,
    ) -> Optional[int]:
        """Apply transactions on top of a version and commit the result.

        Args:
            canvas_id: Canvas identifier
            transactions: Transactions in submission order
            version: Base version (head by default)
            lock: An already acquired lock for this canvas; it is released
                when the call returns
            owner_id: If given, the canvas must belong to this owner

        Returns:
            The new head version, or None for an empty batch

        Raises:
            CanvasNotFoundError: Canvas does not resolve
            CanvasVersionNotFoundError: No base version
            OperationTooFrequentError: Lock contention exceeded the retry budget
            LockLostError: The lock expired or was taken over before commit
            CanvasVersionExistsError: Another writer committed the version first
        """
        try:
            canvas = await self._require_canvas(canvas_id, owner_id)
            base_version = version if version is not None else canvas.head_version
            if base_version is None:
                raise CanvasVersionNotFoundError(canvas_id)

            if not transactions:
                logger.warning("No transactions to apply", extra={"canvas_id": canvas_id})
                return None
        except Exception:
            if lock is not None:
                await lock.release()
            raise

        handle = lock or await self.lock_coordinator.lock_state(canvas_id)
        try:
            if version is None:
                # Head may have moved while waiting for the lock
                canvas = await self._require_canvas(canvas_id, owner_id)
                base_version = canvas.head_version or base_version
            state = await self._load_version(canvas_id, base_version)
            update_canvas_state(state, copy.deepcopy(transactions))
            new_version = await self._commit_new_version(canvas_id, state, handle)
        finally:
            await handle.release()

        logger.info(
            "Synced canvas state",
            extra={
                "canvas_id": canvas_id,
                "base_version": base_version,
                "version": new_version,
                "transactions": len(transactions),
            },
        )
        return new_version

    async def set_state(
        self,
        canvas_id: str,
        state: CanvasState,
        owner_id: Optional[str] = None,
    ) -> int:
        """Force the canvas to the given state, for conflict resolution.

        The state is written as a new version; existing snapshots are kept.

        Returns:
            The new head version
        """
        await self._require_canvas(canvas_id, owner_id)

        async with self.lock_coordinator.locked(canvas_id) as lock:
            new_state = state.copy()
            new_state.updated_at = now_ms()
            new_version = await self._commit_new_version(canvas_id, new_state, lock)

        logger.info(
            "Forced canvas state",
            extra={"canvas_id": canvas_id, "from_version": state.version, "version": new_version},
        )
        return new_version

    async def create_version(
        self,
        canvas_id: str,
        local_state: CanvasState,
        owner_id: Optional[str] = None,
    ) -> CreateVersionResult:
        """Cut a compacted version from a client's local state.

        The local state must be based on the current head. Its log is merged
        with the server log; overlapping edits are reported as a conflict
        rather than raised.

        Returns:
            CreateVersionResult with either new_state or conflict set
        """
        await self._require_canvas(canvas_id, owner_id)

        async with self.lock_coordinator.locked(canvas_id) as lock:
            server_state = await self.get_state(canvas_id)

            if local_state.version != server_state.version:
                logger.warning(
                    "Version conflict on create_version",
                    extra={
                        "canvas_id": canvas_id,
                        "local_version": local_state.version,
                        "remote_version": server_state.version,
                    },
                )
                return CreateVersionResult(
                    canvas_id=canvas_id,
                    conflict=VersionConflict(local_state=local_state, remote_state=server_state),
                )

            try:
                merged = merge_canvas_states(local_state, server_state)
            except CanvasConflictError as e:
                logger.warning(
                    "Merge conflict on create_version",
                    extra={"canvas_id": canvas_id, "conflict_type": e.conflict_type, "item_id": e.item_id},
                )
                return CreateVersionResult(
                    canvas_id=canvas_id,
                    conflict=VersionConflict(local_state=local_state, remote_state=server_state),
                )

            now = now_ms()
            for tx in merged.transactions:
                if tx.synced_at is None:
                    tx.synced_at = now

            last_created = max((tx.created_at for tx in merged.transactions), default=now)
            new_state = CanvasState(
                version=None,
                nodes=copy.deepcopy(merged.nodes),
                edges=copy.deepcopy(merged.edges),
                transactions=[],
                history=[
                    *merged.history,
                    HistoryEntry(
                        version=server_state.version,
                        timestamp=last_created,
                        hash=state_checksum(merged),
                    ),
                ],
                created_at=now,
                updated_at=now,
            )
            await self._commit_new_version(canvas_id, new_state, lock)

        logger.info(
            "Created canvas version",
            extra={
                "canvas_id": canvas_id,
                "from_version": server_state.version,
                "version": new_state.version,
            },
        )
        return CreateVersionResult(canvas_id=canvas_id, new_state=new_state)

    async def create_canvas(
        self,
        canvas_id: str,
        owner_id: str,
        state: Optional[CanvasState] = None,
        legacy_state_key: Optional[str] = None,
    ) -> CanvasRecord:
        """Register a canvas.

        Unless only a legacy document key is given, the canvas starts at
        version 1 with the given state (empty by default).

        Raises:
            CanvasAlreadyExistsError: If the canvas id is taken
        """
        async with self.lock_coordinator.locked(canvas_id) as lock:
            existing = await self.catalog.get_canvas(canvas_id, include_deleted=True)
            if existing is not None:
                raise CanvasAlreadyExistsError(canvas_id)

            if state is None and legacy_state_key:
                record = await self.catalog.create_canvas(
                    canvas_id, owner_id, legacy_state_key=legacy_state_key
                )
            else:
                initial = state.copy() if state is not None else init_empty_state()
                initial.version = 1
                await self._guard_write(canvas_id, initial.version, lock)
                key = await self.save_state(canvas_id, initial)
                record = await self.catalog.create_canvas(
                    canvas_id,
                    owner_id,
                    legacy_state_key=legacy_state_key,
                    initial_version=CanvasVersionRecord(
                        canvas_id=canvas_id,
                        version=initial.version,
                        blob_key=key,
                        content_hash=state_checksum(initial),
                        created_at=now_ms(),
                    ),
                )

        logger.info(
            "Created canvas",
            extra={"canvas_id": canvas_id, "owner_id": owner_id, "head_version": record.head_version},
        )
        return record

    async def duplicate_canvas(self, source_id: str, target_id: str, owner_id: str) -> CanvasRecord:
        """Create target_id from the head data of source_id, with an empty log."""
        source = await self.get_state(source_id)
        data = source.data()
        now = now_ms()
        state = CanvasState(nodes=data.nodes, edges=data.edges, created_at=now, updated_at=now)
        return await self.create_canvas(target_id, owner_id, state=state)

    async def delete_canvas(self, canvas_id: str) -> None:
        """Soft delete a canvas. Its versions stay in storage until purged."""
        if not await self.catalog.soft_delete(canvas_id):
            raise CanvasNotFoundError(canvas_id)
        logger.info("Deleted canvas", extra={"canvas_id": canvas_id})

    async def purge_canvas(self, canvas_id: str) -> list[str]:
        """Remove a canvas, its version rows and all its version blobs.

        Works on soft-deleted canvases. The legacy document is not removed.

        Returns:
            Blob keys that were removed
        """
        canvas = await self.catalog.get_canvas(canvas_id, include_deleted=True)
        if canvas is None:
            raise CanvasNotFoundError(canvas_id)

        async with self.lock_coordinator.locked(canvas_id) as lock:
            await lock.ensure_held()
            blob_keys = await self.catalog.purge(canvas_id)
            for key in blob_keys:
                await self.blob_store.remove(key)

        logger.info("Purged canvas", extra={"canvas_id": canvas_id, "blobs": len(blob_keys)})
        return blob_keys

    async def list_versions(self, canvas_id: str, owner_id: Optional[str] = None) -> list[CanvasVersionRecord]:
        await self._require_canvas(canvas_id, owner_id)
        return await self.catalog.list_versions(canvas_id)
