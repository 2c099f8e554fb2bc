"""
Legacy bridge: materialize pre-versioning Yjs documents as snapshots.

Canvases created before versioned snapshots existed keep their data in a
single Yjs document (binary update) under canvases.legacy_state_key. The
bridge decodes that update and reads the root "nodes" and "edges" arrays.

Invariants:
    - Output is a pure function of the stored bytes
    - A decoded document yields version 1 with an empty transaction log
    - Absent, empty or undecodable documents yield a fresh unversioned state
    - The bridge never writes; persisting is the synchronizer's job
"""

from __future__ import annotations

import logging
from typing import Any

from pycrdt import Array, Doc

from ..storage.base import BlobStore
from ..state.types import CanvasState, init_empty_state, now_ms

logger = logging.getLogger(__name__)

LEGACY_VERSION = 1


def _read_array(doc: Doc, name: str) -> list[dict[str, Any]]:
    items = doc.get(name, type=Array).to_py() or []
    return [item for item in items if isinstance(item, dict)]


class LegacyBridge:
    """Reads legacy Yjs documents from the blob store.

    Example:
        >>> bridge = LegacyBridge(blob_store)
        >>> state = await bridge.materialize("state/canvas-1")
        >>> state.version
        1
    """

    def __init__(self, blob_store: BlobStore) -> None:
        self.blob_store = blob_store

    def decode(self, update: bytes) -> CanvasState:
        """Decode a Yjs update into a version 1 snapshot.

        Raises:
            Exception: Whatever pycrdt raises for malformed updates
        """
        doc = Doc()
        doc.apply_update(update)

        now = now_ms()
        return CanvasState(
            version=LEGACY_VERSION,
            nodes=_read_array(doc, "nodes"),
            edges=_read_array(doc, "edges"),
            transactions=[],
            created_at=now,
            updated_at=now,
        )

    async def materialize(self, legacy_key: str) -> CanvasState:
        """Load and decode the legacy document stored under legacy_key.

        Args:
            legacy_key: Blob key of the Yjs document

        Returns:
            Snapshot at version 1, or an unversioned empty state if the
            document cannot be read
        """
        if not legacy_key:
            return init_empty_state()

        raw = await self.blob_store.get(legacy_key)
        if not raw:
            logger.warning("Legacy canvas document is missing", extra={"legacy_key": legacy_key})
            return init_empty_state()

        try:
            state = self.decode(raw)
        except Exception as e:
            logger.warning(
                "Error decoding legacy canvas document",
                extra={"legacy_key": legacy_key, "error": str(e)},
            )
            return init_empty_state()

        logger.info(
            "Materialized legacy canvas document",
            extra={"legacy_key": legacy_key, "nodes": len(state.nodes), "edges": len(state.edges)},
        )
        return state
