"""
Canvas state model for Canvas Sync.

This module contains:
- Snapshot, transaction and diff types (wire format shared with clients)
- Diff application (add / update / delete by entity id)
- Local/remote state merging with conflict detection

Invariants:
    - Diff application is idempotent for add and delete
    - State serialization is deterministic
"""

from .diff import apply_diffs, apply_transaction, deep_merge, update_canvas_state
from .merge import merge_canvas_states
from .types import (
    AddDiff,
    CanvasData,
    CanvasState,
    DeleteDiff,
    Diff,
    HistoryEntry,
    Transaction,
    UpdateDiff,
    diff_from_dict,
    init_empty_state,
    now_ms,
    state_checksum,
)

__all__ = [
    "AddDiff",
    "CanvasData",
    "CanvasState",
    "DeleteDiff",
    "Diff",
    "HistoryEntry",
    "Transaction",
    "UpdateDiff",
    "apply_diffs",
    "apply_transaction",
    "deep_merge",
    "diff_from_dict",
    "init_empty_state",
    "merge_canvas_states",
    "now_ms",
    "state_checksum",
    "update_canvas_state",
]
