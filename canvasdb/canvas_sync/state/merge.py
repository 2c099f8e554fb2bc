"""
Merging of a client's local state with the server state.

Used when a client asks to cut a new version from its local copy. This is
conflict detection, not a merge algorithm: the two states must share a base
version, and their unshared transactions must touch disjoint entity ids.

Rules:
    1. Different versions -> version conflict
    2. Same version, same transaction ids -> local state as-is
    3. Same version, unshared transactions touching the same id -> conflict
    4. Same version, disjoint changes -> local state plus the remote-only
       transactions, applied to local data and appended after the local log
"""

from __future__ import annotations

from ..errors import CanvasConflictError
from .diff import apply_transaction
from .types import CanvasState, Transaction


def _first_payload(transactions: list[Transaction], entity_id: str) -> tuple[str, object]:
    for tx in transactions:
        for kind, diffs in (("node", tx.node_diffs), ("edge", tx.edge_diffs)):
            for diff in diffs:
                if diff.id == entity_id:
                    payload = getattr(diff, "to", None) or getattr(diff, "from_", None)
                    return kind, payload
    return "node", None


def merge_canvas_states(local: CanvasState, remote: CanvasState) -> CanvasState:
    """Merge remote-only transactions into the local state.

    Args:
        local: The client's state
        remote: The server's state at the same version

    Returns:
        A new merged state (inputs are not modified)

    Raises:
        CanvasConflictError: On version mismatch or overlapping changes
    """
    if local.version != remote.version:
        raise CanvasConflictError(
            "version",
            str(local.version),
            local_item=local.version,
            remote_item=remote.version,
        )

    local_ids = {tx.tx_id for tx in local.transactions}
    remote_ids = {tx.tx_id for tx in remote.transactions}
    merged = local.copy()

    if local_ids == remote_ids:
        return merged

    local_only = [tx for tx in local.transactions if tx.tx_id not in remote_ids]
    remote_only = [tx for tx in remote.transactions if tx.tx_id not in local_ids]

    local_touched: set[str] = set()
    for tx in local_only:
        local_touched |= tx.touched_ids()
    remote_touched: set[str] = set()
    for tx in remote_only:
        remote_touched |= tx.touched_ids()

    overlap = local_touched & remote_touched
    if overlap:
        conflicting_id = sorted(overlap)[0]
        conflict_type, local_item = _first_payload(local_only, conflicting_id)
        _, remote_item = _first_payload(remote_only, conflicting_id)
        raise CanvasConflictError(conflict_type, conflicting_id, local_item, remote_item)

    for tx in remote_only:
        tx_copy = Transaction.from_dict(tx.to_dict())
        apply_transaction(merged, tx_copy)
        merged.transactions.append(tx_copy)

    return merged
