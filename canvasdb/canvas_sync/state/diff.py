"""
Diff application for canvas states.

Applies transaction diffs to in-memory node/edge collections. This is the
only place where canvas data is mutated; the synchronizer and the merge
logic both go through it.

Semantics (per collection, diff-array order):
    - add: insert; an existing entity with the same id is replaced in place
    - update: deep-merge "to" into the existing entity; no-op if id is absent
    - delete: remove by id; no-op if id is absent

Invariants:
    - Application never raises for missing or duplicate ids
    - Entity order is stable: replaced entities keep their position
    - Diff payloads are copied, never aliased into the state
    - nodes/edges equal the base snapshot with the log replayed in log order
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable

from .types import AddDiff, CanvasState, DeleteDiff, Diff, Entity, Transaction, UpdateDiff, now_ms

logger = logging.getLogger(__name__)


def deep_merge(target: Entity, patch: dict[str, Any]) -> Entity:
    """Merge patch into a copy of target.

    Nested dicts merge recursively; lists and scalars in the patch replace
    the target value.
    """
    merged = copy.deepcopy(target)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _index_of(entities: list[Entity], entity_id: str) -> int:
    for i, entity in enumerate(entities):
        if entity.get("id") == entity_id:
            return i
    return -1


def apply_diffs(entities: list[Entity], diffs: Iterable[Diff]) -> list[Entity]:
    """Apply diffs to an entity collection in place.

    Args:
        entities: Node or edge collection
        diffs: Diffs to apply, in order

    Returns:
        The same list, mutated
    """
    for diff in diffs:
        index = _index_of(entities, diff.id)

        if isinstance(diff, AddDiff):
            entity = copy.deepcopy(diff.to)
            entity["id"] = diff.id
            if index >= 0:
                entities[index] = entity
            else:
                entities.append(entity)

        elif isinstance(diff, UpdateDiff):
            if index >= 0:
                entities[index] = deep_merge(entities[index], diff.to)
                entities[index]["id"] = diff.id

        elif isinstance(diff, DeleteDiff):
            if index >= 0:
                del entities[index]

    return entities


def apply_transaction(state: CanvasState, tx: Transaction) -> None:
    """Apply one transaction's diffs to the state's nodes and edges."""
    apply_diffs(state.nodes, tx.node_diffs)
    apply_diffs(state.edges, tx.edge_diffs)


def update_canvas_state(
    state: CanvasState,
    transactions: list[Transaction],
    synced_at: int | None = None,
) -> CanvasState:
    """Apply a batch of transactions to a state and append them to its log.

    Transactions are appended in commit order, never reordered by their
    client created_at, so replaying the log reproduces nodes and edges.
    A transaction whose tx_id is already in the log is ignored.

    Args:
        state: State to mutate
        transactions: Transactions in submission order
        synced_at: Commit time stamped on transactions that lack one

    Returns:
        The mutated state
    """
    synced_at = synced_at or now_ms()
    seen = {tx.tx_id for tx in state.transactions}

    for tx in transactions:
        if tx.tx_id in seen:
            logger.debug("Skipped resubmitted transaction", extra={"tx_id": tx.tx_id})
            continue

        if tx.synced_at is None:
            tx.synced_at = synced_at

        apply_transaction(state, tx)
        seen.add(tx.tx_id)
        state.transactions.append(tx)

    state.updated_at = now_ms()
    return state
