"""
Unit tests for local/remote state merging.

Tests cover:
- Version mismatch
- Identical logs
- Disjoint changes
- Conflicting changes on the same entity
"""

import pytest

from canvasdb.canvas_sync.errors import CanvasConflictError
from canvasdb.canvas_sync.state import (
    AddDiff,
    CanvasState,
    Transaction,
    UpdateDiff,
    merge_canvas_states,
    update_canvas_state,
)


def node_tx(tx_id, created_at, diff):
    return Transaction(tx_id=tx_id, created_at=created_at, node_diffs=[diff])


@pytest.fixture
def base():
    return CanvasState(version=2, nodes=[{"id": "n1", "title": "base"}])


class TestMergeCanvasStates:
    """Tests for merge_canvas_states."""

    def test_version_mismatch_conflicts(self, base):
        other = base.copy()
        other.version = 3

        with pytest.raises(CanvasConflictError) as exc_info:
            merge_canvas_states(base, other)

        assert exc_info.value.conflict_type == "version"
        assert exc_info.value.code == "CANVAS_CONFLICT"

    def test_same_log_returns_local_copy(self, base):
        update_canvas_state(base, [node_tx("tx-1", 10, AddDiff(id="n2", to={"id": "n2"}))])
        remote = base.copy()

        merged = merge_canvas_states(base, remote)

        assert merged == base
        assert merged is not base

    def test_disjoint_changes_merge(self, base):
        local = base.copy()
        remote = base.copy()
        update_canvas_state(local, [node_tx("tx-l", 20, AddDiff(id="n2", to={"id": "n2"}))])
        update_canvas_state(remote, [node_tx("tx-r", 10, AddDiff(id="n3", to={"id": "n3"}))])

        merged = merge_canvas_states(local, remote)

        assert {n["id"] for n in merged.nodes} == {"n1", "n2", "n3"}
        assert [tx.tx_id for tx in merged.transactions] == ["tx-l", "tx-r"]
        # Inputs untouched
        assert {n["id"] for n in local.nodes} == {"n1", "n2"}

    def test_same_entity_conflicts(self, base):
        local = base.copy()
        remote = base.copy()
        update_canvas_state(local, [node_tx("tx-l", 20, UpdateDiff(id="n1", to={"title": "L"}))])
        update_canvas_state(remote, [node_tx("tx-r", 10, UpdateDiff(id="n1", to={"title": "R"}))])

        with pytest.raises(CanvasConflictError) as exc_info:
            merge_canvas_states(local, remote)

        error = exc_info.value
        assert error.conflict_type == "node"
        assert error.item_id == "n1"
        assert error.local_item == {"title": "L"}
        assert error.remote_item == {"title": "R"}

    def test_edge_conflict_type(self, base):
        local = base.copy()
        remote = base.copy()
        local.transactions.append(
            Transaction(tx_id="tx-l", created_at=1, edge_diffs=[AddDiff(id="e1", to={"id": "e1"})])
        )
        remote.transactions.append(
            Transaction(tx_id="tx-r", created_at=2, edge_diffs=[AddDiff(id="e1", to={"id": "e1"})])
        )

        with pytest.raises(CanvasConflictError) as exc_info:
            merge_canvas_states(local, remote)

        assert exc_info.value.conflict_type == "edge"
