"""
Canvas state types.

These types describe the snapshot payload stored in the blob store and the
transactions clients submit. Nodes and edges are opaque JSON objects; the
only field this layer relies on is their "id".

Wire format (camelCase JSON, shared with clients):
    {
        "version": 3,
        "nodes": [{"id": "n1", ...}],
        "edges": [{"id": "e1", "source": "n1", "target": "n2", ...}],
        "transactions": [
            {
                "txId": "tx-1",
                "createdAt": 1730000000000,
                "syncedAt": 1730000000123,
                "nodeDiffs": [{"type": "add", "id": "n1", "to": {...}}],
                "edgeDiffs": []
            }
        ],
        "history": [{"version": 2, "timestamp": 1730000000000, "hash": "sha256:..."}],
        "createdAt": 1730000000000,
        "updatedAt": 1730000000123
    }

Invariants:
    - Each diff variant carries exactly the payload it needs
    - Unknown diff types are rejected at parse time
    - Serialization is deterministic (sorted keys) so content hashes are stable

How to change safely:
    - Add optional fields with defaults; never rename wire keys
    - Old snapshots must keep parsing (missing keys default to empty)
"""

from __future__ import annotations

import copy
import hashlib
import json
import time
from dataclasses import dataclass, field
from typing import Any, Union

Entity = dict[str, Any]


def now_ms() -> int:
    """Current wall-clock time in Unix milliseconds."""
    return int(time.time() * 1000)


@dataclass
class AddDiff:
    """Insert an entity, replacing any entity with the same id."""

    id: str
    to: Entity

    def to_dict(self) -> dict[str, Any]:
        return {"type": "add", "id": self.id, "to": self.to}


@dataclass
class UpdateDiff:
    """Deep-merge a partial entity into the existing entity with this id.

    Attributes:
        id: Target entity id
        to: Fields to merge (nested objects merge, other values replace)
        from_: Previous field values, informational only
    """

    id: str
    to: Entity
    from_: Entity | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "update", "id": self.id, "to": self.to}
        if self.from_ is not None:
            data["from"] = self.from_
        return data


@dataclass
class DeleteDiff:
    """Remove the entity with this id.

    Attributes:
        id: Target entity id
        from_: Entity payload before deletion, informational only
    """

    id: str
    from_: Entity | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "delete", "id": self.id}
        if self.from_ is not None:
            data["from"] = self.from_
        return data


Diff = Union[AddDiff, UpdateDiff, DeleteDiff]


def diff_from_dict(data: dict[str, Any]) -> Diff:
    """Parse a wire diff into its variant.

    Args:
        data: Diff dictionary with a "type" tag

    Returns:
        AddDiff, UpdateDiff or DeleteDiff

    Raises:
        ValueError: If the tag is unknown or the variant's payload is missing
    """
    diff_type = data.get("type")

    if diff_type == "add":
        to = data.get("to")
        if not isinstance(to, dict):
            raise ValueError("add diff requires a 'to' entity")
        entity_id = data.get("id") or to.get("id")
        if not entity_id:
            raise ValueError("add diff requires an id")
        if "id" not in to:
            to = {**to, "id": entity_id}
        return AddDiff(id=entity_id, to=to)

    if diff_type == "update":
        if not data.get("id"):
            raise ValueError("update diff requires an id")
        to = data.get("to")
        if not isinstance(to, dict):
            raise ValueError("update diff requires a 'to' delta")
        return UpdateDiff(id=data["id"], to=to, from_=data.get("from"))

    if diff_type == "delete":
        entity_id = data.get("id") or (data.get("from") or {}).get("id")
        if not entity_id:
            raise ValueError("delete diff requires an id")
        return DeleteDiff(id=entity_id, from_=data.get("from"))

    raise ValueError(f"Unknown diff type: {diff_type!r}")


@dataclass
class Transaction:
    """A client-submitted batch of node and edge diffs.

    Attributes:
        tx_id: Client-generated unique identifier
        created_at: Client creation time (Unix ms)
        node_diffs: Diffs against the node collection, applied in order
        edge_diffs: Diffs against the edge collection, applied in order
        synced_at: Server commit time (Unix ms), None until committed
    """

    tx_id: str
    created_at: int
    node_diffs: list[Diff] = field(default_factory=list)
    edge_diffs: list[Diff] = field(default_factory=list)
    synced_at: int | None = None

    def touched_ids(self) -> set[str]:
        """Ids of every node and edge this transaction modifies."""
        return {d.id for d in self.node_diffs} | {d.id for d in self.edge_diffs}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "txId": self.tx_id,
            "createdAt": self.created_at,
            "nodeDiffs": [d.to_dict() for d in self.node_diffs],
            "edgeDiffs": [d.to_dict() for d in self.edge_diffs],
        }
        if self.synced_at is not None:
            data["syncedAt"] = self.synced_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        """Create from dictionary representation.

        Raises:
            ValueError: If txId or createdAt is missing, or a diff is invalid
        """
        missing = [f for f in ("txId", "createdAt") if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        return cls(
            tx_id=data["txId"],
            created_at=int(data["createdAt"]),
            node_diffs=[diff_from_dict(d) for d in data.get("nodeDiffs") or []],
            edge_diffs=[diff_from_dict(d) for d in data.get("edgeDiffs") or []],
            synced_at=data.get("syncedAt"),
        )


@dataclass
class HistoryEntry:
    """A superseded version recorded when a snapshot is compacted."""

    version: int | None
    timestamp: int
    hash: str

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "timestamp": self.timestamp, "hash": self.hash}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            version=data.get("version"),
            timestamp=int(data.get("timestamp", 0)),
            hash=data.get("hash", ""),
        )


@dataclass
class CanvasData:
    """Renderable node and edge collections of a canvas."""

    nodes: list[Entity] = field(default_factory=list)
    edges: list[Entity] = field(default_factory=list)


@dataclass
class CanvasState:
    """A complete snapshot of a canvas at one version.

    Attributes:
        version: Catalog version; None until the state is first saved
        nodes: Node entities, in insertion order
        edges: Edge entities, in insertion order
        transactions: Append log of transactions since the base snapshot
        history: Versions superseded by compaction
        created_at: Snapshot creation time (Unix ms)
        updated_at: Last modification time (Unix ms)
    """

    version: int | None = None
    nodes: list[Entity] = field(default_factory=list)
    edges: list[Entity] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "nodes": self.nodes,
            "edges": self.edges,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "history": [h.to_dict() for h in self.history],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasState:
        now = now_ms()
        return cls(
            version=data.get("version"),
            nodes=list(data.get("nodes") or []),
            edges=list(data.get("edges") or []),
            transactions=[Transaction.from_dict(tx) for tx in data.get("transactions") or []],
            history=[HistoryEntry.from_dict(h) for h in data.get("history") or []],
            created_at=data.get("createdAt", now),
            updated_at=data.get("updatedAt", now),
        )

    def to_json(self) -> bytes:
        """Serialize deterministically for storage."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> CanvasState:
        return cls.from_dict(json.loads(raw.decode("utf-8")))

    def copy(self) -> CanvasState:
        return copy.deepcopy(self)

    def data(self) -> CanvasData:
        return CanvasData(nodes=copy.deepcopy(self.nodes), edges=copy.deepcopy(self.edges))


def init_empty_state() -> CanvasState:
    """Create a fresh, unversioned, empty canvas state."""
    return CanvasState()


def state_checksum(state: CanvasState) -> str:
    """Compute the SHA-256 content hash of a serialized state."""
    return f"sha256:{hashlib.sha256(state.to_json()).hexdigest()}"
