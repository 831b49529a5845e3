"""Snapshot serialization, hydration and the guarded load/save bridge."""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .constants import SCHEMA_VERSION
from .exceptions import InvalidSnapshotError
from .graph import GraphStore, compute_display_salience
from .types import Edge, Graph, Node, Snapshot, SnapshotEdge, SnapshotNode
from .utils import edge_id_for, edge_key, label_from_node_id, node_id_for

logger = logging.getLogger(__name__)

_NODE_FIELDS = ("summary", "keywords", "salience")
_EDGE_FIELDS = ("relation", "confidence")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _clean_field(name: str, value: Any) -> Any:
    """Return a usable copy of a stored field, or None if it has the wrong shape."""
    if name in ("salience", "confidence"):
        return value if _is_number(value) else None
    if name == "keywords":
        if isinstance(value, list) and all(isinstance(k, str) for k in value):
            return list(value)
        return None
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class SaveResult:
    etag: str | None
    size: int


class SnapshotStore(ABC):
    """Durable snapshot storage keyed by workspace."""

    @abstractmethod
    async def load(self, workspace_key: str) -> Snapshot | None:
        ...

    @abstractmethod
    async def save(self, workspace_key: str, snapshot: Snapshot) -> SaveResult:
        ...


# ============================================================================
# Serialization
# ============================================================================

def serialize(graph: Graph, workspace_key: str, now: datetime | None = None) -> Snapshot:
    """Convert the live graph into a persistable snapshot. Display salience is not persisted."""
    nodes: list[SnapshotNode] = []
    for label, node in graph["nodes"].items():
        entry: SnapshotNode = {"id": node_id_for(label), "label": label}
        for name in _NODE_FIELDS:
            value = node.get(name)
            if value is not None:
                entry[name] = list(value) if name == "keywords" else value
        nodes.append(entry)

    edges: list[SnapshotEdge] = []
    for index, edge in enumerate(graph["edges"].values()):
        source = edge["sourceLabel"]
        target = edge["targetLabel"]
        entry: SnapshotEdge = {
            "id": edge_id_for(source, target, edge.get("relation"), index),
            "sourceId": node_id_for(source),
            "targetId": node_id_for(target),
        }
        for name in _EDGE_FIELDS:
            value = edge.get(name)
            if value is not None:
                entry[name] = value
        edges.append(entry)

    updated_at = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "schemaVersion": SCHEMA_VERSION,
        "workspaceKey": workspace_key,
        "updatedAt": updated_at,
        "nodes": nodes,
        "edges": edges,
    }


def hydrate(snapshot: Mapping[str, Any]) -> Graph:
    """
    Rebuild a live graph from a snapshot.

    Edge endpoints are resolved through the snapshot's node ids; ids of
    dangling endpoints are decoded back to labels. Malformed entries are
    skipped. Raises InvalidSnapshotError if the document itself is unusable.
    """
    if not isinstance(snapshot, Mapping):
        raise InvalidSnapshotError("?", "snapshot is not an object")

    workspace_key = str(snapshot.get("workspaceKey", "?"))
    raw_nodes = snapshot.get("nodes", [])
    raw_edges = snapshot.get("edges", [])
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise InvalidSnapshotError(workspace_key, "nodes and edges must be lists")

    version = snapshot.get("schemaVersion")
    if isinstance(version, int) and version > SCHEMA_VERSION:
        logger.warning(f"Snapshot for '{workspace_key}' has newer schema {version}; loading known fields")

    nodes: dict[str, Node] = {}
    labels_by_id: dict[str, str] = {}
    for raw in raw_nodes:
        if not isinstance(raw, Mapping) or not isinstance(raw.get("label"), str) or not raw["label"]:
            logger.debug(f"Skipping malformed snapshot node: {raw!r}")
            continue
        label = raw["label"]
        node: Node = {"label": label}
        for name in _NODE_FIELDS:
            if raw.get(name) is None:
                continue
            value = _clean_field(name, raw[name])
            if value is None:
                logger.debug(f"Dropping malformed {name} of snapshot node '{label}': {raw[name]!r}")
                continue
            node[name] = value
        nodes[label] = node
        labels_by_id[str(raw.get("id") or node_id_for(label))] = label

    def resolve(node_id: Any) -> str | None:
        if not isinstance(node_id, str):
            return None
        return labels_by_id.get(node_id) or label_from_node_id(node_id)

    edges: dict[tuple[str, str, str], Edge] = {}
    for raw in raw_edges:
        if not isinstance(raw, Mapping):
            continue
        source = resolve(raw.get("sourceId"))
        target = resolve(raw.get("targetId"))
        if not source or not target:
            logger.debug(f"Skipping snapshot edge with unresolvable endpoints: {raw!r}")
            continue
        key = edge_key(source, target, _clean_field("relation", raw.get("relation")))
        if key in edges:
            continue
        edge: Edge = {"sourceLabel": source, "targetLabel": target}
        for name in _EDGE_FIELDS:
            value = _clean_field(name, raw.get(name))
            if value is not None:
                edge[name] = value
        edges[key] = edge

    return {
        "nodes": nodes,
        "edges": edges,
        "display_salience": compute_display_salience(nodes),
    }


# ============================================================================
# Bridge
# ============================================================================

class SnapshotBridge:
    """
    Moves graphs between a GraphStore and a SnapshotStore.

    Failures are logged and swallowed; callers get False/None. A save
    requested while another save for the same workspace is running is
    dropped, not queued.
    """

    def __init__(self, store: SnapshotStore, graph_store: GraphStore):
        self.store = store
        self.graph_store = graph_store
        self._saving: set[str] = set()

    def is_saving(self, workspace_key: str) -> bool:
        return workspace_key in self._saving

    async def load(self, workspace_key: str) -> bool:
        """Hydrate the graph store from the workspace's snapshot. Returns True if one was loaded."""
        try:
            snapshot = await self.store.load(workspace_key)
        except Exception as e:
            logger.error(f"Failed to load snapshot for '{workspace_key}': {e}")
            return False

        if snapshot is None:
            logger.info(f"No snapshot for '{workspace_key}'")
            return False

        try:
            graph = hydrate(snapshot)
        except InvalidSnapshotError as e:
            logger.error(str(e))
            return False
        except Exception as e:
            logger.error(f"Failed to hydrate snapshot for '{workspace_key}': {e}", exc_info=True)
            return False

        self.graph_store.replace(graph)
        logger.info(f"Loaded snapshot for '{workspace_key}': {len(graph['nodes'])} nodes, {len(graph['edges'])} edges")
        return True

    async def save(self, workspace_key: str) -> SaveResult | None:
        """Persist the current graph. Returns None if dropped or failed."""
        if workspace_key in self._saving:
            logger.debug(f"Save already in progress for '{workspace_key}'; dropping")
            return None

        self._saving.add(workspace_key)
        try:
            snapshot = serialize(self.graph_store.graph, workspace_key)
            result = await self.store.save(workspace_key, snapshot)
            logger.debug(f"Saved snapshot for '{workspace_key}' ({result.size} bytes)")
            return result
        except Exception as e:
            logger.error(f"Failed to save snapshot for '{workspace_key}': {e}")
            return None
        finally:
            self._saving.discard(workspace_key)
