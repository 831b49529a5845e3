"""Type definitions for the concept graph and its snapshots."""

from typing import TypedDict, NotRequired


EdgeKey = tuple[str, str, str]


class Node(TypedDict):
    """Concept node, keyed by label."""
    label: str
    summary: NotRequired[str]
    keywords: NotRequired[list[str]]
    salience: NotRequired[float]


class Edge(TypedDict):
    """Relation between two labels. Either end may be missing from the node set."""
    sourceLabel: str
    targetLabel: str
    relation: NotRequired[str]
    confidence: NotRequired[float]


class Graph(TypedDict):
    """Complete live graph state."""
    nodes: dict[str, Node]
    edges: dict[EdgeKey, Edge]
    display_salience: dict[str, int]


class SnapshotNode(TypedDict):
    id: str
    label: str
    summary: NotRequired[str]
    keywords: NotRequired[list[str]]
    salience: NotRequired[float]


class SnapshotEdge(TypedDict):
    id: str
    sourceId: str
    targetId: str
    relation: NotRequired[str]
    confidence: NotRequired[float]


class Snapshot(TypedDict):
    """Persisted, versioned form of a graph for one workspace."""
    schemaVersion: int
    workspaceKey: str
    updatedAt: str
    nodes: list[SnapshotNode]
    edges: list[SnapshotEdge]


def empty_graph() -> Graph:
    return {"nodes": {}, "edges": {}, "display_salience": {}}
