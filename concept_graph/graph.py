"""Graph reducer, display salience and the live graph store."""

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .constants import DEFAULT_SALIENCE, DISPLAY_SALIENCE_MIN, DISPLAY_SALIENCE_MAX
from .diff import AddNodeOp, UpdateNodeOp, AddEdgeOp, RemoveEdgeOp, normalize_diff, parse_op
from .types import Graph, Node, empty_graph
from .utils import edge_key

logger = logging.getLogger(__name__)


# ============================================================================
# Reducer
# ============================================================================

def apply_ops(graph: Graph, ops: Iterable[Any]) -> Graph:
    """
    Apply a batch of ops and return the new graph. The input graph is not modified.

    - add_node / update_node upsert: provided fields are merged over the existing node
    - add_edge is a no-op when the edge key already exists
    - remove_edge is a no-op when the edge key is absent
    - unknown or malformed ops are skipped; the rest of the batch still applies
    """
    new_graph, _ = _reduce(graph, ops)
    return new_graph


def _reduce(graph: Graph, ops: Iterable[Any]) -> tuple[Graph, int]:
    nodes = dict(graph["nodes"])
    edges = dict(graph["edges"])
    applied = 0

    for raw in ops:
        op = parse_op(raw)
        if op is None:
            continue

        if isinstance(op, (AddNodeOp, UpdateNodeOp)):
            existing = nodes.get(op.label)
            base: Node = dict(existing) if existing else {"label": op.label}
            base.update(op.payload())
            nodes[op.label] = base

        elif isinstance(op, AddEdgeOp):
            key = edge_key(op.sourceLabel, op.targetLabel, op.relation)
            if key in edges:
                continue
            edges[key] = op.payload()

        elif isinstance(op, RemoveEdgeOp):
            key = edge_key(op.sourceLabel, op.targetLabel, op.relation)
            if edges.pop(key, None) is None:
                continue

        applied += 1

    return {
        "nodes": nodes,
        "edges": edges,
        "display_salience": compute_display_salience(nodes),
    }, applied


def raw_salience(node: Node) -> float:
    salience = node.get("salience")
    return DEFAULT_SALIENCE if salience is None else salience


def compute_display_salience(nodes: dict[str, Node]) -> dict[str, int]:
    """
    Min-max normalize node salience onto the integer range 1..10.

    The range is floored at 1, so a lone node (or equal saliences) maps to 1.
    """
    if not nodes:
        return {}

    values = {label: raw_salience(node) for label, node in nodes.items()}
    lo = min(values.values())
    hi = max(values.values())
    span = max(1, hi - lo)
    steps = DISPLAY_SALIENCE_MAX - DISPLAY_SALIENCE_MIN

    # floor(x + 0.5) rounds halves up, unlike round()
    return {
        label: DISPLAY_SALIENCE_MIN + math.floor((value - lo) / span * steps + 0.5)
        for label, value in values.items()
    }


# ============================================================================
# Live store
# ============================================================================

@dataclass(frozen=True)
class ApplyEvent:
    """Emitted to subscribers after each accepted diff."""
    ops_total: int
    ops_applied: int
    diff_count: int
    graph: Graph


Listener = Callable[[ApplyEvent], None]


class GraphStore:
    """Holds the live graph for one workspace. All mutation goes through apply_diff or replace."""

    def __init__(self, graph: Graph | None = None):
        self._graph: Graph = graph if graph is not None else empty_graph()
        self._diff_count = 0
        self._listeners: list[Listener] = []

    @property
    def graph(self) -> Graph:
        return self._graph

    @property
    def diff_count(self) -> int:
        return self._diff_count

    def apply_diff(self, diff: Any) -> bool:
        """
        Validate and apply a diff.
        Returns True if the diff was applied, False if it was rejected as malformed.
        """
        ops = normalize_diff(diff)
        if ops is None:
            logger.debug("Discarding malformed diff")
            return False

        self._graph, applied = _reduce(self._graph, ops)
        self._diff_count += 1

        logger.debug(
            f"Applied diff #{self._diff_count}: {applied}/{len(ops)} ops, "
            f"{len(self._graph['nodes'])} nodes, {len(self._graph['edges'])} edges"
        )

        self._notify(ApplyEvent(
            ops_total=len(ops),
            ops_applied=applied,
            diff_count=self._diff_count,
            graph=self._graph,
        ))
        return True

    def replace(self, graph: Graph):
        """Swap in a new graph (e.g. hydrated from a snapshot) and reset the diff counter."""
        self._graph = graph
        self._diff_count = 0

    def reset_diff_count(self):
        self._diff_count = 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an apply listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: ApplyEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Graph listener {listener!r} failed: {e}", exc_info=True)


class DiffMilestoneNotifier:
    """Apply listener that calls back every `every` applied diffs."""

    def __init__(self, every: int, on_milestone: Callable[[int, Graph], None]):
        if every < 1:
            raise ValueError("every must be >= 1")
        self.every = every
        self.on_milestone = on_milestone

    def __call__(self, event: ApplyEvent):
        if event.diff_count % self.every == 0:
            self.on_milestone(event.diff_count, event.graph)
