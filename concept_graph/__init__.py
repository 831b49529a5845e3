"""Incremental concept graph synchronization."""

from .types import Node, Edge, Graph, Snapshot, empty_graph
from .constants import *
from .exceptions import *
from .config import EngineConfig, SnapshotServerConfig
from .diff import normalize_op, normalize_diff, validate, parse_op
from .graph import GraphStore, ApplyEvent, DiffMilestoneNotifier, apply_ops, compute_display_salience
from .timers import Clock, LoopClock, Timer
from .events import EngineEvent, EngineEventLog
from .scheduler import RequestScheduler
from .coordinator import InFlightCoordinator, CoordinatorState, Outcome, CorrelationRecord
from .snapshot import SnapshotBridge, SnapshotStore, SaveResult, hydrate, serialize
from .persistence import FileSnapshotStore, HttpSnapshotStore
from .transport import ExtractionTransport
from .engine import ConceptGraphEngine
from .utils import edge_key, node_id_for, edge_id_for

__version__ = "0.1.0"

__all__ = [
    # Types
    "Node",
    "Edge",
    "Graph",
    "Snapshot",
    "empty_graph",
    # Constants
    "CHANNEL",
    "DEBOUNCE_MS",
    "INFLIGHT_TIMEOUT_MS",
    "MAX_CONTEXT_TURNS",
    "DEFAULT_SALIENCE",
    "SCHEMA_VERSION",
    "OP_TYPES",
    # Exceptions
    "ConceptGraphError",
    "WorkspaceKeyError",
    "InvalidSnapshotError",
    "SnapshotStoreError",
    # Config
    "EngineConfig",
    "SnapshotServerConfig",
    # Diff ingress
    "normalize_op",
    "normalize_diff",
    "validate",
    "parse_op",
    # Graph
    "GraphStore",
    "ApplyEvent",
    "DiffMilestoneNotifier",
    "apply_ops",
    "compute_display_salience",
    # Scheduling
    "Clock",
    "LoopClock",
    "Timer",
    "EngineEvent",
    "EngineEventLog",
    "RequestScheduler",
    "InFlightCoordinator",
    "CoordinatorState",
    "Outcome",
    "CorrelationRecord",
    # Snapshots
    "SnapshotBridge",
    "SnapshotStore",
    "SaveResult",
    "hydrate",
    "serialize",
    "FileSnapshotStore",
    "HttpSnapshotStore",
    # Wiring
    "ExtractionTransport",
    "ConceptGraphEngine",
    # Utils
    "edge_key",
    "node_id_for",
    "edge_id_for",
]
