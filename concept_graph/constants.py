"""Constants for concept graph synchronization."""

# Extraction channel
CHANNEL = "concept-graph"

# Scheduling
DEBOUNCE_MS = 800
INFLIGHT_TIMEOUT_MS = 6000
MAX_CONTEXT_TURNS = 8

# Salience
DEFAULT_SALIENCE = 5
DISPLAY_SALIENCE_MIN = 1
DISPLAY_SALIENCE_MAX = 10

# Snapshots
SCHEMA_VERSION = 1
NODE_ID_PREFIX = "n_"
EDGE_ID_PREFIX = "e_"

# Diagnostics
EVENT_LOG_SIZE = 200
MILESTONE_EVERY = 5  # Notify every N applied diffs

# Op types
OP_TYPES = ("add_node", "update_node", "add_edge", "remove_edge")
