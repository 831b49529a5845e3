"""Utility functions for concept graph identifiers."""

from urllib.parse import quote, unquote

from .constants import NODE_ID_PREFIX, EDGE_ID_PREFIX
from .exceptions import WorkspaceKeyError
from .types import EdgeKey

# Characters encodeURIComponent leaves alone, so ids match those written by web clients
_URI_COMPONENT_SAFE = "!~*'()"


def encode_component(value: str | None) -> str:
    """Percent-encode a label fragment for use inside a surrogate id."""
    return quote(value or "", safe=_URI_COMPONENT_SAFE)


def edge_key(source_label: str, target_label: str, relation: str | None) -> EdgeKey:
    """Identity key for an edge. A missing relation is the empty string."""
    return (source_label, target_label, relation or "")


def edge_storage_key(source_label: str, target_label: str, relation: str | None) -> str:
    """Generate a readable string form of an edge key for logs and events."""
    return f"{source_label}->{target_label}#{relation or ''}"


def node_id_for(label: str) -> str:
    """Deterministic surrogate id for a node label."""
    return f"{NODE_ID_PREFIX}{encode_component(label)}"


def label_from_node_id(node_id: str) -> str | None:
    """Recover the label encoded in a surrogate node id, if it has the node prefix."""
    if not node_id.startswith(NODE_ID_PREFIX):
        return None
    return unquote(node_id[len(NODE_ID_PREFIX):])


def edge_id_for(source_label: str, target_label: str, relation: str | None, index: int) -> str:
    """Surrogate id for an edge at a given position in the serialized edge list."""
    return (
        f"{EDGE_ID_PREFIX}{encode_component(source_label)}"
        f"{encode_component(target_label)}{encode_component(relation)}{index}"
    )


def validate_workspace_key(workspace_key: str) -> str:
    """Validate a workspace key for use as a storage key. Raises WorkspaceKeyError if invalid."""
    if not isinstance(workspace_key, str) or not workspace_key.strip():
        raise WorkspaceKeyError(str(workspace_key))
    if "/" in workspace_key or "\\" in workspace_key or workspace_key in (".", ".."):
        raise WorkspaceKeyError(workspace_key)
    return workspace_key
