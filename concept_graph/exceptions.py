"""Custom exceptions for concept graph operations."""


class ConceptGraphError(Exception):
    """Base exception for concept graph operations."""
    pass


class WorkspaceKeyError(ConceptGraphError):
    """Raised when a workspace key cannot be used as a storage key."""
    def __init__(self, workspace_key: str):
        self.workspace_key = workspace_key
        super().__init__(f"Invalid workspace key: {workspace_key!r}")


class InvalidSnapshotError(ConceptGraphError):
    """Raised when a snapshot document is structurally unusable."""
    def __init__(self, workspace_key: str, reason: str):
        self.workspace_key = workspace_key
        self.reason = reason
        super().__init__(f"Invalid snapshot for '{workspace_key}': {reason}")


class SnapshotStoreError(ConceptGraphError):
    """Raised when a snapshot cannot be read from or written to its store."""
    def __init__(self, workspace_key: str, message: str):
        self.workspace_key = workspace_key
        super().__init__(f"Snapshot store error for '{workspace_key}': {message}")
