"""HTTP server components for concept graph snapshots."""

from .app import create_app

__all__ = [
    "create_app",
]
