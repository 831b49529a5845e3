"""FastAPI HTTP server for concept graph snapshots."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, Field, ValidationError

from ..config import SnapshotServerConfig
from ..constants import SCHEMA_VERSION
from ..exceptions import ConceptGraphError, InvalidSnapshotError, WorkspaceKeyError
from ..persistence import FileSnapshotStore

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ============================================================================
# Request/Response Models
# ============================================================================

class SnapshotNodeModel(BaseModel):
    id: str
    label: str = Field(..., min_length=1)
    summary: str | None = None
    keywords: list[str] | None = None
    salience: int | float | None = None


class SnapshotEdgeModel(BaseModel):
    id: str
    sourceId: str
    targetId: str
    relation: str | None = None
    confidence: int | float | None = None


class SnapshotModel(BaseModel):
    """Persisted graph snapshot for one workspace."""
    schemaVersion: int = SCHEMA_VERSION
    workspaceKey: str
    updatedAt: str
    nodes: list[SnapshotNodeModel] = Field(default_factory=list)
    edges: list[SnapshotEdgeModel] = Field(default_factory=list)


class SnapshotPutRequest(BaseModel):
    """Request to store a snapshot."""
    snapshot: dict[str, Any] | None = Field(None, description="Snapshot document")


class SnapshotResponse(BaseModel):
    snapshot: SnapshotModel | None


class SaveResponse(BaseModel):
    """Response from storing a snapshot."""
    etag: str | None
    size: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    snapshot_dir: str


# ============================================================================
# App
# ============================================================================

def create_app(config: SnapshotServerConfig | None = None) -> FastAPI:
    config = config or SnapshotServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle."""
        logger.info("Starting concept graph snapshot server...")
        app.state.store = FileSnapshotStore(config.snapshot_dir)
        logger.info(f"Snapshots stored in {config.snapshot_dir}")

        yield

        logger.info("Server stopped")

    app = FastAPI(
        title="Concept Graph Snapshot Server",
        description="Stores versioned concept graph snapshots per workspace",
        version=VERSION,
        lifespan=lifespan,
    )

    def get_store(request: Request) -> FileSnapshotStore:
        store = getattr(request.app.state, "store", None)
        if store is None:
            raise HTTPException(status_code=500, detail="Store not initialized")
        return store

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "version": VERSION, "snapshot_dir": str(config.snapshot_dir)}

    @app.get("/api/workspaces/{workspace_key}/snapshot", response_model=SnapshotResponse)
    async def get_snapshot(workspace_key: str, request: Request, response: Response):
        """Return the workspace's snapshot, or null if none has been saved."""
        store = get_store(request)
        response.headers["Cache-Control"] = "no-store"

        try:
            snapshot = await store.load(workspace_key)
        except WorkspaceKeyError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InvalidSnapshotError as e:
            logger.error(f"Stored snapshot unreadable: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        except Exception as e:
            logger.error(f"Error loading snapshot: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        return {"snapshot": snapshot}

    @app.put("/api/workspaces/{workspace_key}/snapshot", response_model=SaveResponse)
    async def put_snapshot(workspace_key: str, body: SnapshotPutRequest, request: Request):
        """Store a snapshot. Last writer wins."""
        store = get_store(request)

        if not body.snapshot:
            raise HTTPException(status_code=400, detail="Missing snapshot")
        try:
            snapshot = SnapshotModel.model_validate({**body.snapshot, "workspaceKey": workspace_key})
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid snapshot: {e.error_count()} error(s)")

        try:
            result = await store.save(workspace_key, snapshot.model_dump(exclude_none=True))
        except WorkspaceKeyError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ConceptGraphError as e:
            logger.error(f"Error saving snapshot: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        except Exception as e:
            logger.error(f"Error saving snapshot: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        logger.info(f"Stored snapshot for '{workspace_key}': {len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges")
        return {"etag": result.etag, "size": result.size}

    return app
