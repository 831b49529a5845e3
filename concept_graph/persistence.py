"""Snapshot stores: local JSON files with atomic writes, and the HTTP snapshot API."""

import asyncio
import hashlib
import json
import logging
import os
from pathlib import Path
from urllib.parse import quote

import httpx

from .exceptions import InvalidSnapshotError, SnapshotStoreError
from .snapshot import SaveResult, SnapshotStore
from .types import Snapshot
from .utils import validate_workspace_key

logger = logging.getLogger(__name__)


def _etag(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:32]


class FileSnapshotStore(SnapshotStore):
    """One JSON document per workspace under a base directory."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def path_for(self, workspace_key: str) -> Path:
        validate_workspace_key(workspace_key)
        return self.base_dir / f"{quote(workspace_key, safe='')}.json"

    async def load(self, workspace_key: str) -> Snapshot | None:
        return await asyncio.to_thread(self.load_sync, workspace_key)

    async def save(self, workspace_key: str, snapshot: Snapshot) -> SaveResult:
        return await asyncio.to_thread(self.save_sync, workspace_key, snapshot)

    def load_sync(self, workspace_key: str) -> Snapshot | None:
        """
        Read a workspace snapshot from disk.
        Returns None if it does not exist.
        """
        path = self.path_for(workspace_key)
        if not path.exists():
            return None

        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidSnapshotError(workspace_key, f"not valid JSON ({e})") from e
        except OSError as e:
            raise SnapshotStoreError(workspace_key, str(e)) from e

        if not isinstance(data, dict):
            raise InvalidSnapshotError(workspace_key, "snapshot is not an object")

        logger.debug(f"Loaded snapshot from {path}")
        return data

    def save_sync(self, workspace_key: str, snapshot: Snapshot) -> SaveResult:
        """Write a workspace snapshot atomically (temp file, fsync, rename)."""
        path = self.path_for(workspace_key)
        temp_path = path.with_suffix(".tmp")
        data = json.dumps(snapshot, indent=2).encode("utf-8")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)

            with open(temp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

            temp_path.replace(path)

        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise SnapshotStoreError(workspace_key, str(e)) from e

        logger.debug(f"Saved snapshot to {path}")
        return SaveResult(etag=_etag(data), size=len(data))


class HttpSnapshotStore(SnapshotStore):
    """Client for the snapshot HTTP API served by concept_graph.server."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _url(self, workspace_key: str) -> str:
        validate_workspace_key(workspace_key)
        return f"{self.base_url}/api/workspaces/{quote(workspace_key, safe='')}/snapshot"

    async def load(self, workspace_key: str) -> Snapshot | None:
        try:
            response = await self.client.get(self._url(workspace_key))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SnapshotStoreError(workspace_key, str(e)) from e

        return response.json().get("snapshot")

    async def save(self, workspace_key: str, snapshot: Snapshot) -> SaveResult:
        try:
            response = await self.client.put(self._url(workspace_key), json={"snapshot": snapshot})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SnapshotStoreError(workspace_key, str(e)) from e

        body = response.json()
        return SaveResult(etag=body.get("etag"), size=int(body.get("size", 0)))

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
