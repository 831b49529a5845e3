import json

import httpx
import pytest

from concept_graph.exceptions import InvalidSnapshotError, SnapshotStoreError, WorkspaceKeyError
from concept_graph.persistence import FileSnapshotStore, HttpSnapshotStore

SNAPSHOT = {
    "schemaVersion": 1,
    "workspaceKey": "trip",
    "updatedAt": "2026-01-02T00:00:00+00:00",
    "nodes": [{"id": "n_kayaking", "label": "kayaking", "salience": 7}],
    "edges": [],
}


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path):
    store = FileSnapshotStore(tmp_path / "snapshots")
    assert await store.load("trip") is None

    result = await store.save("trip", SNAPSHOT)
    assert result.size == store.path_for("trip").stat().st_size
    assert result.etag

    assert await store.load("trip") == SNAPSHOT
    assert not store.path_for("trip").with_suffix(".tmp").exists()


@pytest.mark.asyncio
async def test_file_store_etag_tracks_content(tmp_path):
    store = FileSnapshotStore(tmp_path)
    first = await store.save("trip", SNAPSHOT)
    same = await store.save("trip", SNAPSHOT)
    changed = await store.save("trip", {**SNAPSHOT, "nodes": []})
    assert first.etag == same.etag
    assert first.etag != changed.etag


def test_file_store_keys_are_encoded(tmp_path):
    store = FileSnapshotStore(tmp_path)
    assert store.path_for("my trip").name == "my%20trip.json"


@pytest.mark.parametrize("key", ["", "  ", "../etc", "a/b", ".."])
def test_file_store_rejects_unsafe_keys(tmp_path, key):
    with pytest.raises(WorkspaceKeyError):
        FileSnapshotStore(tmp_path).path_for(key)


def test_file_store_corrupt_snapshot(tmp_path):
    store = FileSnapshotStore(tmp_path)
    store.path_for("trip").write_text("{not json")
    with pytest.raises(InvalidSnapshotError):
        store.load_sync("trip")

    store.path_for("trip").write_text("[1, 2]")
    with pytest.raises(InvalidSnapshotError):
        store.load_sync("trip")


def make_http_store(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSnapshotStore("http://snapshots.test/", client=client)


@pytest.mark.asyncio
async def test_http_store_load_and_save():
    seen = []

    def handler(request: httpx.Request):
        seen.append((request.method, request.url.raw_path.decode()))
        if request.method == "GET":
            return httpx.Response(200, json={"snapshot": SNAPSHOT})
        body = json.loads(request.content)
        assert body["snapshot"]["workspaceKey"] == "trip"
        return httpx.Response(200, json={"etag": "abc", "size": 42})

    store = make_http_store(handler)
    assert await store.load("my trip") == SNAPSHOT
    result = await store.save("trip", SNAPSHOT)
    assert (result.etag, result.size) == ("abc", 42)
    assert seen == [
        ("GET", "/api/workspaces/my%20trip/snapshot"),
        ("PUT", "/api/workspaces/trip/snapshot"),
    ]


@pytest.mark.asyncio
async def test_http_store_missing_snapshot():
    store = make_http_store(lambda request: httpx.Response(200, json={"snapshot": None}))
    assert await store.load("trip") is None


@pytest.mark.asyncio
async def test_http_store_errors_are_wrapped():
    store = make_http_store(lambda request: httpx.Response(500, json={"detail": "nope"}))
    with pytest.raises(SnapshotStoreError):
        await store.load("trip")
    with pytest.raises(SnapshotStoreError):
        await store.save("trip", SNAPSHOT)
