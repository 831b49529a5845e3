import asyncio

import pytest

from conftest import make_response
from concept_graph.config import EngineConfig
from concept_graph.engine import ConceptGraphEngine
from concept_graph.persistence import FileSnapshotStore
from concept_graph.timers import LoopClock
from concept_graph.transport import ExtractionTransport

KAYAK_DIFF = {"ops": [
    {"type": "add_node", "label": "kayaking", "salience": 7},
    {"type": "add_edge", "sourceLabel": "kayaking", "targetLabel": "weekend trip", "relation": "part_of"},
]}


def completion_for(request, payload, response_id="resp_oob_1"):
    metadata = request["response"]["metadata"]
    return make_response(
        payload,
        metadata["correlationId"],
        response_id=response_id,
        workspace_key=metadata.get("workspaceKey"),
    )


@pytest.fixture
def requests():
    return []


@pytest.fixture
def engine(clock, requests):
    engine = ConceptGraphEngine(requests.append, clock=clock)
    engine.start()
    yield engine
    engine.dispose()


def test_conversation_to_graph(engine, clock, requests):
    engine.update_transcript("item_1", "user", "We're going kayaking", is_final=False)
    engine.update_transcript("item_1", "user", "We're going kayaking on our weekend trip")
    clock.advance(800)

    assert len(requests) == 1
    assert "user: We're going kayaking on our weekend trip" in requests[0]["response"]["instructions"]

    assert engine.handle_response_done(completion_for(requests[0], KAYAK_DIFF))
    graph = engine.graph
    assert list(graph["nodes"]) == ["kayaking"]
    assert graph["display_salience"] == {"kayaking": 1}
    assert list(graph["edges"]) == [("kayaking", "weekend trip", "part_of")]
    assert "weekend trip" not in graph["nodes"]
    assert not engine.coordinator.in_flight


def test_partial_transcript_does_not_schedule(engine, clock, requests):
    assert not engine.update_transcript("item_1", "user", "We're", is_final=False)
    clock.advance(2000)
    assert requests == []


def test_agent_turns_schedule_but_extraction_turns_do_not(engine, clock, requests):
    assert engine.handle_response_done({"id": "resp_chat_1", "metadata": {}})
    clock.advance(800)
    assert len(requests) == 1

    engine.handle_response_done(completion_for(requests[0], KAYAK_DIFF))
    clock.advance(2000)
    assert len(requests) == 1


def test_burst_then_supersession(engine, clock, requests):
    engine.update_transcript("item_1", "user", "kayaking")
    clock.advance(800)
    engine.update_transcript("item_2", "assistant", "sounds fun")
    clock.advance(800)
    assert len(requests) == 2

    stale = completion_for(requests[0], KAYAK_DIFF, response_id="r1")
    fresh = completion_for(requests[1], {"ops": [{"type": "add_node", "label": "fun"}]}, response_id="r2")
    assert engine.handle_response_done(fresh)
    assert not engine.handle_response_done(stale)
    assert list(engine.graph["nodes"]) == ["fun"]
    assert [e["type"] for e in engine.recent_events()][-2:] == ["applied", "discard_stale"]


def test_error_releases_guard(engine, requests):
    engine.analyze_now()
    metadata = requests[0]["response"]["metadata"]
    assert engine.handle_response_error({"response": {"metadata": metadata}, "error": {"message": "rate limited"}})
    assert not engine.coordinator.in_flight


def test_milestones(clock, requests):
    milestones = []
    engine = ConceptGraphEngine(
        requests.append,
        clock=clock,
        config=EngineConfig(milestone_every=2),
        on_milestone=lambda count, graph: milestones.append(count),
    )
    for i in range(4):
        engine.analyze_now()
        engine.handle_response_done(completion_for(requests[-1], {"ops": []}, response_id=f"r{i}"))
    assert milestones == [2, 4]


@pytest.mark.asyncio
async def test_workspace_activation_loads_and_resets(tmp_path, clock, requests):
    store = FileSnapshotStore(tmp_path)
    first = ConceptGraphEngine(requests.append, snapshot_store=store, clock=clock)
    await first.activate_workspace("trip")
    first.analyze_now()
    first.handle_response_done(completion_for(requests[-1], KAYAK_DIFF))
    assert (await first.save()).size > 0

    second = ConceptGraphEngine(requests.append, snapshot_store=store, clock=clock)
    assert await second.activate_workspace("trip")
    assert second.graph["nodes"] == first.graph["nodes"]
    assert second.graph["edges"] == first.graph["edges"]

    assert not await second.activate_workspace("empty")
    assert second.graph["nodes"] == {}
    assert second.coordinator.workspace_key == "empty"


@pytest.mark.asyncio
async def test_completion_for_previous_workspace_is_ignored(clock, requests):
    engine = ConceptGraphEngine(requests.append, clock=clock)
    await engine.activate_workspace("trip")
    engine.analyze_now()
    request = requests[-1]
    await engine.activate_workspace("work")
    assert not engine.handle_response_done(completion_for(request, KAYAK_DIFF))
    assert engine.graph["nodes"] == {}


@pytest.mark.asyncio
async def test_save_without_workspace_is_noop(tmp_path, clock, requests):
    engine = ConceptGraphEngine(requests.append, snapshot_store=FileSnapshotStore(tmp_path), clock=clock)
    assert await engine.save() is None


@pytest.mark.asyncio
async def test_autosave_after_applied_diff(tmp_path, clock, requests):
    store = FileSnapshotStore(tmp_path)
    engine = ConceptGraphEngine(
        requests.append, snapshot_store=store, clock=clock, config=EngineConfig(autosave=True),
    )
    await engine.activate_workspace("trip")
    engine.analyze_now()
    engine.handle_response_done(completion_for(requests[-1], KAYAK_DIFF))

    for _ in range(100):
        if store.path_for("trip").exists():
            break
        await asyncio.sleep(0.01)

    saved = await store.load("trip")
    assert [n["label"] for n in saved["nodes"]] == ["kayaking"]


@pytest.mark.asyncio
async def test_switching_workspace_finishes_pending_autosave_first(tmp_path, clock, requests):
    store = FileSnapshotStore(tmp_path)
    engine = ConceptGraphEngine(
        requests.append, snapshot_store=store, clock=clock, config=EngineConfig(autosave=True),
    )
    await engine.activate_workspace("trip")
    engine.analyze_now()
    engine.handle_response_done(completion_for(requests[-1], KAYAK_DIFF))

    assert not await engine.activate_workspace("home")

    saved = await store.load("trip")
    assert [n["label"] for n in saved["nodes"]] == ["kayaking"]
    assert await store.load("home") is None
    assert engine.graph["nodes"] == {}


@pytest.mark.asyncio
async def test_aclose_waits_for_autosave(tmp_path, clock, requests):
    store = FileSnapshotStore(tmp_path)
    engine = ConceptGraphEngine(
        requests.append, snapshot_store=store, clock=clock, config=EngineConfig(autosave=True),
    )
    await engine.activate_workspace("trip")
    engine.analyze_now()
    engine.handle_response_done(completion_for(requests[-1], KAYAK_DIFF))

    await engine.aclose()

    assert store.path_for("trip").exists()
    assert clock.pending == 0


@pytest.mark.asyncio
async def test_extraction_transport_end_to_end():
    async def extract(instructions: str):
        assert "kayaking" in instructions
        return KAYAK_DIFF

    holder = {}
    transport = ExtractionTransport(
        extract,
        on_completion=lambda response: holder["engine"].handle_response_done(response),
        on_error=lambda event: holder["engine"].handle_response_error(event),
    )
    engine = ConceptGraphEngine(transport.submit, clock=LoopClock(), config=EngineConfig(debounce_ms=10))
    holder["engine"] = engine
    engine.start()

    engine.update_transcript("item_1", "user", "Let's go kayaking")
    for _ in range(100):
        if "kayaking" in engine.graph["nodes"]:
            break
        await asyncio.sleep(0.01)

    assert "kayaking" in engine.graph["nodes"]
    assert not engine.coordinator.in_flight
    engine.dispose()
    await transport.aclose()


@pytest.mark.asyncio
async def test_extraction_transport_reports_failures():
    async def extract(instructions: str):
        raise TimeoutError("model unavailable")

    holder = {}
    transport = ExtractionTransport(
        extract,
        on_completion=lambda response: holder["engine"].handle_response_done(response),
        on_error=lambda event: holder["engine"].handle_response_error(event),
    )
    engine = ConceptGraphEngine(transport.submit, clock=LoopClock())
    holder["engine"] = engine

    engine.analyze_now()
    assert engine.coordinator.in_flight
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert not engine.coordinator.in_flight
    assert engine.recent_events()[-1]["type"] == "inflight_reset_error"
    engine.dispose()
    await transport.aclose()
