"""Per-workspace engine wiring scheduler, coordinator, graph store and snapshots."""

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from .config import EngineConfig
from .coordinator import InFlightCoordinator
from .events import EngineEventLog
from .graph import ApplyEvent, DiffMilestoneNotifier, GraphStore
from .parsers import get_response_channel, get_response_id
from .scheduler import RequestScheduler
from .snapshot import SaveResult, SnapshotBridge, SnapshotStore
from .timers import Clock, LoopClock
from .types import Graph, empty_graph

logger = logging.getLogger(__name__)

TRANSCRIPT_BUFFER = 256


class ConceptGraphEngine:
    """
    Keeps a concept graph in sync with a live conversation.

    Feed it transcript turns and transport events; it debounces analysis,
    issues extraction requests through `submit`, applies accepted diffs and
    optionally persists snapshots.
    """

    def __init__(
        self,
        submit: Callable[[dict], Any],
        snapshot_store: SnapshotStore | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        on_milestone: Callable[[int, Graph], None] | None = None,
    ):
        self.config = config or EngineConfig()
        self.clock = clock or LoopClock()
        self.event_log = EngineEventLog(self.config.event_log_size)
        self.graph_store = GraphStore()
        self._turns: deque[dict] = deque(maxlen=TRANSCRIPT_BUFFER)
        self._workspace_key: str | None = None
        self._save_tasks: set[asyncio.Task] = set()

        self.coordinator = InFlightCoordinator(
            self.clock,
            submit,
            self.graph_store,
            turns=lambda: list(self._turns),
            channel=self.config.channel,
            timeout_ms=self.config.inflight_timeout_ms,
            max_context_turns=self.config.max_context_turns,
            strict_error_correlation=self.config.strict_error_correlation,
            event_log=self.event_log,
        )
        self.scheduler = RequestScheduler(
            self.clock,
            self.coordinator.analyze_now,
            debounce_ms=self.config.debounce_ms,
            channel=self.config.channel,
            event_log=self.event_log,
        )
        self.snapshots = SnapshotBridge(snapshot_store, self.graph_store) if snapshot_store else None

        if on_milestone is not None:
            self.graph_store.subscribe(DiffMilestoneNotifier(self.config.milestone_every, on_milestone))
        if self.config.autosave and self.snapshots is not None:
            self.graph_store.subscribe(self._autosave)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @property
    def graph(self) -> Graph:
        return self.graph_store.graph

    @property
    def workspace_key(self) -> str | None:
        return self._workspace_key

    def start(self):
        """Begin scheduling analyses from conversational activity."""
        self.scheduler.start()
        logger.info(f"Concept graph engine started (workspace: {self._workspace_key or 'none'})")

    def dispose(self):
        """Cancel all pending timers. Safe to call more than once."""
        self.scheduler.dispose()
        self.coordinator.dispose()
        logger.info("Concept graph engine disposed")

    async def aclose(self):
        """Dispose timers and wait for autosaves that are still running."""
        self.dispose()
        await self._drain_saves()

    async def activate_workspace(self, workspace_key: str | None) -> bool:
        """
        Switch to a workspace: reset the graph and hydrate it from the
        workspace's snapshot. Returns True if a snapshot was loaded.
        """
        await self._drain_saves()

        self._workspace_key = workspace_key
        self.coordinator.workspace_key = workspace_key
        self.graph_store.replace(empty_graph())
        self.event_log.record("workspace_activated", workspace_key=workspace_key)

        if workspace_key is None or self.snapshots is None:
            return False
        return await self.snapshots.load(workspace_key)

    # ========================================================================
    # Conversation input
    # ========================================================================

    def update_transcript(self, item_id: str, role: str, text: str, is_final: bool = True) -> bool:
        """
        Record a transcript turn (partial updates replace the item's text).
        Returns True if a final turn scheduled an analysis.
        """
        for turn in self._turns:
            if turn["item_id"] == item_id:
                turn["role"] = role
                turn["text"] = text
                break
        else:
            self._turns.append({"item_id": item_id, "type": "message", "role": role, "text": text})

        if not is_final:
            return False
        return self.scheduler.on_transcript_final(item_id)

    def handle_response_done(self, response: Mapping[str, Any]) -> bool:
        """
        Route a completed transport response: extraction responses go to the
        coordinator, anything else is a finished agent turn for the scheduler.
        """
        channel = get_response_channel(response)
        if channel == self.config.channel:
            return self.coordinator.handle_completion(response)
        return self.scheduler.on_agent_turn_done(get_response_id(response), channel)

    def handle_response_error(self, event: Mapping[str, Any]) -> bool:
        return self.coordinator.handle_error(event)

    def analyze_now(self) -> str:
        """Issue an extraction request immediately, bypassing the debounce."""
        return self.coordinator.analyze_now()

    # ========================================================================
    # Persistence
    # ========================================================================

    async def save(self) -> SaveResult | None:
        if self.snapshots is None or self._workspace_key is None:
            return None
        return await self.snapshots.save(self._workspace_key)

    def _autosave(self, event: ApplyEvent):
        if self._workspace_key is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; skipping autosave")
            return
        # Bound to the workspace the diff was applied in
        task = loop.create_task(self.snapshots.save(self._workspace_key))
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)

    async def _drain_saves(self):
        if not self._save_tasks:
            return
        logger.debug(f"Waiting for {len(self._save_tasks)} autosave(s) to finish")
        await asyncio.gather(*list(self._save_tasks), return_exceptions=True)

    def recent_events(self, limit: int | None = None) -> list[dict]:
        return [e.to_dict() for e in self.event_log.recent(limit)]
