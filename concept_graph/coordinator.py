"""In-flight tracking of extraction requests with supersession and timeout."""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .constants import CHANNEL, INFLIGHT_TIMEOUT_MS, MAX_CONTEXT_TURNS
from .events import EngineEventLog
from .extraction import build_extraction_request, conversation_window
from .graph import GraphStore
from .parsers import (
    get_correlation_id,
    get_response_channel,
    get_response_id,
    get_response_workspace,
    parse_response_json,
)
from .timers import Clock, Timer

logger = logging.getLogger(__name__)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    REQUEST_ISSUED = "request_issued"


class Outcome(str, Enum):
    """How the most recent request left the REQUEST_ISSUED state."""
    APPLIED = "applied"
    SUPERSEDED = "superseded"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


@dataclass(frozen=True)
class CorrelationRecord:
    correlation_id: str
    issued_at_ms: float


def _new_correlation_id() -> str:
    return str(uuid.uuid4())


class InFlightCoordinator:
    """
    Tracks the one "current" extraction request for a workspace.

    analyze_now() never blocks or queues: a new correlation id simply becomes
    current and completions for older ids are discarded when they arrive. The
    underlying transport call is not aborted. A timeout releases the in-flight
    flag if the current request never completes.
    """

    def __init__(
        self,
        clock: Clock,
        submit: Callable[[dict], Any],
        graph_store: GraphStore,
        turns: Callable[[], Iterable[Mapping[str, Any]]],
        workspace_key: str | None = None,
        *,
        channel: str = CHANNEL,
        timeout_ms: float = INFLIGHT_TIMEOUT_MS,
        max_context_turns: int = MAX_CONTEXT_TURNS,
        strict_error_correlation: bool = False,
        event_log: EngineEventLog | None = None,
        id_factory: Callable[[], str] = _new_correlation_id,
    ):
        self.clock = clock
        self.submit = submit
        self.graph_store = graph_store
        self.turns = turns
        self.workspace_key = workspace_key
        self.channel = channel
        self.timeout_ms = timeout_ms
        self.max_context_turns = max_context_turns
        self.strict_error_correlation = strict_error_correlation
        self.event_log = event_log if event_log is not None else EngineEventLog()
        self._new_id = id_factory

        self._timer = Timer(clock)
        self._current: CorrelationRecord | None = None
        self._in_flight = False
        self._last_outcome: Outcome | None = None
        self._last_processed_response_id: str | None = None
        self._last_applied_correlation_id: str | None = None
        self._pending_submits: set[asyncio.Future] = set()

    # ========================================================================
    # State
    # ========================================================================

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def state(self) -> CoordinatorState:
        return CoordinatorState.REQUEST_ISSUED if self._in_flight else CoordinatorState.IDLE

    @property
    def current(self) -> CorrelationRecord | None:
        return self._current

    @property
    def current_correlation_id(self) -> str | None:
        return self._current.correlation_id if self._current else None

    @property
    def last_outcome(self) -> Outcome | None:
        return self._last_outcome

    @property
    def last_applied_correlation_id(self) -> str | None:
        return self._last_applied_correlation_id

    # ========================================================================
    # Issue
    # ========================================================================

    def analyze_now(self) -> str:
        """Issue a new extraction request, superseding any outstanding one. Returns its correlation id."""
        correlation_id = self._new_id()
        window = conversation_window(self.turns(), self.max_context_turns)
        request = build_extraction_request(window, correlation_id, self.workspace_key, self.channel)

        if self._in_flight and self._current:
            self._last_outcome = Outcome.SUPERSEDED
            self.event_log.record(
                "supersede",
                prev_correlation_id=self._current.correlation_id,
                correlation_id=correlation_id,
            )
        else:
            self.event_log.record(
                "analyze_start",
                correlation_id=correlation_id,
                context_chars=sum(len(line) for line in window),
            )

        # Current before submit: a transport may deliver the completion synchronously
        self._current = CorrelationRecord(correlation_id, self.clock.now_ms())
        self._in_flight = True
        self._timer.arm(self.timeout_ms, lambda: self._on_timeout(correlation_id))

        try:
            result = self.submit(request)
        except Exception as e:
            logger.error(f"Failed to submit extraction request {correlation_id}: {e}")
            self.event_log.record("submit_failed", correlation_id=correlation_id, error=str(e))
        else:
            if inspect.isawaitable(result):
                self._track_submit(correlation_id, result)

        logger.debug(f"Issued extraction request {correlation_id} ({len(window)} turns)")
        return correlation_id

    def _track_submit(self, correlation_id: str, awaitable):
        future = asyncio.ensure_future(awaitable)
        self._pending_submits.add(future)

        def done(fut: asyncio.Future):
            self._pending_submits.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(f"Failed to submit extraction request {correlation_id}: {exc}")
                self.event_log.record("submit_failed", correlation_id=correlation_id, error=str(exc))

        future.add_done_callback(done)

    def _on_timeout(self, correlation_id: str):
        if self.current_correlation_id != correlation_id or not self._in_flight:
            return
        self._in_flight = False
        self._last_outcome = Outcome.TIMED_OUT
        self.event_log.record("inflight_reset_timeout", correlation_id=correlation_id)
        logger.warning(f"Extraction request {correlation_id} timed out after {self.timeout_ms}ms; guard reset")

    # ========================================================================
    # Completion / error
    # ========================================================================

    def handle_completion(self, response: Mapping[str, Any]) -> bool:
        """
        Handle a completed response. Returns True if a diff from it was applied.

        Responses from other channels or workspaces, superseded responses and
        redelivered responses are ignored. A response whose payload holds no
        valid diff still ends the in-flight request.
        """
        if get_response_channel(response) != self.channel:
            return False

        workspace = get_response_workspace(response)
        if self.workspace_key and workspace and workspace != self.workspace_key:
            self.event_log.record("ignore_workspace", workspace_key=workspace)
            return False

        correlation_id = get_correlation_id(response)
        current_id = self.current_correlation_id
        if correlation_id and current_id and correlation_id != current_id:
            self.event_log.record("discard_stale", correlation_id=correlation_id, current_correlation_id=current_id)
            logger.debug(f"Discarding completion for superseded request {correlation_id}")
            return False

        response_id = get_response_id(response)
        if response_id and response_id == self._last_processed_response_id:
            self.event_log.record("duplicate_response", response_id=response_id)
            return False
        if response_id:
            self._last_processed_response_id = response_id

        diff = parse_response_json(response)
        applied = diff is not None and self.graph_store.apply_diff(diff)

        self._in_flight = False
        self._timer.cancel()

        if applied:
            self._last_outcome = Outcome.APPLIED
            if correlation_id:
                self._last_applied_correlation_id = correlation_id
            self.event_log.record(
                "applied",
                ops=len(diff["ops"]),
                response_id=response_id,
                correlation_id=correlation_id,
            )
        else:
            self.event_log.record("discard_malformed", response_id=response_id, correlation_id=correlation_id)
            logger.info(f"Response {response_id} carried no usable diff")

        return applied

    def handle_error(self, event: Mapping[str, Any]) -> bool:
        """
        Handle a failed extraction. Returns True if it ended the current request.

        An error without a correlation id counts as matching unless
        strict_error_correlation is set.
        """
        response = event.get("response") if isinstance(event.get("response"), Mapping) else event
        if get_response_channel(response) != self.channel:
            return False

        correlation_id = get_correlation_id(response)
        if correlation_id is None:
            matches = not self.strict_error_correlation
        else:
            matches = correlation_id == self.current_correlation_id

        error = event.get("error")
        message = error.get("message") if isinstance(error, Mapping) else error

        if not matches:
            self.event_log.record("ignore_error", correlation_id=correlation_id, error=message)
            logger.debug(f"Ignoring error for non-current request {correlation_id}")
            return False

        self._in_flight = False
        self._timer.cancel()
        self._last_outcome = Outcome.ERRORED
        self.event_log.record("inflight_reset_error", correlation_id=correlation_id, error=message)
        logger.warning(f"Extraction request {correlation_id or self.current_correlation_id} failed: {message}")
        return True

    def dispose(self):
        """Cancel the timeout timer. Outstanding transport calls are left to finish and be ignored."""
        self._timer.cancel()
