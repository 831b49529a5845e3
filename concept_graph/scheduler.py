"""Debounced scheduling of extraction requests from conversational activity."""

import logging
from collections.abc import Callable
from typing import Any

from .constants import CHANNEL, DEBOUNCE_MS
from .events import EngineEventLog
from .timers import Clock, Timer

logger = logging.getLogger(__name__)


class RequestScheduler:
    """
    Decides when to ask for a fresh diff.

    Two trigger sources are recognised: a finalized transcript turn, and a
    completed agent turn that was not itself an extraction turn. Each source
    schedules at most once per event id. Every qualifying trigger re-arms a
    single debounce timer, so a burst of turns yields one analyze_now() call
    after it settles. Whether a request is already in flight is not checked
    here; the coordinator owns that.
    """

    def __init__(
        self,
        clock: Clock,
        analyze_now: Callable[[], Any],
        debounce_ms: float = DEBOUNCE_MS,
        channel: str = CHANNEL,
        event_log: EngineEventLog | None = None,
    ):
        self.analyze_now = analyze_now
        self.debounce_ms = debounce_ms
        self.channel = channel
        self.event_log = event_log

        self._timer = Timer(clock)
        self._active = False
        self._last_final_item_id: str | None = None
        self._last_response_id: str | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> bool:
        return self._timer.pending

    def start(self):
        """Begin accepting triggers (e.g. once the conversation session is connected)."""
        self._active = True

    def dispose(self):
        """Stop accepting triggers and cancel any pending debounce."""
        self._active = False
        self._timer.cancel()

    def on_transcript_final(self, item_id: str | None) -> bool:
        """A user/assistant transcript turn was finalized. Returns True if it scheduled."""
        if not self._active or not item_id:
            return False
        if item_id == self._last_final_item_id:
            return False

        self._last_final_item_id = item_id
        self._schedule("final_transcript", item_id=item_id)
        return True

    def on_agent_turn_done(self, response_id: str | None, channel: str | None = None) -> bool:
        """
        The conversational agent completed a turn. Extraction turns are ignored
        so the engine never schedules on its own output. Returns True if it scheduled.
        """
        if not self._active or not response_id:
            return False
        if channel == self.channel:
            return False
        if response_id == self._last_response_id:
            return False

        self._last_response_id = response_id
        self._schedule("assistant_done", response_id=response_id)
        return True

    def _schedule(self, reason: str, **details: Any):
        if self.event_log is not None:
            self.event_log.record("schedule", reason=reason, **details)
        logger.debug(f"Scheduling analysis in {self.debounce_ms}ms ({reason})")
        self._timer.arm(self.debounce_ms, self._fire)

    def _fire(self):
        if not self._active:
            return
        try:
            self.analyze_now()
        except Exception as e:
            logger.error(f"Scheduled analysis failed: {e}", exc_info=True)
