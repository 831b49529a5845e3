import itertools
import json

import pytest

from concept_graph.constants import CHANNEL
from concept_graph.timers import Clock


class _ManualHandle:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock(Clock):
    """Virtual clock: callbacks run only when the test advances time."""

    def __init__(self):
        self._now = 0.0
        self._handles: list[_ManualHandle] = []

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms, callback):
        handle = _ManualHandle(self._now + max(0.0, delay_ms), callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def advance(self, ms: float):
        target = self._now + ms
        while True:
            due = [h for h in self._handles if not h.cancelled and h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self._handles.remove(handle)
            self._now = handle.due
            handle.callback()
        self._handles = [h for h in self._handles if not h.cancelled]
        self._now = target


def make_response(payload, correlation_id=None, response_id="resp_1", channel=CHANNEL,
                  workspace_key=None, audio=False):
    """Build a completion response the way the realtime transport shapes it."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    metadata = {"channel": channel}
    if correlation_id:
        metadata["correlationId"] = correlation_id
    if workspace_key:
        metadata["workspaceKey"] = workspace_key
    block = {"type": "audio", "transcript": text} if audio else {"type": "text", "text": text}
    return {"id": response_id, "metadata": metadata, "output": [{"type": "message", "content": [block]}]}


def make_error(correlation_id=None, channel=CHANNEL, message="boom"):
    metadata = {"channel": channel}
    if correlation_id:
        metadata["correlationId"] = correlation_id
    return {"type": "response.error", "response": {"metadata": metadata}, "error": {"message": message}}


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def ids():
    """Deterministic correlation ids: C1, C2, ..."""
    counter = itertools.count(1)
    return lambda: f"C{next(counter)}"
