"""Bounded in-memory log of engine events, for inspection and diagnostics."""

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .constants import EVENT_LOG_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineEvent:
    type: str
    ts: float
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, "ts": self.ts, **self.details}


class EngineEventLog:
    """Keeps the most recent engine events; older ones drop off."""

    def __init__(self, maxlen: int = EVENT_LOG_SIZE, now: Callable[[], float] = time.time):
        self._events: deque[EngineEvent] = deque(maxlen=maxlen)
        self._now = now

    def record(self, event_type: str, **details: Any) -> EngineEvent:
        event = EngineEvent(type=event_type, ts=self._now(), details=details)
        self._events.append(event)
        logger.debug(f"{event_type} {details}")
        return event

    def recent(self, limit: int | None = None) -> list[EngineEvent]:
        events = list(self._events)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def of_type(self, event_type: str) -> list[EngineEvent]:
        return [e for e in self._events if e.type == event_type]

    def clear(self):
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
