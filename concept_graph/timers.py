"""Cancellable, fire-once timers over an injectable clock."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(ABC):
    """Source of time and delayed callbacks. Delays are in milliseconds."""

    @abstractmethod
    def now_ms(self) -> float:
        ...

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopClock(Clock):
    """Clock backed by an asyncio event loop. Uses the running loop unless one is given."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        return self.loop.time() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)


class Timer:
    """
    A single re-armable timer.

    Arming cancels whatever was pending, so only the most recently armed
    callback can fire, and it fires at most once.
    """

    def __init__(self, clock: Clock):
        self.clock = clock
        self._handle: TimerHandle | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, delay_ms: float, callback: Callable[[], None]):
        self.cancel()
        self._generation += 1
        generation = self._generation

        def fire():
            if generation != self._generation:
                return
            self._handle = None
            callback()

        self._handle = self.clock.call_later(delay_ms, fire)

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._generation += 1
