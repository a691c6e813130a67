"""Timer primitives on top of the event loop.

Everything in pydriverlink runs on one event loop. Components never call
``asyncio`` directly for timing; they take a :class:`Scheduler` so tests can
swap in a manually advanced clock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from pydriverlink.exceptions import DriverLinkConfigError

_logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Structural scheduler interface (``asyncio.AbstractEventLoop`` satisfies it)."""

    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], object]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler bound to the running asyncio loop.

    The loop is looked up on every call so the manager can be constructed
    before the loop starts.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError as exc:
            raise DriverLinkConfigError("pydriverlink must be driven from a running event loop") from exc

    def time(self) -> float:
        return self._require_loop().time()

    def call_later(self, delay: float, callback: Callable[[], object]) -> TimerHandle:
        return self._require_loop().call_later(max(0.0, delay), callback)


class Timer:
    """One-shot timer with at most one pending callback.

    Starting the timer again cancels whatever was pending.
    """

    def __init__(self, scheduler: Scheduler, name: str) -> None:
        self._scheduler = scheduler
        self._name = name
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        _logger.debug("Timer %s armed delay=%.3fs", self._name, delay)
        self._handle = self._scheduler.call_later(delay, _fire)

    def cancel(self) -> None:
        handle = self._handle
        self._handle = None
        if handle is not None:
            handle.cancel()


class PeriodicTimer:
    """Fixed-interval timer; re-arms itself after every tick until stopped."""

    def __init__(self, scheduler: Scheduler, name: str, interval: float, callback: Callable[[], None]) -> None:
        if interval <= 0:
            raise ValueError(f"{name} interval must be positive, got {interval}")
        self._timer = Timer(scheduler, name)
        self._interval = interval
        self._callback = callback
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._timer.start(self._interval, self._tick)

    def stop(self) -> None:
        self._running = False
        self._timer.cancel()

    def _tick(self) -> None:
        if not self._running:
            return
        # Re-arm first so a callback that calls stop() wins.
        self._timer.start(self._interval, self._tick)
        self._callback()
