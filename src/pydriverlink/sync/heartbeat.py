"""Periodic liveness emitter."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydriverlink._constants import HEARTBEAT_INTERVAL
from pydriverlink._scheduler import PeriodicTimer, Scheduler

_logger = logging.getLogger(__name__)


class HeartbeatEmitter:
    """Calls *emit* every *interval* seconds between :meth:`start` and :meth:`stop`."""

    def __init__(self, scheduler: Scheduler, emit: Callable[[], None], *, interval: float = HEARTBEAT_INTERVAL) -> None:
        self._emit = emit
        self._timer = PeriodicTimer(scheduler, "heartbeat", interval, self._beat)

    @property
    def running(self) -> bool:
        return self._timer.running

    def start(self) -> None:
        if not self._timer.running:
            _logger.debug("Heartbeat started")
        self._timer.start()

    def stop(self) -> None:
        if self._timer.running:
            _logger.debug("Heartbeat stopped")
        self._timer.stop()

    def _beat(self) -> None:
        self._emit()
