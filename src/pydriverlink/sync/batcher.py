"""Background location batching.

While the app is backgrounded every GPS fix would otherwise wake the radio.
Fixes are buffered instead and sent as one batch on a timer or when the
app comes back to the foreground.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable

from pydriverlink._constants import LOCATION_BATCH_INTERVAL, LOCATION_BUFFER_SIZE
from pydriverlink._scheduler import PeriodicTimer, Scheduler
from pydriverlink.models.location import LocationPoint

_logger = logging.getLogger(__name__)

#: ``(point, booking_id) -> delivered``
SendPointFn = Callable[[LocationPoint, str | None], bool]
#: ``(points, booking_id) -> delivered``
SendBatchFn = Callable[[list[LocationPoint], str | None], bool]


class LocationBatcher:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        send_point: SendPointFn,
        send_batch: SendBatchFn,
        interval: float = LOCATION_BATCH_INTERVAL,
        max_points: int = LOCATION_BUFFER_SIZE,
    ) -> None:
        self._send_point = send_point
        self._send_batch = send_batch
        self._buffer: deque[LocationPoint] = deque(maxlen=max_points)
        self._background = False
        self._timer = PeriodicTimer(scheduler, "location-batch", interval, self._on_timer)
        self.active_booking_id: str | None = None

    @property
    def background(self) -> bool:
        return self._background

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    def __len__(self) -> int:
        return len(self._buffer)

    def points(self) -> list[LocationPoint]:
        return list(self._buffer)

    def set_background_mode(self, is_background: bool) -> None:
        if is_background == self._background:
            return
        self._background = is_background
        if is_background:
            _logger.debug("Location batching enabled")
            self._timer.start()
            return
        _logger.debug("Location batching disabled, flushing %d buffered point(s)", len(self._buffer))
        self._timer.stop()
        self.flush()

    def record(self, point: LocationPoint) -> None:
        """Take one fix: buffer it in background, send it right away otherwise."""
        if self._background:
            self._append(point)
            return
        if self._buffer:
            # Older points are still waiting; keep them ahead of this one.
            self._append(point)
            self.flush()
            return
        if not self._send_point(point, self.active_booking_id):
            self._append(point)

    def flush(self) -> bool:
        """Send the whole buffer as one batch. ``False`` leaves it untouched."""
        if not self._buffer:
            return True
        points = list(self._buffer)
        if not self._send_batch(points, self.active_booking_id):
            return False
        self._buffer.clear()
        _logger.debug("Flushed location batch of %d point(s)", len(points))
        return True

    def restore(self, points: Iterable[LocationPoint]) -> None:
        """Put points whose delivery failed back in front of the buffer."""
        merged = [*points, *self._buffer]
        maxlen = self._buffer.maxlen or len(merged)
        dropped = max(0, len(merged) - maxlen)
        self._buffer.clear()
        self._buffer.extend(merged[dropped:])
        if dropped:
            _logger.debug("Location buffer full, dropped %d oldest point(s)", dropped)

    def stop(self) -> None:
        """Cancel the flush timer and forget buffered points."""
        self._timer.stop()
        self._buffer.clear()
        self._background = False

    def _on_timer(self) -> None:
        self.flush()

    def _append(self, point: LocationPoint) -> None:
        if self._buffer.maxlen is not None and len(self._buffer) == self._buffer.maxlen:
            _logger.debug("Location buffer full, dropping oldest point")
        self._buffer.append(point)
