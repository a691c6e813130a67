"""Ride rooms the client wants live updates for."""

from __future__ import annotations

from collections.abc import Iterator


class RoomSubscriptions:
    """Durable set of booking ids, replayed after every (re)connect.

    Join order is preserved so replay is deterministic. A dropped
    connection does not touch the set; only :meth:`discard` and
    :meth:`clear` do.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, None] = {}

    def __contains__(self, booking_id: object) -> bool:
        return booking_id in self._rooms

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rooms))

    def __len__(self) -> int:
        return len(self._rooms)

    def add(self, booking_id: str) -> bool:
        """Add *booking_id*; ``False`` if it was already present."""
        if booking_id in self._rooms:
            return False
        self._rooms[booking_id] = None
        return True

    def discard(self, booking_id: str) -> bool:
        if booking_id not in self._rooms:
            return False
        del self._rooms[booking_id]
        return True

    def clear(self) -> None:
        self._rooms.clear()
