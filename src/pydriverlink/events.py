"""Publish/subscribe registry for inbound events.

UI code and job lists subscribe here instead of holding on to the
connection manager.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydriverlink._protocol import InboundEvent
from pydriverlink.models.connection import ConnectionState

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class Channel(Generic[T]):
    """Many-listener channel for one event category.

    Listeners may unsubscribe (themselves or others) while a value is being
    delivered; a listener removed mid-delivery is not called afterwards.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: list[Listener[T]] = []

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener[T]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, value: T) -> None:
        for listener in tuple(self._listeners):
            if listener not in self._listeners:
                continue
            try:
                listener(value)
            except Exception:
                _logger.warning("Listener on %s failed", self._name, exc_info=True)

    def clear(self) -> None:
        self._listeners.clear()


class EventBus:
    """Registry of channels keyed by inbound event name."""

    def __init__(self) -> None:
        self._channels: dict[str, Channel[Any]] = {}
        self.connection_state: Channel[ConnectionState] = Channel("connection_state")

    def channel(self, event: str) -> Channel[Any]:
        name = str(event)
        existing = self._channels.get(name)
        if existing is None:
            existing = Channel(name)
            self._channels[name] = existing
        return existing

    @property
    def booking_assigned(self) -> Channel[Any]:
        return self.channel(InboundEvent.BOOKING_ASSIGNED)

    @property
    def booking_status_updated(self) -> Channel[Any]:
        return self.channel(InboundEvent.BOOKING_STATUS_UPDATED)

    def on(self, event: str, listener: Listener[Any]) -> Callable[[], None]:
        return self.channel(event).subscribe(listener)

    def off(self, event: str, listener: Listener[Any]) -> None:
        channel = self._channels.get(str(event))
        if channel is not None:
            channel.unsubscribe(listener)

    def emit(self, event: str, payload: Any) -> None:
        channel = self._channels.get(str(event))
        if channel is not None:
            channel.publish(payload)

    def clear(self) -> None:
        for channel in self._channels.values():
            channel.clear()
        self._channels.clear()
        self.connection_state.clear()
