from __future__ import annotations

from typing import Any

from pydriverlink._protocol import InboundEvent
from pydriverlink.events import Channel, EventBus


def test_channel_delivers_to_all_listeners_in_order() -> None:
    channel: Channel[int] = Channel("numbers")
    seen: list[tuple[str, int]] = []
    channel.subscribe(lambda v: seen.append(("a", v)))
    channel.subscribe(lambda v: seen.append(("b", v)))

    channel.publish(1)

    assert seen == [("a", 1), ("b", 1)]
    assert len(channel) == 2


def test_listener_removed_during_delivery_is_not_called() -> None:
    channel: Channel[str] = Channel("x")
    seen: list[str] = []

    def _second(value: str) -> None:
        seen.append("second")

    def _first(value: str) -> None:
        seen.append("first")
        channel.unsubscribe(_second)

    channel.subscribe(_first)
    channel.subscribe(_second)

    channel.publish("go")
    channel.publish("again")

    assert seen == ["first", "first"]


def test_listener_can_unsubscribe_itself() -> None:
    channel: Channel[str] = Channel("x")
    seen: list[str] = []
    unsubscribe = None

    def _once(value: str) -> None:
        seen.append(value)
        assert unsubscribe is not None
        unsubscribe()

    unsubscribe = channel.subscribe(_once)
    channel.publish("one")
    channel.publish("two")

    assert seen == ["one"]


def test_failing_listener_does_not_stop_the_others() -> None:
    channel: Channel[int] = Channel("x")
    seen: list[int] = []

    def _boom(value: int) -> None:
        raise RuntimeError("listener bug")

    channel.subscribe(_boom)
    channel.subscribe(seen.append)

    channel.publish(7)

    assert seen == [7]


def test_bus_routes_by_event_name() -> None:
    bus = EventBus()
    assigned: list[Any] = []
    updated: list[Any] = []
    bus.booking_assigned.subscribe(assigned.append)
    bus.on(InboundEvent.BOOKING_STATUS_UPDATED, updated.append)

    bus.emit("BOOKING_ASSIGNED", {"id": "1"})
    bus.emit(InboundEvent.BOOKING_STATUS_UPDATED, {"id": "2"})
    bus.emit("nobody:listens", {})

    assert assigned == [{"id": "1"}]
    assert updated == [{"id": "2"}]


def test_off_and_clear() -> None:
    bus = EventBus()
    seen: list[Any] = []
    bus.on("evt", seen.append)
    bus.off("evt", seen.append)
    bus.emit("evt", 1)

    bus.on("evt", seen.append)
    bus.connection_state.subscribe(seen.append)
    bus.clear()
    bus.emit("evt", 2)

    assert seen == []
    assert len(bus.connection_state) == 0
