from __future__ import annotations

from typing import Any

import pytest

from fakes import FakeScheduler
from pydriverlink._protocol import OutboundEvent, encode_frame
from pydriverlink.exceptions import DriverLinkTransportError
from pydriverlink.sync.queue import OutboundQueue


def _queue(scheduler: FakeScheduler, capacity: int = 250, default_ttl: float = 300.0) -> OutboundQueue:
    return OutboundQueue(capacity=capacity, default_ttl=default_ttl, clock=scheduler.time)


def test_same_key_keeps_only_latest_payload(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)

    for status in ("online", "busy", "online", "offline"):
        queue.enqueue("driver:status", {"status": status}, key="status")

    assert len(queue) == 1
    assert queue.keys() == ["status"]
    message = queue.get("status")
    assert message is not None
    assert message.payload == {"status": "offline"}


def test_default_key_uses_event_and_booking_id(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)

    queue.enqueue(OutboundEvent.RIDE_JOIN, {"bookingId": "b1"})
    queue.enqueue(OutboundEvent.RIDE_JOIN, {"bookingId": "b1"})
    queue.enqueue(OutboundEvent.RIDE_JOIN, {"bookingId": "b2"})

    assert queue.keys() == ["join:booking:b1", "join:booking:b2"]


def test_insert_past_capacity_evicts_oldest_key(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler, capacity=3)

    for key in ("A", "B", "C", "D"):
        queue.enqueue("evt", {}, key=key)

    assert queue.keys() == ["B", "C", "D"]


def test_reinsert_refreshes_ttl_but_not_eviction_position(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler, capacity=3, default_ttl=10.0)
    queue.enqueue("evt", {"v": 1}, key="A")
    queue.enqueue("evt", {}, key="B")
    queue.enqueue("evt", {}, key="C")

    scheduler.advance(5.0)
    queue.enqueue("evt", {"v": 2}, key="A")
    message = queue.get("A")
    assert message is not None
    assert message.expires_at == pytest.approx(15.0)
    assert queue.keys() == ["A", "B", "C"]

    queue.enqueue("evt", {}, key="D")

    assert "A" not in queue
    assert queue.keys() == ["B", "C", "D"]


def test_ttl_has_a_one_second_floor(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)

    message = queue.enqueue("evt", {}, key="k", ttl=0.0)

    assert message.expires_at == pytest.approx(1.0)


def test_flush_sends_in_insertion_order_and_empties_queue(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)
    queue.enqueue("first", {}, key="1")
    queue.enqueue("second", {}, key="2")
    queue.enqueue("first", {"replaced": True}, key="1")
    sent: list[tuple[str, Any]] = []

    count = queue.flush(lambda event, payload: sent.append((event, payload)))

    assert count == 2
    assert sent == [("first", {"replaced": True}), ("second", {})]
    assert len(queue) == 0


def test_expired_entry_is_dropped_without_counting_as_failure(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)
    queue.enqueue("short", {}, key="short", ttl=2.0)
    queue.enqueue("long", {}, key="long", ttl=60.0)
    scheduler.advance(3.0)
    sent: list[str] = []

    count = queue.flush(lambda event, payload: sent.append(event))

    assert sent == ["long"]
    assert count == 1
    assert len(queue) == 0


def test_flush_stops_at_first_failure_and_keeps_remainder(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)
    for key in ("a", "b", "c"):
        queue.enqueue(key, {}, key=key)
    sent: list[str] = []

    def _send(event: str, payload: Any) -> None:
        if event == "b":
            raise DriverLinkTransportError("dropped", event=event)
        sent.append(event)

    count = queue.flush(_send)

    assert count == 1
    assert sent == ["a"]
    assert queue.keys() == ["b", "c"]


def test_purge_expired_removes_only_stale_entries(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)
    queue.enqueue("evt", {}, key="old", ttl=1.0)
    queue.enqueue("evt", {}, key="new", ttl=100.0)
    scheduler.advance(2.0)

    assert queue.purge_expired() == 1
    assert queue.keys() == ["new"]


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        OutboundQueue(capacity=0)


def test_flush_drops_unencodable_entry_and_continues(scheduler: FakeScheduler) -> None:
    queue = _queue(scheduler)
    queue.enqueue("bad", {"status": {1, 2}}, key="bad")
    queue.enqueue("good", {"v": 1}, key="good")
    sent: list[str] = []

    def _send(event: str, payload: Any) -> None:
        encode_frame(event, payload)
        sent.append(event)

    count = queue.flush(_send)

    assert count == 1
    assert sent == ["good"]
    assert len(queue) == 0
