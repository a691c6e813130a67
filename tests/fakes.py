"""Test doubles: a manually advanced scheduler and a test-driven transport."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydriverlink._protocol import encode_frame
from pydriverlink._transport import TransportHandlers
from pydriverlink.client import ConnectionManager
from pydriverlink.config import DriverLinkConfig
from pydriverlink.connectivity import ConnectivityObserver
from pydriverlink.exceptions import DriverLinkTransportError
from pydriverlink.models.credentials import Credentials


@dataclass
class FakeTimerHandle:
    when: float
    seq: int
    delay: float
    callback: Callable[[], object]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manually advanced clock + timer queue."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self.handles: list[FakeTimerHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], object]) -> FakeTimerHandle:
        self._seq += 1
        handle = FakeTimerHandle(when=self.now + delay, seq=self._seq, delay=delay, callback=callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self.now = handle.when
            handle.fired = True
            handle.callback()
        self.now = target


@dataclass
class FakeTransport:
    """Transport double: opening and closing are driven by the test."""

    credentials: Credentials
    sent: list[tuple[str, Any]] = field(default_factory=list)
    handlers: TransportHandlers | None = None
    opened: bool = False
    closed: bool = False
    fail_sends: bool = False

    @property
    def is_open(self) -> bool:
        return self.opened and not self.closed

    def open(self, handlers: TransportHandlers) -> None:
        self.handlers = handlers

    def send(self, event: str, payload: Any) -> None:
        if not self.is_open or self.fail_sends:
            raise DriverLinkTransportError("fake transport down", event=str(event))
        encode_frame(event, payload)
        self.sent.append((str(event), payload))

    def close(self) -> None:
        self.closed = True

    def detach(self) -> None:
        self.handlers = None

    # Test drivers -------------------------------------------------------

    def accept(self) -> None:
        self.opened = True
        assert self.handlers is not None
        self.handlers.on_open()

    def drop(self, reason: str = "network") -> None:
        self.closed = True
        if self.handlers is not None:
            self.handlers.on_close(reason)

    def receive(self, event: str, payload: Any) -> None:
        assert self.handlers is not None
        self.handlers.on_event(event, payload)

    def events(self) -> list[str]:
        return [event for event, _payload in self.sent]


class TransportFactoryRecorder:
    def __init__(self, *, auto_accept: bool = False) -> None:
        self.transports: list[FakeTransport] = []
        self.auto_accept = auto_accept

    def __call__(self, credentials: Credentials) -> FakeTransport:
        transport = FakeTransport(credentials)
        self.transports.append(transport)
        if self.auto_accept:
            original_open = transport.open

            def _open_and_accept(handlers: TransportHandlers) -> None:
                original_open(handlers)
                transport.accept()

            transport.open = _open_and_accept  # type: ignore[method-assign]
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@dataclass
class Harness:
    manager: ConnectionManager
    scheduler: FakeScheduler
    factory: TransportFactoryRecorder
    connectivity: ConnectivityObserver

    def connect_and_open(self, driver_id: str = "driver-1") -> FakeTransport:
        self.manager.connect(driver_id, "token-abc")
        transport = self.factory.last
        if not transport.opened:
            transport.accept()
        return transport


def make_harness(config: DriverLinkConfig | None = None, *, auto_accept: bool = False) -> Harness:
    scheduler = FakeScheduler()
    factory = TransportFactoryRecorder(auto_accept=auto_accept)
    connectivity = ConnectivityObserver()
    manager = ConnectionManager(
        config or DriverLinkConfig(),
        connectivity=connectivity,
        scheduler=scheduler,
        transport_factory=factory,
    )
    return Harness(manager=manager, scheduler=scheduler, factory=factory, connectivity=connectivity)


