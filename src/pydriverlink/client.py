"""Realtime connection manager for the dispatch backend."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp
from pydantic import ValidationError

from pydriverlink._constants import reconnect_delay
from pydriverlink._protocol import InboundEvent, OutboundEvent, derive_key, encode_frame
from pydriverlink._redact import redact_for_log
from pydriverlink._scheduler import AsyncioScheduler, Scheduler, Timer
from pydriverlink._transport import Transport, TransportFactory, TransportHandlers, WebSocketTransport
from pydriverlink.config import DriverLinkConfig
from pydriverlink.connectivity import ConnectivityChange, ConnectivityObserver
from pydriverlink.events import EventBus
from pydriverlink.exceptions import DriverLinkConfigError, DriverLinkProtocolError, DriverLinkTransportError
from pydriverlink.models.connection import ConnectionState
from pydriverlink.models.credentials import Credentials
from pydriverlink.models.location import LocationPoint, now_ms
from pydriverlink.sync.batcher import LocationBatcher
from pydriverlink.sync.heartbeat import HeartbeatEmitter
from pydriverlink.sync.queue import OutboundQueue
from pydriverlink.sync.rooms import RoomSubscriptions

_logger = logging.getLogger(__name__)


class ConnectionManager:
    """Keeps one driver connected to the dispatch backend.

    All send operations are accept-always: they never raise and never
    block. Whatever cannot go out right now is queued (or buffered, for
    location fixes) and delivered on the next connected window.

    Usage::

        async with ConnectionManager(DriverLinkConfig.from_env()) as link:
            link.events.booking_status_updated.subscribe(on_update)
            link.connect("driver-1", token)
            link.join_booking_room("booking-42")
            link.send_location({"latitude": 52.37, "longitude": 4.89})
    """

    def __init__(
        self,
        config: DriverLinkConfig | None = None,
        *,
        connectivity: ConnectivityObserver | None = None,
        events: EventBus | None = None,
        scheduler: Scheduler | None = None,
        transport_factory: TransportFactory | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or DriverLinkConfig()
        self._connectivity = connectivity or ConnectivityObserver()
        self._events = events or EventBus()
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._transport_factory = transport_factory or self._websocket_transport
        self._external_session = session is not None
        self._http_session = session

        self._state = ConnectionState.DISCONNECTED
        self._credentials: Credentials | None = None
        self._transport: Transport | None = None
        self._generation = 0
        self._reconnect_desired = False
        self._reconnect_attempts = 0
        self._unsubscribe_connectivity: Callable[[], None] | None = None

        self._reconnect_timer = Timer(self._scheduler, "reconnect")
        self._gate_timer = Timer(self._scheduler, "connectivity-gate")
        self._queue = OutboundQueue(
            capacity=self._config.queue_capacity,
            default_ttl=self._config.queue_default_ttl,
            min_ttl=self._config.queue_min_ttl,
            clock=self._scheduler.time,
        )
        self._rooms = RoomSubscriptions()
        self._heartbeat = HeartbeatEmitter(
            self._scheduler,
            self._emit_heartbeat,
            interval=self._config.heartbeat_interval,
        )
        self._batcher = LocationBatcher(
            self._scheduler,
            send_point=self._deliver_point,
            send_batch=self._deliver_batch,
            interval=self._config.location_batch_interval,
            max_points=self._config.location_buffer_size,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Disconnect and close the HTTP session if this manager created it."""
        self.disconnect()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def driver_id(self) -> str | None:
        return self._credentials.driver_id if self._credentials is not None else None

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def connectivity(self) -> ConnectivityObserver:
        return self._connectivity

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def pending_messages(self) -> int:
        """Messages waiting in the outbound queue."""
        return len(self._queue)

    @property
    def buffered_locations(self) -> int:
        """Location fixes waiting for the next batch."""
        return len(self._batcher)

    @property
    def subscribed_rooms(self) -> tuple[str, ...]:
        return tuple(self._rooms)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, driver_id: str, token: str) -> None:
        """Start (or keep) a connection for *driver_id*.

        Returns immediately when already connected or connecting for the
        same driver. Raises :class:`DriverLinkConfigError` when the driver
        id or token is missing, or when called outside a running event loop.
        """
        if not isinstance(driver_id, str) or not driver_id.strip():
            raise DriverLinkConfigError("connect() requires a driver id")
        if not isinstance(token, str) or not token.strip():
            raise DriverLinkConfigError("connect() requires a bearer token")
        credentials = Credentials(driver_id=driver_id, token=token)
        # Raises DriverLinkConfigError off the event loop.
        self._scheduler.time()

        current = self._credentials
        if (
            current is not None
            and current.driver_id == credentials.driver_id
            and self._state is not ConnectionState.DISCONNECTED
        ):
            _logger.debug("connect() ignored, already %s as driver %s", self._state, credentials.driver_id)
            return

        if current is not None and current.driver_id != credentials.driver_id:
            _logger.info("Switching driver %s -> %s, dropping pending state", current.driver_id, credentials.driver_id)
            self._queue.clear()
            self._rooms.clear()
            self._batcher.stop()
            self._batcher.active_booking_id = None

        self._credentials = credentials
        self._reconnect_desired = True
        self._reconnect_attempts = 0
        self._reconnect_timer.cancel()
        self._attach_connectivity()
        self._batcher.set_background_mode(not self._connectivity.foregrounded)

        self._teardown_transport()
        if not self._connectivity.should_be_connected():
            _logger.info(
                "Connection for driver %s deferred (online=%s foregrounded=%s)",
                credentials.driver_id,
                self._connectivity.online,
                self._connectivity.foregrounded,
            )
            self._set_state(ConnectionState.DISCONNECTED)
            return
        self._open_transport()

    def disconnect(self, *, clear_subscriptions: bool = True) -> None:
        """Tear everything down. The manager stays dormant until ``connect()``."""
        self._reconnect_desired = False
        self._reconnect_timer.cancel()
        self._gate_timer.cancel()
        self._heartbeat.stop()
        self._batcher.stop()
        self._detach_connectivity()
        self._teardown_transport()
        self._queue.clear()
        if clear_subscriptions:
            self._rooms.clear()
        if self._credentials is not None:
            _logger.info("Disconnected driver %s", self._credentials.driver_id)
        self._credentials = None
        self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Accept-always send API
    # ------------------------------------------------------------------

    def send(
        self,
        event: OutboundEvent,
        payload: Any,
        *,
        key: str | None = None,
        ttl: float | None = None,
    ) -> None:
        """Send now if possible, otherwise queue under *key* for *ttl* seconds."""
        try:
            encode_frame(event, payload)
        except DriverLinkProtocolError:
            # Queued, it would fail again on every flush.
            _logger.warning("Dropping %s: payload cannot be encoded", event, exc_info=True)
            return
        if self._can_send():
            try:
                self._transport_send(event, payload)
                return
            except DriverLinkTransportError as exc:
                _logger.debug("Send of %s failed, queueing: %s", event, exc)
        self._queue.enqueue(event, payload, key=key, ttl=ttl)
        _logger.debug("Queued %s (%d pending)", event, len(self._queue))

    def send_location(self, point: LocationPoint | Mapping[str, Any], *, booking_id: str | None = None) -> None:
        """Report a GPS fix.

        Mappings may carry ``bookingId``; it becomes the active booking that
        location batches are tagged with.
        """
        if isinstance(point, LocationPoint):
            location = point
        else:
            booking_id = booking_id or point.get("bookingId") or point.get("booking_id")
            try:
                location = LocationPoint.model_validate(dict(point))
            except ValidationError:
                _logger.warning("Dropping invalid location sample %s", redact_for_log(dict(point)), exc_info=True)
                return
        if booking_id:
            self._batcher.active_booking_id = str(booking_id)
        self._batcher.record(location)

    def set_active_booking(self, booking_id: str | None) -> None:
        """Booking id attached to location updates (``None`` clears it)."""
        self._batcher.active_booking_id = booking_id

    def join_booking_room(self, booking_id: str) -> None:
        booking_id = str(booking_id).strip()
        if not booking_id:
            _logger.warning("join_booking_room() called without a booking id")
            return
        self._rooms.add(booking_id)
        # A leave that never went out would undo this join after the replay.
        self._queue.discard(derive_key(OutboundEvent.RIDE_LEAVE, {"bookingId": booking_id}))
        self.send(OutboundEvent.RIDE_JOIN, {"bookingId": booking_id})

    def leave_booking_room(self, booking_id: str) -> None:
        booking_id = str(booking_id).strip()
        if not booking_id:
            _logger.warning("leave_booking_room() called without a booking id")
            return
        self._rooms.discard(booking_id)
        # A join that never went out must not be replayed after the leave.
        self._queue.discard(derive_key(OutboundEvent.RIDE_JOIN, {"bookingId": booking_id}))
        self.send(OutboundEvent.RIDE_LEAVE, {"bookingId": booking_id})

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------

    def _ensure_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._external_session = False
        return self._http_session

    def _websocket_transport(self, credentials: Credentials) -> Transport:
        return WebSocketTransport(self._config, credentials, session_provider=self._ensure_http_session)

    def _open_transport(self) -> None:
        credentials = self._credentials
        if credentials is None:
            return
        self._generation += 1
        generation = self._generation
        transport = self._transport_factory(credentials)
        self._transport = transport
        self._set_state(ConnectionState.CONNECTING)
        _logger.debug("Connecting driver %s (attempt %d)", credentials.driver_id, self._reconnect_attempts)
        handlers = TransportHandlers(
            on_open=functools.partial(self._handle_open, generation),
            on_close=functools.partial(self._handle_close, generation),
            on_event=functools.partial(self._handle_event, generation),
            on_send_failed=self._handle_send_failed,
        )
        try:
            transport.open(handlers)
        except DriverLinkTransportError as exc:
            self._handle_close(generation, str(exc))

    def _teardown_transport(self) -> None:
        self._generation += 1
        transport = self._transport
        self._transport = None
        self._heartbeat.stop()
        if transport is not None:
            transport.detach()
            transport.close()

    def _handle_open(self, generation: int) -> None:
        if generation != self._generation or self._credentials is None:
            return
        driver_id = self._credentials.driver_id
        self._reconnect_attempts = 0
        self._reconnect_timer.cancel()
        self._state = ConnectionState.CONNECTED
        _logger.info("Connected as driver %s", driver_id)

        presence = {"driverId": driver_id}
        self._queue.discard(derive_key(OutboundEvent.PRESENCE_JOIN, presence))
        self._emit_direct(OutboundEvent.PRESENCE_JOIN, presence)
        for booking_id in self._rooms:
            join = {"bookingId": booking_id}
            self._queue.discard(derive_key(OutboundEvent.RIDE_JOIN, join))
            self._emit_direct(OutboundEvent.RIDE_JOIN, join)
        self._heartbeat.start()
        self._flush()

        if generation == self._generation and self._state is ConnectionState.CONNECTED:
            self._events.connection_state.publish(ConnectionState.CONNECTED)

    def _handle_close(self, generation: int, reason: str) -> None:
        if generation != self._generation:
            return
        transport = self._transport
        self._transport = None
        self._generation += 1
        if transport is not None:
            transport.detach()
        self._heartbeat.stop()
        _logger.info("Connection lost: %s", reason)
        self._set_state(ConnectionState.DISCONNECTED)
        if self._reconnect_desired and self._connectivity.should_be_connected():
            self._schedule_reconnect()

    def _handle_event(self, generation: int, event: str, payload: Any) -> None:
        if generation != self._generation:
            return
        if event == InboundEvent.DRIVER_JOINED:
            _logger.debug("Joined driver room: %s", redact_for_log(payload))
        elif event == InboundEvent.LOCATION_ACK:
            timestamp = payload.get("timestamp") if isinstance(payload, Mapping) else None
            _logger.debug("Location acknowledged: %s", timestamp)
        else:
            _logger.debug("Received %s %s", event, redact_for_log(payload))
        self._events.emit(event, payload)

    def _handle_send_failed(self, event: str, payload: Any) -> None:
        if not self._reconnect_desired:
            return
        if event == OutboundEvent.LOCATION_UPDATE and isinstance(payload, Mapping):
            self._restore_points([payload])
        elif event == OutboundEvent.LOCATION_BATCH and isinstance(payload, Mapping):
            points = payload.get("points")
            self._restore_points(points if isinstance(points, list) else [])
        else:
            self._queue.enqueue(event, payload)
        _logger.debug("Re-queued unsent %s", event)

    def _restore_points(self, raw_points: list[Any]) -> None:
        points: list[LocationPoint] = []
        for raw in raw_points:
            try:
                points.append(LocationPoint.model_validate(raw))
            except ValidationError:
                _logger.debug("Dropping unrestorable location point", exc_info=True)
        self._batcher.restore(points)

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        limit = self._config.max_reconnect_attempts
        if self._reconnect_attempts >= limit:
            _logger.warning("Max reconnection attempts reached (%d), giving up until connect()", limit)
            return
        delay = reconnect_delay(
            self._reconnect_attempts,
            base=self._config.reconnect_base_delay,
            cap=self._config.reconnect_max_delay,
        )
        self._reconnect_attempts += 1
        _logger.debug("Reconnect %d/%d in %.1fs", self._reconnect_attempts, limit, delay)
        self._reconnect_timer.start(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        if not self._reconnect_desired or self._transport is not None:
            return
        if not self._connectivity.should_be_connected():
            return
        self._open_transport()

    # ------------------------------------------------------------------
    # Connectivity gate
    # ------------------------------------------------------------------

    def _attach_connectivity(self) -> None:
        if self._unsubscribe_connectivity is None:
            self._unsubscribe_connectivity = self._connectivity.subscribe(self._on_connectivity_change)

    def _detach_connectivity(self) -> None:
        unsubscribe = self._unsubscribe_connectivity
        self._unsubscribe_connectivity = None
        if unsubscribe is not None:
            unsubscribe()

    def _on_connectivity_change(self, change: ConnectivityChange) -> None:
        if change.foregrounded != change.previous_foregrounded:
            self._batcher.set_background_mode(not change.foregrounded)
        if self._config.connectivity_debounce > 0:
            self._gate_timer.start(self._config.connectivity_debounce, self._apply_gate)
        else:
            self._apply_gate()

    def _apply_gate(self) -> None:
        if not self._reconnect_desired or self._credentials is None:
            return
        if self._connectivity.should_be_connected():
            if self._transport is None:
                _logger.debug("Connectivity restored, connecting now")
                self._reconnect_timer.cancel()
                self._reconnect_attempts = 0
                self._open_transport()
            return
        self._reconnect_timer.cancel()
        if self._transport is not None:
            _logger.info(
                "Closing connection (online=%s foregrounded=%s)",
                self._connectivity.online,
                self._connectivity.foregrounded,
            )
            self._teardown_transport()
            self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Internal send paths
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        self._events.connection_state.publish(state)

    def _can_send(self) -> bool:
        transport = self._transport
        return (
            self._state is ConnectionState.CONNECTED
            and transport is not None
            and transport.is_open
            and self._connectivity.should_be_connected()
        )

    def _transport_send(self, event: str, payload: Any) -> None:
        transport = self._transport
        if transport is None or self._state is not ConnectionState.CONNECTED:
            raise DriverLinkTransportError("Not connected", event=str(event))
        transport.send(event, payload)

    def _emit_direct(self, event: OutboundEvent, payload: Any) -> None:
        try:
            self._transport_send(event, payload)
        except DriverLinkTransportError:
            self._queue.enqueue(event, payload)

    def _flush(self) -> None:
        if not self._can_send():
            return
        self._queue.purge_expired()
        if self._queue:
            sent = self._queue.flush(self._transport_send)
            _logger.debug("Flushed %d queued message(s), %d left", sent, len(self._queue))
        self._batcher.flush()

    def _emit_heartbeat(self) -> None:
        driver_id = self.driver_id
        if driver_id is None:
            return
        self.send(
            OutboundEvent.HEARTBEAT,
            {"driverId": driver_id, "timestamp": now_ms()},
            key=f"heartbeat:{driver_id}",
            ttl=self._config.heartbeat_ttl,
        )

    def _location_payload(self, point: LocationPoint, booking_id: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {"driverId": self.driver_id, **point.to_wire()}
        if booking_id:
            payload["bookingId"] = booking_id
        return payload

    def _deliver_point(self, point: LocationPoint, booking_id: str | None) -> bool:
        if not self._can_send():
            return False
        try:
            self._transport_send(OutboundEvent.LOCATION_UPDATE, self._location_payload(point, booking_id))
        except DriverLinkTransportError:
            return False
        return True

    def _deliver_batch(self, points: list[LocationPoint], booking_id: str | None) -> bool:
        if not self._can_send():
            return False
        payload: dict[str, Any] = {
            "driverId": self.driver_id,
            "points": [point.to_wire() for point in points],
        }
        if booking_id:
            payload["bookingId"] = booking_id
        try:
            self._transport_send(OutboundEvent.LOCATION_BATCH, payload)
        except DriverLinkTransportError:
            return False
        return True
