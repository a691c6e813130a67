"""Wire verbs and frame encoding.

The connection manager is the only component that talks in these terms;
everything above it sees typed events.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydriverlink._constants import ID_FIELDS
from pydriverlink.exceptions import DriverLinkProtocolError


class OutboundEvent(StrEnum):
    """Events the client emits.

    The backend historically accepted several spellings for joining a ride
    (``driver:join``-scoped, ``ride:join``, ``ride:subscribe``, ``join:ride``).
    Only ``join:booking``/``leave:booking`` are sent.
    """

    PRESENCE_JOIN = "driver:join"
    LOCATION_UPDATE = "driver:updateLocation"
    LOCATION_BATCH = "driver:updateLocationBatch"
    RIDE_JOIN = "join:booking"
    RIDE_LEAVE = "leave:booking"
    HEARTBEAT = "driver:heartbeat"


class InboundEvent(StrEnum):
    """Inbound event names with a known meaning.

    Unknown names are still delivered through the event bus.
    """

    DRIVER_JOINED = "driver:joined"
    LOCATION_ACK = "driver:locationAck"
    BOOKING_ASSIGNED = "BOOKING_ASSIGNED"
    BOOKING_STATUS_UPDATED = "BOOKING_STATUS_UPDATED"


def derive_key(event: str, payload: Any) -> str:
    """Dedup key for a queued message: event name plus the first id-like field."""
    if isinstance(payload, Mapping):
        for field_name in ID_FIELDS:
            value = payload.get(field_name)
            if isinstance(value, bool):
                continue
            if isinstance(value, (str, int)) and str(value).strip():
                return f"{event}:{value}"
    return str(event)


def encode_frame(event: str, payload: Any) -> str:
    """Serialize one outbound event as a JSON text frame."""
    try:
        return json.dumps({"event": str(event), "data": payload}, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise DriverLinkProtocolError(f"Cannot encode payload for {event}: {exc}") from exc


def decode_frame(text: str) -> tuple[str, Any]:
    """Parse an inbound JSON text frame into ``(event, payload)``."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DriverLinkProtocolError(f"Inbound frame is not JSON: {text[:64]}") from exc
    if not isinstance(parsed, dict):
        raise DriverLinkProtocolError("Inbound frame is not an object")
    event = parsed.get("event")
    if not isinstance(event, str) or not event:
        raise DriverLinkProtocolError("Inbound frame missing event name")
    return event, parsed.get("data")
