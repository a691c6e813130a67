"""Job payload normalization for ``BOOKING_*`` realtime events.

Backend versions disagree on the payload shape: some push the full job
as the app lists it, others push the raw booking row (``ref``,
``guestName``, ``pickupTime``...), and status updates may carry only a
handful of fields.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pydriverlink.ingestion.normalize import first_present, safe_float, safe_str, unwrap_envelope
from pydriverlink.models.job import TERMINAL_STATUSES, DriverJob, JobType

_logger = logging.getLogger(__name__)


def _parse_iso(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def classify_job_type(status: str | None, scheduled_time: str | None, now: datetime | None = None) -> JobType:
    """Which list a job belongs to when the backend does not say."""
    if status in TERMINAL_STATUSES:
        return JobType.HISTORY
    if scheduled_time:
        when = _parse_iso(scheduled_time)
        current = now or datetime.now(UTC)
        if when is not None and when > current:
            return JobType.UPCOMING
    return JobType.ACTIVE


def _coerce_type(value: Any) -> JobType | None:
    if isinstance(value, str):
        try:
            return JobType(value.strip().upper())
        except ValueError:
            return None
    return None


def _place(payload: Mapping[str, Any], key: str, address_key: str) -> dict[str, Any] | None:
    place = payload.get(key)
    if isinstance(place, Mapping):
        return dict(place)
    address = safe_str(payload.get(address_key))
    return {"addressLine": address} if address else None


def normalize_incoming_job(
    payload: Any,
    default_type: JobType | None = None,
    *,
    now: datetime | None = None,
) -> DriverJob | None:
    """Build a :class:`DriverJob` from an inbound payload, or ``None``.

    Without an explicit ``type`` the job takes *default_type*, or is
    classified from its status and scheduled time when that is ``None``.
    """
    data = unwrap_envelope(payload)
    if not isinstance(data, Mapping):
        return None
    job_id = data.get("id")
    status = data.get("status")
    if not isinstance(job_id, str) or not isinstance(status, str):
        return None

    explicit_type = _coerce_type(data.get("type"))

    try:
        if isinstance(data.get("reference"), str):
            scheduled = safe_str(data.get("scheduledTime"))
            job_type = explicit_type or classify_job_type(status, scheduled, now)
            return DriverJob.model_validate({**data, "type": job_type})

        scheduled = safe_str(first_present(data, "pickupTime", "scheduledTime")) or datetime.now(UTC).isoformat()
        job_type = explicit_type or default_type or classify_job_type(status, scheduled, now)
        vehicle = data.get("vehicle")
        registration = vehicle.get("registrationNo") if isinstance(vehicle, Mapping) else None
        return DriverJob(
            id=job_id,
            reference=safe_str(first_present(data, "ref", "reference")) or job_id,
            status=status,
            type=job_type,
            ride_type=safe_str(data.get("rideType")),
            source=safe_str(data.get("source")),
            vehicle_number=safe_str(registration or data.get("vehicleNumber")),
            pickup=_place(data, "pickup", "pickupLocation"),
            dropoff=_place(data, "dropoff", "dropLocation"),
            pickup_coords=data.get("pickupCoords") if isinstance(data.get("pickupCoords"), Mapping) else None,
            drop_coords=data.get("dropCoords") if isinstance(data.get("dropCoords"), Mapping) else None,
            payment_amount=safe_float(data.get("paymentAmount")),
            final_price=safe_float(data.get("finalPrice")),
            payment_method=safe_str(data.get("paymentMethod")),
            payment_status=safe_str(data.get("paymentStatus")),
            passenger_name=safe_str(first_present(data, "guestName", "passengerName")) or "Customer",
            passenger_phone=safe_str(first_present(data, "guestPhone", "passengerPhone")) or "",
            passenger_email=safe_str(data.get("passengerEmail")),
            scheduled_time=scheduled,
            notes=safe_str(data.get("notes")),
            flight_no=safe_str(data.get("flightNo")),
            flight_eta=safe_str(data.get("flightEta")),
        )
    except ValidationError:
        _logger.debug("Discarding unparseable job payload id=%s", job_id, exc_info=True)
        return None


def extract_job_id(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    value = first_present(payload, "id", "jobId", "bookingId")
    return safe_str(value)


def extract_partial_update(payload: Any) -> dict[str, Any]:
    """Fields a status-only update may carry, keyed by model field name."""
    if not isinstance(payload, Mapping):
        return {}
    partial: dict[str, Any] = {}
    if payload.get("status"):
        partial["status"] = str(payload["status"])
    job_type = _coerce_type(payload.get("type"))
    if job_type is not None:
        partial["type"] = job_type
    scheduled = payload.get("pickupTime") or payload.get("scheduledTime")
    if scheduled:
        partial["scheduled_time"] = str(scheduled)
    reference = payload.get("ref") or payload.get("reference")
    if reference:
        partial["reference"] = str(reference)
    return partial
