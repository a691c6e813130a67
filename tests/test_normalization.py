from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pydriverlink.ingestion.jobs import (
    classify_job_type,
    extract_job_id,
    extract_partial_update,
    normalize_incoming_job,
)
from pydriverlink.ingestion.normalize import first_present, safe_float, safe_str, unwrap_envelope
from pydriverlink.models.job import JobType

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, None), ("", None), ("1.5", 1.5), (2, 2.0), ("abc", None), (float("nan"), None), (True, None)],
)
def test_safe_float(value: object, expected: float | None) -> None:
    assert safe_float(value) == expected


def test_safe_str_and_first_present() -> None:
    assert safe_str("  ") is None
    assert safe_str(12) == "12"
    assert first_present({"a": None, "b": 0}, "a", "b") == 0


def test_unwrap_envelope() -> None:
    assert unwrap_envelope({"booking": {"id": "1"}}) == {"id": "1"}
    assert unwrap_envelope({"job": {"id": "2"}}) == {"id": "2"}
    assert unwrap_envelope({"id": "3"}) == {"id": "3"}


@pytest.mark.parametrize(
    ("status", "scheduled", "expected"),
    [
        ("COMPLETED", None, JobType.HISTORY),
        ("CANCELLED", "2030-01-01T00:00:00Z", JobType.HISTORY),
        ("ASSIGNED", "2025-06-02T09:00:00+00:00", JobType.UPCOMING),
        ("ASSIGNED", "2025-05-31T09:00:00", JobType.ACTIVE),
        ("EN_ROUTE", None, JobType.ACTIVE),
        ("ASSIGNED", "not a date", JobType.ACTIVE),
    ],
)
def test_classify_job_type(status: str, scheduled: str | None, expected: JobType) -> None:
    assert classify_job_type(status, scheduled, NOW) is expected


def test_normalize_full_shape_keeps_explicit_type() -> None:
    job = normalize_incoming_job(
        {
            "id": "j1",
            "reference": "REF-1",
            "status": "ASSIGNED",
            "type": "upcoming",
            "passengerName": "Ann",
            "scheduledTime": "2025-05-01T00:00:00Z",
        },
        now=NOW,
    )

    assert job is not None
    assert job.type is JobType.UPCOMING
    assert job.passenger_name == "Ann"
    assert job.reference == "REF-1"


def test_normalize_backend_booking_shape() -> None:
    job = normalize_incoming_job(
        {
            "booking": {
                "id": "b1",
                "ref": "BK-77",
                "status": "ASSIGNED",
                "guestName": "Bob",
                "guestPhone": "+44 1",
                "pickupLocation": "Terminal 5",
                "pickupTime": "2025-06-03T10:00:00Z",
                "vehicle": {"registrationNo": "AB12 CDE"},
                "paymentAmount": "42.50",
            }
        },
        now=NOW,
    )

    assert job is not None
    assert job.reference == "BK-77"
    assert job.type is JobType.UPCOMING
    assert job.passenger_phone == "+44 1"
    assert job.pickup == {"addressLine": "Terminal 5"}
    assert job.vehicle_number == "AB12 CDE"
    assert job.payment_amount == pytest.approx(42.5)


def test_normalize_booking_shape_uses_default_type() -> None:
    job = normalize_incoming_job({"id": "b2", "status": "ASSIGNED"}, JobType.ACTIVE, now=NOW)

    assert job is not None
    assert job.type is JobType.ACTIVE
    assert job.reference == "b2"
    assert job.passenger_name == "Customer"


@pytest.mark.parametrize("payload", [None, [], {"id": 5, "status": "ASSIGNED"}, {"id": "x"}])
def test_normalize_rejects_unusable_payloads(payload: object) -> None:
    assert normalize_incoming_job(payload) is None


def test_extract_helpers() -> None:
    assert extract_job_id({"bookingId": "b1"}) == "b1"
    assert extract_job_id("b1") is None
    assert extract_partial_update({"id": "b1", "status": "ARRIVED", "type": "active", "ref": "R"}) == {
        "status": "ARRIVED",
        "type": JobType.ACTIVE,
        "reference": "R",
    }
