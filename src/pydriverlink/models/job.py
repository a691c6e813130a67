"""Driver job (booking) model as kept by the live job lists."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JobType(StrEnum):
    ACTIVE = "ACTIVE"
    UPCOMING = "UPCOMING"
    HISTORY = "HISTORY"


class JobStatus(StrEnum):
    ASSIGNED = "ASSIGNED"
    EN_ROUTE = "EN_ROUTE"
    ARRIVED = "ARRIVED"
    PICKED_UP = "PICKED_UP"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


#: Statuses after which a job only shows up in history.
TERMINAL_STATUSES: frozenset[str] = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED})


class DriverJob(BaseModel):
    """A job as shown in the driver's lists.

    ``status`` stays a plain string: the backend may introduce statuses
    this client does not know about yet.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str
    reference: str
    status: str
    type: JobType
    ride_type: str | None = None
    source: str | None = None
    vehicle_number: str | None = None
    pickup: dict[str, Any] | None = None
    dropoff: dict[str, Any] | None = None
    pickup_coords: dict[str, Any] | None = None
    drop_coords: dict[str, Any] | None = None
    payment_amount: float | None = None
    final_price: float | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    passenger_name: str = "Customer"
    passenger_phone: str = ""
    passenger_email: str | None = None
    scheduled_time: str | None = None
    notes: str | None = None
    flight_no: str | None = None
    flight_eta: str | None = None
