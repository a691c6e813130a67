"""Location sample model."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pydriverlink.ingestion.normalize import safe_float

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class LocationPoint(BaseModel):
    """One GPS fix produced by the location sampler.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    heading : float or None
        Course over ground in degrees.
    speed : float or None
        Speed as reported by the device.
    timestamp : int
        Epoch milliseconds of the fix. Seconds and ``datetime`` values are
        converted. Defaults to *now*.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "lng", "lon"))
    heading: float | None = Field(default=None, validation_alias=AliasChoices("heading", "course", "direction"))
    speed: float | None = None
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("latitude")
    @classmethod
    def _check_latitude(cls, value: float) -> float:
        if not -90.0 <= value <= 90.0:
            raise ValueError(f"latitude out of range: {value}")
        return value

    @field_validator("longitude")
    @classmethod
    def _check_longitude(cls, value: float) -> float:
        if not -180.0 <= value <= 180.0:
            raise ValueError(f"longitude out of range: {value}")
        return value

    @field_validator("heading", "speed", mode="before")
    @classmethod
    def _coerce_optional(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        if value is None:
            return now_ms()
        if isinstance(value, datetime):
            return int(value.timestamp() * 1000)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if 0 < value < _MS_THRESHOLD:
                return int(value * 1000)
            return int(value)
        return value

    def to_wire(self) -> dict[str, Any]:
        """camelCase payload without the optional fields that are unset."""
        return self.model_dump(by_alias=True, exclude_none=True)
