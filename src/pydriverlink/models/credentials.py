"""Per-connection credentials."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Credentials(BaseModel):
    """Driver identity plus the bearer token attached to the handshake.

    The token is opaque; refreshing it is the caller's business.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    driver_id: str
    token: str

    def __repr__(self) -> str:
        return f"Credentials(driver_id={self.driver_id!r}, token=<redacted>)"

    __str__ = __repr__
