"""Custom exception hierarchy for pydriverlink."""

from __future__ import annotations


class DriverLinkError(Exception):
    """Base exception for all pydriverlink errors."""


class DriverLinkConfigError(DriverLinkError):
    """Invalid or missing configuration (e.g. no token passed to ``connect()``)."""


class DriverLinkTransportError(DriverLinkError):
    """Connection-level failure (not open, handshake failed, write rejected).

    Never surfaced to callers of the send operations; the connection
    manager catches it and queues the payload instead.
    """

    def __init__(self, message: str, *, event: str | None = None) -> None:
        self.event = event
        super().__init__(message)


class DriverLinkProtocolError(DriverLinkError):
    """A frame could not be encoded or decoded."""
