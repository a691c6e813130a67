"""Bounded, deduplicated, TTL-expiring outbound queue."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from pydriverlink._constants import QUEUE_CAPACITY, QUEUE_DEFAULT_TTL, QUEUE_MIN_TTL
from pydriverlink._protocol import derive_key
from pydriverlink.exceptions import DriverLinkProtocolError, DriverLinkTransportError

_logger = logging.getLogger(__name__)

SendFn = Callable[[str, Any], None]


@dataclass(slots=True)
class QueuedMessage:
    """A not-yet-sent protocol message.

    ``expires_at`` is on the queue's clock (monotonic seconds).
    """

    key: str
    event: str
    payload: Any
    expires_at: float


class OutboundQueue:
    """Holds messages until a connected window opens.

    At most one entry exists per key: enqueueing an existing key replaces
    the payload and refreshes the expiry but keeps the entry's original
    position, both for flush order and for eviction. When more than
    ``capacity`` keys are held the oldest position is evicted.
    """

    def __init__(
        self,
        *,
        capacity: int = QUEUE_CAPACITY,
        default_ttl: float = QUEUE_DEFAULT_TTL,
        min_ttl: float = QUEUE_MIN_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._default_ttl = default_ttl
        self._min_ttl = min_ttl
        self._clock = clock
        # dict keeps insertion order and re-assignment does not move a key.
        self._entries: dict[str, QueuedMessage] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[QueuedMessage]:
        return iter(list(self._entries.values()))

    def keys(self) -> list[str]:
        return list(self._entries)

    def get(self, key: str) -> QueuedMessage | None:
        return self._entries.get(key)

    def enqueue(self, event: str, payload: Any, *, key: str | None = None, ttl: float | None = None) -> QueuedMessage:
        """Insert or replace the entry for *key* (derived from event + payload by default)."""
        resolved_key = key or derive_key(event, payload)
        effective_ttl = max(self._min_ttl, self._default_ttl if ttl is None else ttl)
        message = QueuedMessage(
            key=resolved_key,
            event=str(event),
            payload=payload,
            expires_at=self._clock() + effective_ttl,
        )
        self._entries[resolved_key] = message

        while len(self._entries) > self._capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            _logger.debug("Outbound queue full, evicted key=%s", oldest)
        return message

    def discard(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, message in self._entries.items() if message.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def flush(self, send: SendFn) -> int:
        """Send queued messages in order; returns how many were sent.

        Expired entries and entries whose payload cannot be encoded are
        dropped without being sent. The first :class:`DriverLinkTransportError`
        stops the flush and leaves the remaining entries (including the
        failed one) queued.
        """
        sent = 0
        for message in list(self._entries.values()):
            if self._entries.get(message.key) is not message:
                continue
            if message.expires_at <= self._clock():
                del self._entries[message.key]
                _logger.debug("Dropping expired queued message key=%s", message.key)
                continue
            try:
                send(message.event, message.payload)
            except DriverLinkProtocolError:
                self._entries.pop(message.key, None)
                _logger.warning("Dropping queued %s: payload cannot be encoded", message.event, exc_info=True)
                continue
            except DriverLinkTransportError as exc:
                _logger.debug("Flush stopped at key=%s: %s", message.key, exc)
                break
            # Only remove what was actually sent; send() may have replaced it.
            if self._entries.get(message.key) is message:
                del self._entries[message.key]
            sent += 1
        return sent

    def clear(self) -> None:
        self._entries.clear()
