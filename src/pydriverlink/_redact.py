"""Helpers for safe debug logging.

Bearer tokens travel with every handshake and payloads may carry
passenger data, so anything that reaches a DEBUG log goes through
:func:`redact_for_log` first.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "accesstoken",
        "refreshtoken",
        "authorization",
        "auth",
        "cookie",
        "passengerphone",
        "guestphone",
    }
)


def redact_for_log(value: Any, *, max_string: int = 512, max_items: int = 10, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Sequences longer than *max_items* (location batches, mostly) keep
    their first items followed by a count of what was left out.
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): (
                "<redacted>"
                if str(k).lower() in _SENSITIVE_VALUE_KEYS
                else redact_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            )
            for k, v in value.items()
        }

    if isinstance(value, Sequence) and not isinstance(value, bytearray):
        items = [
            redact_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for v in list(value)[:max_items]
        ]
        if len(value) > max_items:
            items.append(f"<+{len(value) - max_items} more>")
        return items

    return repr(value)
