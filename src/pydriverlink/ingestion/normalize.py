"""Normalization helpers.

Centralizes defensive parsing of loosely-typed backend payloads.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    """Return the first value among *keys* that is not ``None``."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def unwrap_envelope(payload: Any) -> Any:
    """Backend events sometimes nest the job under ``booking`` or ``job``."""
    if isinstance(payload, Mapping):
        for key in ("booking", "job"):
            nested = payload.get(key)
            if nested is not None:
                return nested
    return payload
