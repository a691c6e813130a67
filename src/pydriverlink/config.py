"""Client configuration for pydriverlink."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pydriverlink import _constants as c


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _derive_socket_url(api_base_url: str, ws_path: str) -> str:
    """Turn the REST base URL into the realtime endpoint.

    ``https://host/api`` -> ``wss://host/ws``.
    """
    url = api_base_url.strip().rstrip("/")
    if url.endswith("/api"):
        url = url[: -len("/api")]
    if url.startswith("https://"):
        url = "wss://" + url[len("https://") :]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://") :]
    path = ws_path if ws_path.startswith("/") else f"/{ws_path}"
    return f"{url}{path}"


@dataclasses.dataclass(frozen=True)
class DriverLinkConfig:
    """Client configuration.

    Parameters
    ----------
    api_base_url : str
        REST base URL of the dispatch backend. The realtime endpoint is
        derived from it unless ``socket_url`` is given.
    socket_url : str or None
        Explicit ``ws://``/``wss://`` endpoint. Overrides derivation.
    ws_path : str
        Path appended to the derived endpoint.
    connect_timeout : float
        Seconds to wait for the WebSocket handshake.
    ws_heartbeat : float or None
        Transport-level ping interval in seconds (``None`` disables it).
    reconnect_base_delay : float
        First reconnect delay in seconds; doubled on every failure.
    reconnect_max_delay : float
        Upper bound for the reconnect delay.
    max_reconnect_attempts : int
        Consecutive failed attempts after which automatic reconnection
        stops. A manual ``connect()`` starts counting again from zero.
    queue_capacity : int
        Maximum number of distinct keys held by the outbound queue.
    queue_default_ttl : float
        TTL in seconds for queued messages when the caller gives none.
    queue_min_ttl : float
        Lower bound applied to every TTL.
    heartbeat_interval : float
        Seconds between liveness messages while connected.
    heartbeat_ttl : float
        TTL of a queued heartbeat.
    location_batch_interval : float
        Seconds between background batch flushes.
    location_buffer_size : int
        Maximum number of buffered location points (oldest dropped).
    connectivity_debounce : float
        Delay before a network/lifecycle change is applied to the
        connection. ``0`` applies it immediately.
    """

    api_base_url: str = c.API_BASE_URL
    socket_url: str | None = None
    ws_path: str = c.WS_PATH
    connect_timeout: float = c.CONNECT_TIMEOUT
    ws_heartbeat: float | None = 25.0
    reconnect_base_delay: float = c.RECONNECT_BASE_DELAY
    reconnect_max_delay: float = c.RECONNECT_MAX_DELAY
    max_reconnect_attempts: int = c.MAX_RECONNECT_ATTEMPTS
    queue_capacity: int = c.QUEUE_CAPACITY
    queue_default_ttl: float = c.QUEUE_DEFAULT_TTL
    queue_min_ttl: float = c.QUEUE_MIN_TTL
    heartbeat_interval: float = c.HEARTBEAT_INTERVAL
    heartbeat_ttl: float = c.HEARTBEAT_TTL
    location_batch_interval: float = c.LOCATION_BATCH_INTERVAL
    location_buffer_size: int = c.LOCATION_BUFFER_SIZE
    connectivity_debounce: float = 0.0

    @property
    def endpoint_url(self) -> str:
        """Realtime endpoint the transport connects to."""
        if self.socket_url:
            return self.socket_url
        return _derive_socket_url(self.api_base_url, self.ws_path)

    @classmethod
    def from_env(cls, **overrides: Any) -> DriverLinkConfig:
        """Create configuration from ``DRIVERLINK_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "DRIVERLINK_API_BASE_URL": "api_base_url",
            "DRIVERLINK_SOCKET_URL": "socket_url",
            "DRIVERLINK_WS_PATH": "ws_path",
        }
        _ENV_FLOAT_MAP = {
            "DRIVERLINK_CONNECT_TIMEOUT": "connect_timeout",
            "DRIVERLINK_RECONNECT_BASE_DELAY": "reconnect_base_delay",
            "DRIVERLINK_RECONNECT_MAX_DELAY": "reconnect_max_delay",
            "DRIVERLINK_QUEUE_DEFAULT_TTL": "queue_default_ttl",
            "DRIVERLINK_HEARTBEAT_INTERVAL": "heartbeat_interval",
            "DRIVERLINK_HEARTBEAT_TTL": "heartbeat_ttl",
            "DRIVERLINK_LOCATION_BATCH_INTERVAL": "location_batch_interval",
            "DRIVERLINK_CONNECTIVITY_DEBOUNCE": "connectivity_debounce",
        }
        _ENV_INT_MAP = {
            "DRIVERLINK_MAX_RECONNECT_ATTEMPTS": "max_reconnect_attempts",
            "DRIVERLINK_QUEUE_CAPACITY": "queue_capacity",
            "DRIVERLINK_LOCATION_BUFFER_SIZE": "location_buffer_size",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        # Transport pings can be switched off entirely.
        if "ws_heartbeat" not in overrides and not _env_bool(env.get("DRIVERLINK_WS_PING_ENABLED"), True):
            config_kwargs["ws_heartbeat"] = None

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
