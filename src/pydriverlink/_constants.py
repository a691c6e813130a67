"""Internal constants shared across the library."""

API_BASE_URL = "http://localhost:3000"
WS_PATH = "/ws"
USER_AGENT = "pydriverlink"

# Reconnection backoff (seconds).
RECONNECT_BASE_DELAY: float = 1.0
RECONNECT_MAX_DELAY: float = 5.0
MAX_RECONNECT_ATTEMPTS: int = 10
CONNECT_TIMEOUT: float = 20.0

# Outbound queue.
QUEUE_CAPACITY: int = 250
QUEUE_DEFAULT_TTL: float = 300.0
QUEUE_MIN_TTL: float = 1.0

# Liveness.
HEARTBEAT_INTERVAL: float = 10.0
HEARTBEAT_TTL: float = 45.0

# Background location batching.
LOCATION_BATCH_INTERVAL: float = 5.0
LOCATION_BUFFER_SIZE: int = 100

# Payload fields tried, in order, when deriving a dedup key for a queued message.
ID_FIELDS: tuple[str, ...] = ("bookingId", "rideId", "driverId", "id")


def reconnect_delay(attempt: int, *, base: float = RECONNECT_BASE_DELAY, cap: float = RECONNECT_MAX_DELAY) -> float:
    """Backoff delay in seconds for the 0-indexed reconnect *attempt*.

    ``min(base * 2**attempt, cap)``: 1, 2, 4, 5, 5, ... with the defaults.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # Avoid building huge floats for long failure streaks.
    if attempt > 32:
        return cap
    return min(base * (2**attempt), cap)
