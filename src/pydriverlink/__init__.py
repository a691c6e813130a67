"""pydriverlink - Async realtime synchronization client for driver dispatch."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydriverlink")
except PackageNotFoundError:
    __version__ = "0+local"
from pydriverlink._protocol import InboundEvent, OutboundEvent
from pydriverlink.client import ConnectionManager
from pydriverlink.config import DriverLinkConfig
from pydriverlink.connectivity import ConnectivityChange, ConnectivityObserver
from pydriverlink.events import Channel, EventBus
from pydriverlink.exceptions import (
    DriverLinkConfigError,
    DriverLinkError,
    DriverLinkProtocolError,
    DriverLinkTransportError,
)
from pydriverlink.jobs import RealtimeJobList
from pydriverlink.models import (
    ConnectionState,
    Credentials,
    DriverJob,
    JobStatus,
    JobType,
    LocationPoint,
)

__all__ = [
    "__version__",
    "Channel",
    "ConnectionManager",
    "ConnectionState",
    "ConnectivityChange",
    "ConnectivityObserver",
    "Credentials",
    "DriverJob",
    "DriverLinkConfig",
    "DriverLinkConfigError",
    "DriverLinkError",
    "DriverLinkProtocolError",
    "DriverLinkTransportError",
    "EventBus",
    "InboundEvent",
    "JobStatus",
    "JobType",
    "LocationPoint",
    "OutboundEvent",
    "RealtimeJobList",
]
