"""Pydantic models and enums used across pydriverlink."""

from pydriverlink.models.connection import ConnectionState
from pydriverlink.models.credentials import Credentials
from pydriverlink.models.job import DriverJob, JobStatus, JobType
from pydriverlink.models.location import LocationPoint

__all__ = [
    "ConnectionState",
    "Credentials",
    "DriverJob",
    "JobStatus",
    "JobType",
    "LocationPoint",
]
