from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from pydriverlink.events import EventBus
from pydriverlink.jobs import RealtimeJobList
from pydriverlink.models.connection import ConnectionState
from pydriverlink.models.job import DriverJob, JobType


def _job(job_id: str, status: str = "ASSIGNED", job_type: JobType = JobType.ACTIVE, **extra: object) -> DriverJob:
    return DriverJob.model_validate(
        {"id": job_id, "reference": f"REF-{job_id}", "status": status, "type": job_type, **extra}
    )


class _Loader:
    def __init__(self, *batches: Sequence[DriverJob]) -> None:
        self._batches = list(batches)
        self.calls: list[JobType] = []

    async def __call__(self, job_type: JobType) -> Sequence[DriverJob]:
        self.calls.append(job_type)
        if len(self._batches) > 1:
            return self._batches.pop(0)
        return self._batches[0]


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_refresh_loads_initial_jobs() -> None:
    bus = EventBus()
    loader = _Loader([_job("a"), _job("b")])
    jobs = RealtimeJobList(bus, JobType.ACTIVE, loader)
    assert jobs.is_loading

    await jobs.refresh()

    assert [j.id for j in jobs.jobs] == ["a", "b"]
    assert not jobs.is_loading
    assert loader.calls == [JobType.ACTIVE]


@pytest.mark.asyncio
async def test_assignment_is_prepended_or_merged_in_place() -> None:
    bus = EventBus()
    jobs = RealtimeJobList(bus, JobType.ACTIVE, _Loader([_job("a", passengerName="Ann"), _job("b")]))
    await jobs.refresh()

    bus.booking_assigned.publish({"booking": {"id": "c", "ref": "R-c", "status": "ASSIGNED"}})
    bus.booking_assigned.publish({"id": "b", "reference": "REF-b", "status": "EN_ROUTE", "notes": "gate 4"})

    assert [j.id for j in jobs.jobs] == ["c", "a", "b"]
    assert jobs.jobs[2].status == "EN_ROUTE"
    assert jobs.jobs[2].notes == "gate 4"


@pytest.mark.asyncio
async def test_assignment_for_another_list_is_ignored() -> None:
    bus = EventBus()
    jobs = RealtimeJobList(bus, JobType.ACTIVE, _Loader([]))
    await jobs.refresh()

    bus.booking_assigned.publish({"id": "h", "reference": "R", "status": "COMPLETED"})
    bus.booking_assigned.publish({"nonsense": True})

    assert jobs.jobs == ()


@pytest.mark.asyncio
async def test_status_update_replaces_in_place_keeping_known_fields() -> None:
    bus = EventBus()
    jobs = RealtimeJobList(bus, JobType.ACTIVE, _Loader([_job("a"), _job("b", passengerName="Bob")]))
    await jobs.refresh()

    bus.booking_status_updated.publish({"bookingId": "b", "status": "ARRIVED"})

    assert [j.id for j in jobs.jobs] == ["a", "b"]
    assert jobs.jobs[1].status == "ARRIVED"
    assert jobs.jobs[1].passenger_name == "Bob"


@pytest.mark.asyncio
async def test_status_update_moving_job_to_history_removes_it() -> None:
    bus = EventBus()
    jobs = RealtimeJobList(bus, JobType.ACTIVE, _Loader([_job("a"), _job("b")]))
    await jobs.refresh()

    bus.booking_status_updated.publish({"id": "a", "status": "COMPLETED"})
    bus.booking_status_updated.publish({"id": "unknown", "status": "COMPLETED"})

    assert [j.id for j in jobs.jobs] == ["b"]


@pytest.mark.asyncio
async def test_refetches_once_after_reconnect() -> None:
    bus = EventBus()
    loader = _Loader([_job("a")], [_job("a"), _job("new")])
    jobs = RealtimeJobList(bus, JobType.ACTIVE, loader)
    await jobs.refresh()

    bus.connection_state.publish(ConnectionState.CONNECTED)
    await _settle()
    assert len(loader.calls) == 1

    bus.connection_state.publish(ConnectionState.DISCONNECTED)
    bus.connection_state.publish(ConnectionState.CONNECTING)
    bus.connection_state.publish(ConnectionState.CONNECTED)
    bus.connection_state.publish(ConnectionState.CONNECTED)
    await _settle()

    assert len(loader.calls) == 2
    assert [j.id for j in jobs.jobs] == ["a", "new"]


@pytest.mark.asyncio
async def test_close_unsubscribes() -> None:
    bus = EventBus()
    jobs = RealtimeJobList(bus, JobType.ACTIVE, _Loader([]))
    await jobs.refresh()
    jobs.close()

    bus.booking_assigned.publish({"id": "c", "reference": "R", "status": "ASSIGNED"})

    assert jobs.jobs == ()
    assert len(bus.connection_state) == 0
