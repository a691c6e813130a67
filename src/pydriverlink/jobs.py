"""Live job lists fed by realtime booking events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from pydriverlink.events import EventBus
from pydriverlink.ingestion.jobs import (
    classify_job_type,
    extract_job_id,
    extract_partial_update,
    normalize_incoming_job,
)
from pydriverlink.ingestion.normalize import first_present, unwrap_envelope
from pydriverlink.models.connection import ConnectionState
from pydriverlink.models.job import DriverJob, JobType

_logger = logging.getLogger(__name__)

JobLoader = Callable[[JobType], Awaitable[Sequence[DriverJob]]]


class RealtimeJobList:
    """One job list (active, upcoming or history) kept current over the socket.

    The initial contents come from *loader* (usually a REST call).
    Assignments are inserted or merged in place, status updates replace the
    job in place or drop it when it moves to another list, and the list is
    refetched once after the connection comes back from a drop.
    """

    def __init__(self, events: EventBus, job_type: JobType, loader: JobLoader) -> None:
        self._job_type = job_type
        self._loader = loader
        self._jobs: list[DriverJob] = []
        self._is_loading = True
        self._has_fetched = False
        self._had_disconnect = False
        self._refetched_after_reconnect = False
        self._refetch_task: asyncio.Task[None] | None = None
        self._unsubscribers = [
            events.booking_assigned.subscribe(self._on_assigned),
            events.booking_status_updated.subscribe(self._on_status_updated),
            events.connection_state.subscribe(self._on_connection_state),
        ]

    @property
    def job_type(self) -> JobType:
        return self._job_type

    @property
    def jobs(self) -> tuple[DriverJob, ...]:
        return tuple(self._jobs)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    async def refresh(self) -> None:
        """Replace the list with a fresh load."""
        try:
            self._jobs = list(await self._loader(self._job_type))
        finally:
            self._is_loading = False
            self._has_fetched = True

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        task = self._refetch_task
        self._refetch_task = None
        if task is not None and not task.done():
            task.cancel()

    def _index_of(self, job_id: str) -> int:
        for index, job in enumerate(self._jobs):
            if job.id == job_id:
                return index
        return -1

    def _on_assigned(self, payload: Any) -> None:
        job = normalize_incoming_job(payload, self._job_type)
        if job is None or job.type != self._job_type:
            return
        index = self._index_of(job.id)
        if index >= 0:
            self._jobs[index] = self._jobs[index].model_copy(update=job.model_dump(exclude_unset=True))
        else:
            self._jobs.insert(0, job)

    def _on_status_updated(self, payload: Any) -> None:
        data = unwrap_envelope(payload)
        job_id = extract_job_id(data)
        if job_id is None:
            return
        index = self._index_of(job_id)
        if index < 0:
            return

        # Without a reference the payload is partial; defaults must not overwrite known fields.
        full = None
        if isinstance(data, Mapping) and first_present(data, "reference", "ref") is not None:
            full = normalize_incoming_job(data)
        partial = full.model_dump(exclude_unset=True) if full is not None else extract_partial_update(data)
        updated = self._jobs[index].model_copy(update=partial)
        if "type" not in partial:
            updated = updated.model_copy(update={"type": classify_job_type(updated.status, updated.scheduled_time)})

        if updated.type != self._job_type:
            del self._jobs[index]
            return
        self._jobs[index] = updated

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state is ConnectionState.DISCONNECTED:
            self._had_disconnect = True
            self._refetched_after_reconnect = False
            return
        if state is not ConnectionState.CONNECTED:
            return
        if not self._had_disconnect or not self._has_fetched or self._refetched_after_reconnect:
            return
        self._refetched_after_reconnect = True
        self._refetch_task = asyncio.get_running_loop().create_task(self._refetch())

    async def _refetch(self) -> None:
        try:
            await self.refresh()
        except Exception:
            _logger.warning("Refetch of %s jobs after reconnect failed", self._job_type, exc_info=True)
