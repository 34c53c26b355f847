"""Job record store: shared read contract and the in-process backend."""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Protocol

from hookreel.exceptions import InvalidJobTransition, JobNotFoundError
from hookreel.schemas.render import JobResult, JobState, JobStatus, RenderJobPayload

logger = logging.getLogger(__name__)

PROGRESS_ADMITTED = 0
PROGRESS_DISPATCHED = 10
PROGRESS_DONE = 100

_STATE_RANK = {
    JobState.WAITING: 0,
    JobState.ACTIVE: 1,
    JobState.COMPLETED: 2,
    JobState.FAILED: 2,
}


class JobStore(Protocol):
    """What callers and schedulers need from either backend."""

    def admit(self, payload: RenderJobPayload) -> str:
        """Record a new job and hand it to the backend's dispatcher."""
        ...

    def get(self, job_id: str) -> JobStatus | None:
        """Current state of ``job_id``, or None if unknown."""
        ...


@dataclass
class JobRecord:
    id: str
    payload: RenderJobPayload
    state: JobState = JobState.WAITING
    progress: int = PROGRESS_ADMITTED
    result: JobResult | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_status(self) -> JobStatus:
        return JobStatus(id=self.id, state=self.state, progress=self.progress, result=self.result)


class InMemoryJobStore:
    """Thread-safe in-memory job records for the lifetime of this object.

    Used when no durable broker is configured. Failures are terminal; nothing
    survives a restart.
    """

    def __init__(self, id_prefix: str = "inmem") -> None:
        self._records: dict[str, JobRecord] = {}
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._id_prefix = id_prefix
        self._listeners: list[Callable[[str], None]] = []

    def subscribe(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(job_id)`` after each admission."""
        self._listeners.append(listener)

    def admit(self, payload: RenderJobPayload) -> str:
        with self._lock:
            job_id = f"{self._id_prefix}_{next(self._counter)}"
            self._records[job_id] = JobRecord(id=job_id, payload=payload)
        logger.info(f"[JOBS] Job {job_id} tracked in memory")
        for listener in self._listeners:
            listener(job_id)
        return job_id

    def get(self, job_id: str) -> JobStatus | None:
        with self._lock:
            record = self._records.get(job_id)
            return record.to_status() if record else None

    def claim(self, job_id: str) -> RenderJobPayload | None:
        """Move a waiting job to active and return its payload.

        Returns None if the job is unknown or already claimed, so at most one
        worker ever owns a job.
        """
        with self._lock:
            record = self._records.get(job_id)
            if record is None or record.state != JobState.WAITING:
                return None
            record.state = JobState.ACTIVE
            record.progress = PROGRESS_DISPATCHED
            record.updated_at = datetime.now(timezone.utc)
            return record.payload

    def advance(
        self,
        job_id: str,
        state: JobState,
        progress: int,
        result: JobResult | None = None,
    ) -> JobStatus:
        """Update a job, enforcing monotonic state and progress."""
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id=job_id)
            if record.state.is_terminal:
                raise InvalidJobTransition(
                    f"Job {job_id} is already {record.state.value}"
                )
            if _STATE_RANK[state] < _STATE_RANK[record.state]:
                raise InvalidJobTransition(
                    f"Job {job_id} cannot move from {record.state.value} to {state.value}"
                )
            if progress < record.progress:
                raise InvalidJobTransition(
                    f"Job {job_id} progress cannot decrease ({record.progress} -> {progress})"
                )
            record.state = state
            record.progress = progress
            if result is not None:
                record.result = result
            record.updated_at = datetime.now(timezone.utc)
            return record.to_status()

    def count(self, state: JobState) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.state == state)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
