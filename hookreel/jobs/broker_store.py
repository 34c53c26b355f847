"""Durable job store backed by Celery + Redis.

State and progress come from Celery's own result backend. A small Redis
index remembers which ids were admitted (Celery reports unknown ids as
PENDING), evicts terminal jobs by age and count, and drops records older
than the result backend keeps results.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable
from uuid import uuid4

import redis
from celery import Celery, states

from hookreel.config import Settings
from hookreel.jobs.store import PROGRESS_ADMITTED, PROGRESS_DISPATCHED, PROGRESS_DONE
from hookreel.schemas.render import JobResult, JobState, JobStatus, RenderJobPayload

logger = logging.getLogger(__name__)

RENDER_TASK_NAME = "hookreel.render_combination"
PROGRESS_STATE = "PROGRESS"


@dataclass(frozen=True)
class RetentionPolicy:
    max_age_s: int
    max_count: int


class RetentionIndex:
    """Redis index of admitted jobs with age/count eviction of finished ones.

    ``{prefix}:jobs`` scores every admitted id by admission time; the
    completed and failed sets score finished ids by completion time. Ids
    older than ``registry_ttl_s`` are dropped whatever their state, so jobs
    whose terminal state was never recorded cannot pile up.
    """

    def __init__(
        self,
        client: redis.Redis,
        completed: RetentionPolicy,
        failed: RetentionPolicy,
        prefix: str = "hookreel",
        on_evict: Callable[[str], None] | None = None,
        registry_ttl_s: int | None = None,
    ) -> None:
        self.client = client
        self.completed = completed
        self.failed = failed
        self.on_evict = on_evict
        self.registry_ttl_s = registry_ttl_s
        self.jobs_key = f"{prefix}:jobs"
        self.completed_key = f"{prefix}:completed"
        self.failed_key = f"{prefix}:failed"

    def register(self, job_id: str, now: float | None = None) -> None:
        now = now if now is not None else time.time()
        self.client.zadd(self.jobs_key, {job_id: now})
        self.expire_stale(now)

    def is_known(self, job_id: str) -> bool:
        return self.client.zscore(self.jobs_key, job_id) is not None

    def is_terminal(self, job_id: str) -> bool:
        return any(
            self.client.zscore(key, job_id) is not None
            for key in (self.completed_key, self.failed_key)
        )

    def is_stale(self, job_id: str, now: float | None = None) -> bool:
        if not self.registry_ttl_s:
            return False
        admitted_at = self.client.zscore(self.jobs_key, job_id)
        now = now if now is not None else time.time()
        return admitted_at is not None and float(admitted_at) <= now - self.registry_ttl_s

    def record_terminal(self, job_id: str, failed: bool, now: float | None = None) -> list[str]:
        """Index a finished job and evict whatever the policy no longer keeps."""
        now = now if now is not None else time.time()
        key, policy = (self.failed_key, self.failed) if failed else (self.completed_key, self.completed)
        self.client.zadd(key, {job_id: now})
        return self._prune(key, policy, now)

    def expire_stale(self, now: float | None = None) -> list[str]:
        """Drop ids admitted more than ``registry_ttl_s`` ago."""
        if not self.registry_ttl_s:
            return []
        now = now if now is not None else time.time()
        stale = [_text(v) for v in self.client.zrangebyscore(self.jobs_key, "-inf", now - self.registry_ttl_s)]
        if stale:
            self.forget(*stale)
            logger.info(f"[RETENTION] Expired {len(stale)} stale job records")
        return stale

    def forget(self, *job_ids: str) -> None:
        self.client.zrem(self.jobs_key, *job_ids)
        self.client.zrem(self.completed_key, *job_ids)
        self.client.zrem(self.failed_key, *job_ids)
        for job_id in job_ids:
            if self.on_evict:
                self.on_evict(job_id)

    def _prune(self, key: str, policy: RetentionPolicy, now: float) -> list[str]:
        evicted = [_text(v) for v in self.client.zrangebyscore(key, "-inf", now - policy.max_age_s)]
        overflow = self.client.zcard(key) - len(evicted) - policy.max_count
        if overflow > 0:
            start = len(evicted)
            evicted.extend(_text(v) for v in self.client.zrange(key, start, start + overflow - 1))
        if not evicted:
            return []

        self.forget(*evicted)
        logger.info(f"[RETENTION] Evicted {len(evicted)} jobs from {key}")
        return evicted


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def build_retention_index(settings: Settings, app: Celery) -> RetentionIndex:
    client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    return RetentionIndex(
        client,
        completed=RetentionPolicy(settings.completed_retention_age_s, settings.completed_retention_count),
        failed=RetentionPolicy(settings.failed_retention_age_s, settings.failed_retention_count),
        prefix=settings.queue_name,
        on_evict=lambda job_id: app.AsyncResult(job_id).forget(),
        registry_ttl_s=settings.job_record_ttl_s,
    )


def status_from_task_state(job_id: str, state: str, info: Any) -> JobStatus:
    """Map a Celery task state (and its meta) onto the job state machine."""
    if state == states.PENDING:
        return JobStatus(id=job_id, state=JobState.WAITING, progress=PROGRESS_ADMITTED)

    if state == states.SUCCESS:
        result = JobResult.model_validate(info) if isinstance(info, dict) else JobResult(
            success=False, error="Invalid job result format"
        )
        job_state = JobState.COMPLETED if result.success else JobState.FAILED
        return JobStatus(id=job_id, state=job_state, progress=PROGRESS_DONE, result=result)

    if state in (states.FAILURE, states.REVOKED):
        error = str(info) if info else state.lower()
        return JobStatus(
            id=job_id,
            state=JobState.FAILED,
            progress=PROGRESS_DONE,
            result=JobResult(success=False, error=error),
        )

    # STARTED, PROGRESS, RETRY: the job is owned by a worker
    progress = PROGRESS_DISPATCHED
    if state == PROGRESS_STATE and isinstance(info, dict):
        progress = max(PROGRESS_DISPATCHED, min(int(info.get("progress", 0)), PROGRESS_DONE - 1))
    return JobStatus(id=job_id, state=JobState.ACTIVE, progress=progress)


class CeleryJobStore:
    """Job store for the durable broker backend."""

    def __init__(
        self,
        app: Celery,
        retention: RetentionIndex,
        task_name: str = RENDER_TASK_NAME,
    ) -> None:
        self.app = app
        self.retention = retention
        self.task_name = task_name

    def admit(self, payload: RenderJobPayload) -> str:
        job_id = str(uuid4())
        self.retention.register(job_id)
        self.app.send_task(
            self.task_name,
            args=[payload.model_dump(mode="json")],
            task_id=job_id,
        )
        logger.info(f"[JOBS] Job {job_id} added to Redis queue")
        return job_id

    def get(self, job_id: str) -> JobStatus | None:
        if not self.retention.is_known(job_id):
            return None
        result = self.app.AsyncResult(job_id)
        state = result.state

        if state == states.PENDING and (
            self.retention.is_terminal(job_id) or self.retention.is_stale(job_id)
        ):
            # The stored result expired; reporting it as waiting would move the job backwards
            self.retention.forget(job_id)
            logger.info(f"[JOBS] Job {job_id} result expired; record dropped")
            return None

        if state in (states.FAILURE, states.REVOKED) and not self.retention.is_terminal(job_id):
            # Ended outside the task body (hard time limit, revoke)
            self.retention.record_terminal(job_id, failed=True)

        return status_from_task_state(job_id, state, result.info)
