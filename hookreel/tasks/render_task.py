"""Celery task for rendering one combination."""

import asyncio
import logging
from functools import lru_cache

from celery.signals import task_failure

from hookreel.celery_app import celery_app
from hookreel.config import get_settings
from hookreel.exceptions import HookReelError
from hookreel.jobs.broker_store import (
    PROGRESS_STATE,
    RENDER_TASK_NAME,
    RetentionIndex,
    build_retention_index,
)
from hookreel.jobs.store import PROGRESS_DISPATCHED
from hookreel.render.pipeline import CompositionPipeline
from hookreel.schemas.render import JobResult, RenderJobPayload

logger = logging.getLogger(__name__)

settings = get_settings()


@lru_cache
def _retention_index() -> RetentionIndex:
    return build_retention_index(settings, celery_app)


def retry_countdown(retries: int) -> float:
    """Exponential backoff: 1s, 2s, 4s, ... with the default base."""
    return settings.job_retry_backoff_s * (2 ** retries)


def run_render_job(payload: RenderJobPayload, pipeline: CompositionPipeline | None = None) -> JobResult:
    """Run the composition pipeline synchronously inside a worker process."""
    pipeline = pipeline or CompositionPipeline()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        output_path = loop.run_until_complete(pipeline.compose(payload))
    finally:
        loop.close()

    return JobResult(success=True, output_path=output_path, output_url=payload.output_url)


@celery_app.task(bind=True, name=RENDER_TASK_NAME, max_retries=max(settings.job_max_attempts - 1, 0))
def render_combination_task(self, payload: dict) -> dict:
    """
    Render one combination as a Celery task.

    Retryable failures (stage exits, timeouts) are retried with exponential
    backoff; the job surfaces as failed only after the last attempt.

    Args:
        payload: RenderJobPayload as JSON

    Returns:
        JobResult as a dict
    """
    job_id = self.request.id
    attempt = self.request.retries + 1
    self.update_state(state=PROGRESS_STATE, meta={"progress": PROGRESS_DISPATCHED, "attempt": attempt})
    logger.info(f"[TASK] Processing job {job_id} (attempt {attempt}/{self.max_retries + 1})")

    try:
        result = run_render_job(RenderJobPayload.model_validate(payload))
    except HookReelError as e:
        if e.retryable and self.request.retries < self.max_retries:
            countdown = retry_countdown(self.request.retries)
            logger.warning(f"[TASK] Job {job_id} failed, retrying in {countdown}s: {e}")
            raise self.retry(exc=e, countdown=countdown)
        logger.error(f"[TASK] Job {job_id} failed: {e}")
        result = JobResult(success=False, error=str(e))
    except Exception as e:
        logger.exception(f"[TASK] Job {job_id} failed unexpectedly: {e}")
        result = JobResult(success=False, error=str(e))
    else:
        logger.info(f"[TASK] Job {job_id} completed: {result.output_path}")

    if job_id:
        _retention_index().record_terminal(job_id, failed=not result.success)
    return result.model_dump()


@task_failure.connect
def record_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    """Index render tasks that end in FAILURE without returning a result."""
    if getattr(sender, "name", None) != RENDER_TASK_NAME or not task_id:
        return
    logger.error(f"[TASK] Job {task_id} failed outside the task body: {exception}")
    _retention_index().record_terminal(task_id, failed=True)
