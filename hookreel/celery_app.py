"""Celery application configuration."""

from celery import Celery

from hookreel.config import get_settings

settings = get_settings()

celery_app = Celery(
    "hookreel",
    broker=settings.redis_url or None,
    backend=settings.redis_url or None,
    include=["hookreel.tasks.render_task"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_default_queue=settings.queue_name,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max per task
    task_soft_time_limit=3300,  # Soft limit 55 minutes
    worker_concurrency=settings.worker_concurrency,
    worker_prefetch_multiplier=1,  # One job per slot at a time
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,  # Requeue if worker dies
    result_expires=settings.job_record_ttl_s,  # Outlives the retention index entries
)
