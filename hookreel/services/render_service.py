"""Submit / query contract for batch renders.

Callers (an HTTP layer, a script) submit a batch of combinations and poll job
ids. The backend is chosen once, by configuration: Celery when REDIS_URL is
set, otherwise the in-process store and scheduler.
"""

import logging
from pathlib import Path
from uuid import uuid4

from pydantic import ValidationError

from hookreel.config import Settings, get_settings
from hookreel.exceptions import JobNotFoundError, MissingAssetFailure, ValidationFailure
from hookreel.jobs.scheduler import LocalScheduler
from hookreel.jobs.store import InMemoryJobStore, JobStore
from hookreel.render.pipeline import CompositionPipeline
from hookreel.schemas.render import (
    BatchRequest,
    BatchSubmission,
    Clip,
    ClipKind,
    Combination,
    JobStatus,
    RenderJobPayload,
    TrimWindow,
)
from hookreel.services.clip_library import ClipLibrary, ClipResolver

logger = logging.getLogger(__name__)


def parse_batch_request(data: dict) -> BatchRequest:
    """Validate raw request data; malformed settings never create jobs."""
    try:
        return BatchRequest.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationFailure(f"Invalid render request: {details}") from e


class RenderService:
    """Admits batches into a job store and answers status queries."""

    def __init__(
        self,
        store: JobStore,
        clips: ClipResolver,
        settings: Settings | None = None,
        scheduler: LocalScheduler | None = None,
    ):
        self.store = store
        self.clips = clips
        self.settings = settings or get_settings()
        self.scheduler = scheduler

    async def start(self) -> None:
        """Start the in-process worker pool, if this backend has one."""
        if self.scheduler:
            await self.scheduler.start()

    async def stop(self) -> None:
        if self.scheduler:
            await self.scheduler.stop()

    def submit(self, request: BatchRequest, batch_id: str | None = None) -> BatchSubmission:
        """
        Admit one job per valid combination.

        Combinations that reference missing clips or impossible trims are
        skipped with a warning; the rest are admitted and start as soon as a
        worker slot is free.
        """
        batch_id = batch_id or str(uuid4())
        job_ids: list[str] = []
        skipped: list[int] = []

        for index, combination in enumerate(request.combinations, start=1):
            try:
                payload = self.build_payload(request, combination, batch_id, index)
            except (MissingAssetFailure, ValidationFailure) as e:
                logger.warning(f"[SUBMIT] Skipping combination {index} of batch {batch_id}: {e}")
                skipped.append(index)
                continue
            job_ids.append(self.store.admit(payload))

        logger.info(f"[SUBMIT] Generation batch {batch_id} started: {len(job_ids)} jobs, {len(skipped)} skipped")
        return BatchSubmission(batch_id=batch_id, job_ids=job_ids, skipped=skipped)

    def status(self, job_id: str) -> JobStatus:
        status = self.store.get(job_id)
        if status is None:
            raise JobNotFoundError(job_id=job_id)
        return status

    def output_filename(self, batch_id: str, index: int) -> str:
        return f"{batch_id}_{index}.{self.settings.output_extension}"

    def output_path(self, batch_id: str, index: int) -> Path:
        return Path(self.settings.output_dir) / self.output_filename(batch_id, index)

    def output_url(self, batch_id: str, index: int) -> str:
        return f"{self.settings.output_url_prefix.rstrip('/')}/{self.output_filename(batch_id, index)}"

    def build_payload(
        self,
        request: BatchRequest,
        combination: Combination,
        batch_id: str,
        index: int,
    ) -> RenderJobPayload:
        reaction = self._require(ClipKind.REACTION, combination.reaction_id)
        demo = self._require(ClipKind.DEMO, combination.demo_id)

        music_id = combination.music_id or request.audio_settings.music_id
        music = self._require(ClipKind.MUSIC, music_id) if music_id else None

        reaction_trim = combination.reaction_trim or TrimWindow()
        _check_trim(reaction, reaction_trim)
        if combination.demo_trim:
            _check_trim(demo, combination.demo_trim)

        hook_text = ""
        if 0 <= combination.hook_index < len(request.hooks):
            hook_text = request.hooks[combination.hook_index]

        return RenderJobPayload(
            reaction_path=reaction.path,
            demo_path=demo.path,
            music_path=music.path if music else None,
            hook_text=hook_text,
            output_path=str(self.output_path(batch_id, index)),
            output_url=self.output_url(batch_id, index),
            reaction_trim=reaction_trim,
            demo_trim=combination.demo_trim,
            reaction_duration=self.settings.reaction_duration,
            width=self.settings.output_width,
            height=self.settings.output_height,
            text_settings=request.text_settings,
            music_volume=request.audio_settings.music_volume,
        )

    def _require(self, kind: ClipKind, clip_id: str) -> Clip:
        clip = self.clips.resolve(kind, clip_id)
        if clip is None:
            raise MissingAssetFailure(f"{kind.value} clip not found: {clip_id}")
        return clip


def _check_trim(clip: Clip, trim: TrimWindow) -> None:
    if clip.duration_hint_s is not None and trim.start_s >= clip.duration_hint_s:
        raise ValidationFailure(
            f"Trim start {trim.start_s}s is past the end of {clip.kind.value} clip {clip.id} "
            f"({clip.duration_hint_s}s)"
        )


def build_render_service(
    settings: Settings | None = None,
    clips: ClipResolver | None = None,
    pipeline: CompositionPipeline | None = None,
) -> RenderService:
    """Wire the backend once: Celery when a broker is configured, else in-process."""
    settings = settings or get_settings()
    clips = clips or ClipLibrary(settings.data_dir)

    if settings.has_redis:
        from hookreel.celery_app import celery_app
        from hookreel.jobs.broker_store import CeleryJobStore, build_retention_index

        logger.info("[JOBS] Using Celery queue with Redis")
        store = CeleryJobStore(celery_app, build_retention_index(settings, celery_app))
        return RenderService(store, clips, settings)

    logger.warning("[JOBS] Running without Redis - using in-process processing")
    memory_store = InMemoryJobStore()
    scheduler = LocalScheduler(
        memory_store,
        pipeline or CompositionPipeline(settings=settings),
        concurrency=settings.worker_concurrency,
    )
    return RenderService(memory_store, clips, settings, scheduler=scheduler)
