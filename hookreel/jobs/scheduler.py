"""In-process scheduler: a fixed pool of asyncio worker slots.

Used with ``InMemoryJobStore`` when no durable broker is configured. Each slot
runs one job at a time; admitted jobs wait in FIFO order until a slot frees.
"""

import asyncio
import logging
from typing import Protocol

from hookreel.jobs.store import PROGRESS_DONE, InMemoryJobStore
from hookreel.schemas.render import JobResult, JobState, RenderJobPayload

logger = logging.getLogger(__name__)


class Composer(Protocol):
    async def compose(self, job: RenderJobPayload) -> str: ...


class LocalScheduler:
    """Bounded worker pool pulling admitted jobs from an ``InMemoryJobStore``."""

    def __init__(
        self,
        store: InMemoryJobStore,
        pipeline: Composer,
        concurrency: int = 2,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.store = store
        self.pipeline = pipeline
        self.concurrency = concurrency
        self._queue: asyncio.Queue[str] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._workers: list[asyncio.Task] = []
        self._pending: list[str] = []
        store.subscribe(self._on_admit)

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def _on_admit(self, job_id: str) -> None:
        if self._loop is None or self._queue is None:
            # Not started yet; dispatched on start()
            self._pending.append(job_id)
            return
        if _current_loop() is self._loop:
            self._queue.put_nowait(job_id)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, job_id)

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        for job_id in self._pending:
            self._queue.put_nowait(job_id)
        self._pending.clear()
        self._workers = [
            asyncio.create_task(self._worker(slot), name=f"hookreel-slot-{slot}")
            for slot in range(self.concurrency)
        ]
        logger.info(f"[SCHEDULER] Started {self.concurrency} worker slots")

    async def join(self) -> None:
        """Wait until every admitted job has reached a terminal state."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Cancel idle slots. Jobs already running are awaited, not interrupted."""
        if self._queue is not None:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        self._loop = None
        logger.info("[SCHEDULER] Stopped")

    async def __aenter__(self) -> "LocalScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _worker(self, slot: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job_id = await queue.get()
            try:
                payload = self.store.claim(job_id)
                if payload is None:
                    continue
                logger.info(f"[SCHEDULER] Slot {slot} running job {job_id}")
                await self._execute(job_id, payload)
            finally:
                queue.task_done()

    async def _execute(self, job_id: str, payload: RenderJobPayload) -> None:
        try:
            output_path = await self.pipeline.compose(payload)
        except Exception as e:
            logger.exception(f"[SCHEDULER] Job {job_id} failed: {e}")
            self.store.advance(
                job_id,
                JobState.FAILED,
                PROGRESS_DONE,
                JobResult(success=False, error=str(e)),
            )
            return

        self.store.advance(
            job_id,
            JobState.COMPLETED,
            PROGRESS_DONE,
            JobResult(success=True, output_path=output_path, output_url=payload.output_url),
        )
        logger.info(f"[SCHEDULER] Job {job_id} completed: {output_path}")


def _current_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
