"""Tests for the in-process scheduler."""

import asyncio

import pytest

from hookreel.exceptions import ReactionStageFailed
from hookreel.jobs.scheduler import LocalScheduler
from hookreel.jobs.store import InMemoryJobStore
from hookreel.schemas.render import JobState, RenderJobPayload


class RecordingComposer:
    """Fake pipeline that tracks how many jobs run at once."""

    def __init__(self, delay: float = 0.02, fail_outputs: set[str] | None = None):
        self.delay = delay
        self.fail_outputs = fail_outputs or set()
        self.active = 0
        self.max_active = 0
        self.started: list[str] = []

    async def compose(self, job: RenderJobPayload) -> str:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.append(job.output_path)
        try:
            await asyncio.sleep(self.delay)
            if job.output_path in self.fail_outputs:
                raise ReactionStageFailed("Reaction stage failed: exit code 1")
            return job.output_path
        finally:
            self.active -= 1


def payloads(make_payload, count: int) -> list[RenderJobPayload]:
    return [
        make_payload(output_path=f"/out/batch_{i}.mp4", output_url=f"/output/batch_{i}.mp4")
        for i in range(1, count + 1)
    ]


class TestLocalScheduler:
    def test_rejects_empty_pool(self):
        with pytest.raises(ValueError):
            LocalScheduler(InMemoryJobStore(), RecordingComposer(), concurrency=0)

    @pytest.mark.asyncio
    async def test_single_slot_runs_jobs_one_at_a_time_in_order(self, make_payload):
        store = InMemoryJobStore()
        composer = RecordingComposer()
        jobs = payloads(make_payload, 4)

        async with LocalScheduler(store, composer, concurrency=1) as scheduler:
            ids = [store.admit(job) for job in jobs]
            await scheduler.join()

        assert composer.max_active == 1
        assert composer.started == [job.output_path for job in jobs]
        assert all(store.get(job_id).state == JobState.COMPLETED for job_id in ids)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, make_payload):
        store = InMemoryJobStore()
        composer = RecordingComposer(delay=0.05)

        async with LocalScheduler(store, composer, concurrency=2) as scheduler:
            for job in payloads(make_payload, 5):
                store.admit(job)
            await scheduler.join()

        assert composer.max_active == 2
        assert store.count(JobState.COMPLETED) == 5

    @pytest.mark.asyncio
    async def test_jobs_admitted_before_start_are_run(self, make_payload):
        store = InMemoryJobStore()
        composer = RecordingComposer()
        scheduler = LocalScheduler(store, composer, concurrency=2)
        ids = [store.admit(job) for job in payloads(make_payload, 3)]

        await scheduler.start()
        await scheduler.stop()

        assert [store.get(job_id).state for job_id in ids] == [JobState.COMPLETED] * 3

    @pytest.mark.asyncio
    async def test_admit_from_another_thread(self, make_payload):
        store = InMemoryJobStore()
        composer = RecordingComposer()

        async with LocalScheduler(store, composer, concurrency=2) as scheduler:
            job_id = await asyncio.to_thread(store.admit, make_payload())
            await scheduler.join()

        assert store.get(job_id).state == JobState.COMPLETED

    @pytest.mark.asyncio
    async def test_completed_job_result(self, make_payload):
        store = InMemoryJobStore()
        job = make_payload(output_path="/out/b_1.mp4", output_url="/output/b_1.mp4")

        async with LocalScheduler(store, RecordingComposer(), concurrency=1) as scheduler:
            job_id = store.admit(job)
            await scheduler.join()

        status = store.get(job_id)
        assert status.progress == 100
        assert status.result.success is True
        assert status.result.output_path == "/out/b_1.mp4"
        assert status.result.output_url == "/output/b_1.mp4"

    @pytest.mark.asyncio
    async def test_failure_is_terminal_and_does_not_block_others(self, make_payload):
        store = InMemoryJobStore()
        composer = RecordingComposer(fail_outputs={"/out/batch_2.mp4"})

        async with LocalScheduler(store, composer, concurrency=1) as scheduler:
            ids = [store.admit(job) for job in payloads(make_payload, 3)]
            await scheduler.join()

        failed = store.get(ids[1])
        assert failed.state == JobState.FAILED
        assert failed.progress == 100
        assert failed.result.success is False
        assert failed.result.error.startswith("Reaction stage failed")
        assert store.get(ids[0]).state == JobState.COMPLETED
        assert store.get(ids[2]).state == JobState.COMPLETED
        # No automatic retry in-process
        assert composer.started.count("/out/batch_2.mp4") == 1

    @pytest.mark.asyncio
    async def test_observed_progress_never_decreases(self, make_payload):
        store = InMemoryJobStore()
        composer = RecordingComposer(delay=0.03)
        observed: dict[str, list[int]] = {}

        async with LocalScheduler(store, composer, concurrency=2) as scheduler:
            ids = [store.admit(job) for job in payloads(make_payload, 4)]

            async def poll():
                while True:
                    for job_id in ids:
                        observed.setdefault(job_id, []).append(store.get(job_id).progress)
                    await asyncio.sleep(0.005)

            poller = asyncio.create_task(poll())
            await scheduler.join()
            poller.cancel()
            await asyncio.gather(poller, return_exceptions=True)

        for job_id in ids:
            seen = observed[job_id] + [store.get(job_id).progress]
            assert seen == sorted(seen)
            assert seen[-1] == 100
