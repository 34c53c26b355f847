"""
Tests for the Celery render task.

Tasks run eagerly with ``apply()``; no broker or worker is needed. The
pipeline and the Redis retention index are replaced for each test.
"""

import pytest

from hookreel.exceptions import MissingAssetFailure, StageFailure
from hookreel.schemas.render import JobResult, RenderJobPayload
from hookreel.tasks import render_task


class RecordingIndex:
    def __init__(self):
        self.terminal: list[tuple[str, bool]] = []

    def record_terminal(self, job_id: str, failed: bool, now=None) -> list[str]:
        self.terminal.append((job_id, failed))
        return []


class FinishingComposer:
    async def compose(self, job: RenderJobPayload) -> str:
        return job.output_path


@pytest.fixture
def index(monkeypatch) -> RecordingIndex:
    recording = RecordingIndex()
    monkeypatch.setattr(render_task, "_retention_index", lambda: recording)
    return recording


def patch_render(monkeypatch, outcomes: list):
    """Make run_render_job return or raise ``outcomes`` in turn."""
    calls: list[RenderJobPayload] = []

    def fake_run(payload, pipeline=None):
        calls.append(payload)
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(render_task, "run_render_job", fake_run)
    return calls


class TestRetryCountdown:
    def test_exponential_backoff(self):
        assert [render_task.retry_countdown(n) for n in range(3)] == [1.0, 2.0, 4.0]


class TestRunRenderJob:
    def test_returns_success_result(self, make_payload):
        job = make_payload()

        result = render_task.run_render_job(job, pipeline=FinishingComposer())

        assert result == JobResult(success=True, output_path=job.output_path, output_url=job.output_url)


class TestRenderCombinationTask:
    def test_success(self, make_payload, index, monkeypatch):
        job = make_payload()
        patch_render(monkeypatch, [JobResult(success=True, output_path=job.output_path, output_url=job.output_url)])

        result = render_task.render_combination_task.apply(args=[job.model_dump(mode="json")], task_id="job-1")

        assert result.get()["success"] is True
        assert result.get()["output_url"] == job.output_url
        assert index.terminal == [("job-1", False)]

    def test_non_retryable_failure_is_not_retried(self, make_payload, index, monkeypatch):
        calls = patch_render(monkeypatch, [MissingAssetFailure(path="/clips/gone.mp4")])

        result = render_task.render_combination_task.apply(
            args=[make_payload().model_dump(mode="json")], task_id="job-2"
        )

        assert len(calls) == 1
        assert result.get() == {
            "success": False,
            "output_path": None,
            "output_url": None,
            "error": "Referenced clip not found: /clips/gone.mp4",
        }
        assert index.terminal == [("job-2", True)]

    def test_retryable_failure_retried_until_attempts_run_out(self, make_payload, index, monkeypatch):
        calls = patch_render(monkeypatch, [StageFailure("reaction stage exited with code 1", stage="reaction")])

        result = render_task.render_combination_task.apply(
            args=[make_payload().model_dump(mode="json")], task_id="job-3"
        )

        assert len(calls) == 3
        assert result.get()["success"] is False
        assert result.get()["error"] == "reaction stage exited with code 1"
        assert index.terminal == [("job-3", True)]

    def test_retry_then_success(self, make_payload, index, monkeypatch):
        job = make_payload()
        calls = patch_render(monkeypatch, [
            StageFailure("demo stage timed out", stage="demo"),
            JobResult(success=True, output_path=job.output_path, output_url=job.output_url),
        ])

        result = render_task.render_combination_task.apply(args=[job.model_dump(mode="json")], task_id="job-4")

        assert len(calls) == 2
        assert result.get()["success"] is True
        assert index.terminal == [("job-4", False)]

    def test_unexpected_error_fails_job(self, make_payload, index, monkeypatch):
        patch_render(monkeypatch, [RuntimeError("disk full")])

        result = render_task.render_combination_task.apply(
            args=[make_payload().model_dump(mode="json")], task_id="job-5"
        )

        assert result.get()["error"] == "disk full"
        assert index.terminal == [("job-5", True)]


class TestRecordTaskFailure:
    def test_failure_outside_task_body_is_indexed(self, index):
        render_task.record_task_failure(
            sender=render_task.render_combination_task,
            task_id="job-9",
            exception=RuntimeError("TimeLimitExceeded(3600,)"),
        )

        assert index.terminal == [("job-9", True)]

    def test_other_tasks_are_ignored(self, index):
        class OtherTask:
            name = "someone.else"

        render_task.record_task_failure(sender=OtherTask(), task_id="job-10", exception=RuntimeError("x"))

        assert index.terminal == []
