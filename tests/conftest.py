"""
Pytest fixtures for hookreel tests.

Most tests replace FFmpeg with a fake stage runner and a fake probe, so they
run anywhere. Tests that drive the real binaries are marked with
@pytest.mark.requires_ffmpeg and skipped when ffmpeg/ffprobe are missing.
Run `pytest -m "not requires_ffmpeg"` to skip them explicitly.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable

import pytest

from hookreel.config import Settings
from hookreel.exceptions import StageFailure
from hookreel.render.stage_runner import StageInvocation, StageResult
from hookreel.schemas.render import RenderJobPayload
from hookreel.utils.media_info import MediaInfo


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip @pytest.mark.requires_ffmpeg tests when the binaries are missing."""
    if _ffmpeg_available():
        return
    skip = pytest.mark.skip(reason="ffmpeg/ffprobe not on PATH")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


class FakeStageRunner:
    """Stands in for StageRunner: records invocations and writes dummy outputs.

    ``fail_stage`` makes that stage write a partial output and then fail, the
    way an interrupted FFmpeg run would. ``on_run`` is called with each
    invocation before it "runs", so tests can inspect files the pipeline
    prepared for that stage.
    """

    def __init__(
        self,
        fail_stage: str | None = None,
        on_run: Callable[[StageInvocation], None] | None = None,
    ):
        self.fail_stage = fail_stage
        self.on_run = on_run
        self.invocations: list[StageInvocation] = []

    @property
    def stages(self) -> list[str]:
        return [invocation.stage for invocation in self.invocations]

    def invocation(self, stage: str) -> StageInvocation:
        return next(i for i in self.invocations if i.stage == stage)

    async def run(self, invocation: StageInvocation) -> StageResult:
        self.invocations.append(invocation)
        if self.on_run:
            self.on_run(invocation)

        output = Path(invocation.output_path)
        if invocation.stage == self.fail_stage:
            output.write_bytes(b"partial")
            raise StageFailure(
                f"{invocation.stage} stage exited with code 1: Conversion failed!",
                stage=invocation.stage,
                exit_code=1,
                stderr_tail=b"Conversion failed!\n",
            )

        output.write_bytes(f"fake {invocation.stage}".encode())
        return StageResult(invocation.stage, invocation.output_path, 0.0)


async def fake_probe(path: str) -> MediaInfo:
    """Every clip has video; clips named ``silent*`` have no audio stream."""
    return MediaInfo(
        duration_ms=10000,
        width=1920,
        height=1080,
        has_video=True,
        has_audio=not Path(path).name.startswith("silent"),
    )


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="hookreel_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_output_dir: Path) -> Settings:
    """Settings isolated from the environment's .env and broker."""
    return Settings(
        _env_file=None,
        environment="test",
        redis_url="",
        data_dir=str(temp_output_dir / "data"),
        output_dir=str(temp_output_dir / "output"),
        worker_concurrency=2,
    )


@pytest.fixture
def clip_files(temp_output_dir: Path) -> dict[str, Path]:
    """Placeholder input files for the fake runner."""
    clips_dir = temp_output_dir / "clips"
    clips_dir.mkdir()
    paths = {
        "reaction": clips_dir / "reaction.mp4",
        "demo": clips_dir / "demo.mp4",
        "silent_demo": clips_dir / "silent_demo.mp4",
        "music": clips_dir / "music.mp3",
    }
    for path in paths.values():
        path.write_bytes(b"placeholder")
    return paths


@pytest.fixture
def make_payload(temp_output_dir: Path, clip_files: dict[str, Path]):
    """Factory for render payloads pointing at the placeholder clips."""

    def _make(**overrides) -> RenderJobPayload:
        data = {
            "reaction_path": str(clip_files["reaction"]),
            "demo_path": str(clip_files["demo"]),
            "hook_text": "Wait until you see this demo in action",
            "output_path": str(temp_output_dir / "output" / "batch_1.mp4"),
            "output_url": "/output/batch_1.mp4",
        }
        data.update(overrides)
        return RenderJobPayload(**data)

    return _make


@pytest.fixture
def fake_runner_factory():
    """Build FakeStageRunner instances (optionally failing at one stage)."""
    return FakeStageRunner


@pytest.fixture
def probe():
    return fake_probe

