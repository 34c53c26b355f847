"""
Composition pipeline for hook reels.

Turns one render job into one finished vertical video:
1. Reaction stage: letterbox, trim, burn in the hook text, normalize audio
2. Demo stage: letterbox, optional trim, normalize audio
3. Concatenate both segments (stream copy)
4. Optionally mix a music bed under the program audio

Stages run strictly in order; each consumes the previous stage's output.
Temporary files are derived from the output path, so concurrent jobs never
share a temp namespace, and they are removed on every exit path.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from hookreel.config import Settings, get_settings
from hookreel.exceptions import (
    ConcatFailed,
    DemoStageFailed,
    HookReelError,
    MissingAssetFailure,
    MixStageFailed,
    PipelineStageError,
    ReactionStageFailed,
)
from hookreel.render.audio_mixer import AudioMixer, MusicBed
from hookreel.render.stage_runner import StageInvocation, StageRunner
from hookreel.render.text_layout import TextLayout, build_drawtext_filter, layout_hook_text
from hookreel.schemas.render import RenderJobPayload
from hookreel.utils.media_info import MediaInfo, probe_media

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], Awaitable[MediaInfo]]


@dataclass
class RenderProfile:
    """Fixed encode profile shared by both segments so they concat without re-encoding."""

    width: int = 1080
    height: int = 1920
    fps: int = 30
    video_codec: str = "libx264"
    preset: str = "fast"
    crf: int = 23
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    sample_rate: int = 44100

    @classmethod
    def from_settings(cls, settings: Settings, width: int, height: int) -> "RenderProfile":
        return cls(
            width=width,
            height=height,
            fps=settings.render_fps,
            preset=settings.render_video_preset,
            crf=settings.render_crf,
            audio_bitrate=settings.render_audio_bitrate,
            sample_rate=settings.render_audio_sample_rate,
        )


@dataclass(frozen=True)
class RenderArtifacts:
    """Temporary files owned by one pipeline invocation."""

    reaction: Path
    demo: Path
    program: Path
    concat_list: Path
    hook_text: Path

    @classmethod
    def for_output(cls, output_path: Path) -> "RenderArtifacts":
        stem = output_path.with_suffix("")
        suffix = output_path.suffix or ".mp4"
        return cls(
            reaction=Path(f"{stem}_tmp_reaction{suffix}"),
            demo=Path(f"{stem}_tmp_demo{suffix}"),
            program=Path(f"{stem}_tmp_program{suffix}"),
            concat_list=Path(f"{stem}_concat.txt"),
            hook_text=Path(f"{stem}_hook.txt"),
        )

    def paths(self) -> list[Path]:
        return [self.reaction, self.demo, self.program, self.concat_list, self.hook_text]

    def cleanup(self) -> None:
        for path in self.paths():
            _unlink(path)


def _unlink(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"[CLEANUP] Could not remove {path}: {e}")


def _seconds(value: float) -> str:
    return f"{value:.3f}"


def concat_list_line(path: Path) -> str:
    """One concat demuxer entry; single quotes in the path are escaped."""
    escaped = str(path.resolve()).replace("'", "'\\''")
    return f"file '{escaped}'"


class CompositionPipeline:
    """Sequences the render stages for one job."""

    def __init__(
        self,
        runner: StageRunner | None = None,
        probe: ProbeFn | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.runner = runner or StageRunner()
        self.probe = probe or probe_media
        self.audio_mixer = AudioMixer(self.settings)
        self.ffmpeg_path = self.settings.ffmpeg_path

    async def compose(self, job: RenderJobPayload) -> str:
        """
        Render ``job`` to ``job.output_path``.

        Returns:
            Path to the finished video

        Raises:
            MissingAssetFailure: An input file does not exist
            ReactionStageFailed, DemoStageFailed, ConcatFailed, MixStageFailed:
                The named step failed; later steps did not run
        """
        self._check_inputs(job)

        output_path = Path(job.output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        artifacts = RenderArtifacts.for_output(output_path)

        layout = layout_hook_text(job.hook_text, job.text_settings, job.width, job.height)
        if layout.truncated:
            logger.warning(
                f"[LAYOUT] Hook truncated to {len(layout.lines)} lines "
                f"({layout.chars_per_line} chars/line): {job.hook_text!r}"
            )

        succeeded = False
        try:
            await self._reaction_stage(job, layout, artifacts)
            await self._demo_stage(job, artifacts)

            concat_target = artifacts.program if job.music_path else output_path
            await self._concat_stage(artifacts, concat_target)

            if job.music_path:
                await self._mix_stage(job, artifacts.program, output_path)

            succeeded = True
            logger.info(f"[RENDER] Video generated: {output_path}")
            return str(output_path)
        finally:
            artifacts.cleanup()
            if not succeeded:
                _unlink(output_path)

    def _check_inputs(self, job: RenderJobPayload) -> None:
        for path in (job.reaction_path, job.demo_path, job.music_path):
            if path and not os.path.isfile(path):
                raise MissingAssetFailure(path=path)

    async def _run_tagged(
        self,
        error_cls: type[PipelineStageError],
        invocation: StageInvocation,
    ) -> None:
        try:
            await self.runner.run(invocation)
        except HookReelError as e:
            raise error_cls.from_cause(e) from e

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _reaction_stage(
        self,
        job: RenderJobPayload,
        layout: TextLayout,
        artifacts: RenderArtifacts,
    ) -> None:
        logger.debug(f"[REACTION] {job.reaction_path} -> {artifacts.reaction}")
        try:
            info = await self.probe(job.reaction_path)
        except HookReelError as e:
            raise ReactionStageFailed.from_cause(e) from e

        if not layout.is_empty:
            artifacts.hook_text.write_text(layout.text, encoding="utf-8")

        invocation = self.build_reaction_invocation(job, layout, info.has_audio, artifacts)
        await self._run_tagged(ReactionStageFailed, invocation)

    async def _demo_stage(self, job: RenderJobPayload, artifacts: RenderArtifacts) -> None:
        logger.debug(f"[DEMO] {job.demo_path} -> {artifacts.demo}")
        try:
            info = await self.probe(job.demo_path)
        except HookReelError as e:
            raise DemoStageFailed.from_cause(e) from e

        invocation = self.build_demo_invocation(job, info.has_audio, artifacts)
        await self._run_tagged(DemoStageFailed, invocation)

    async def _concat_stage(self, artifacts: RenderArtifacts, output_path: Path) -> None:
        logger.debug(f"[CONCAT] -> {output_path}")
        artifacts.concat_list.write_text(
            "\n".join(concat_list_line(p) for p in (artifacts.reaction, artifacts.demo)) + "\n",
            encoding="utf-8",
        )
        invocation = self.build_concat_invocation(artifacts.concat_list, output_path)
        await self._run_tagged(ConcatFailed, invocation)

    async def _mix_stage(self, job: RenderJobPayload, program_path: Path, output_path: Path) -> None:
        logger.debug(f"[MIX] {job.music_path} @ {job.music_volume} -> {output_path}")
        invocation = self.audio_mixer.build_mix_invocation(
            str(program_path),
            MusicBed(file_path=job.music_path, volume=job.music_volume),
            str(output_path),
        )
        await self._run_tagged(MixStageFailed, invocation)

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------

    def profile_for(self, job: RenderJobPayload) -> RenderProfile:
        return RenderProfile.from_settings(self.settings, job.width, job.height)

    def build_reaction_invocation(
        self,
        job: RenderJobPayload,
        layout: TextLayout,
        has_audio: bool,
        artifacts: RenderArtifacts,
    ) -> StageInvocation:
        """Letterbox + trim + hook overlay for the reaction clip."""
        profile = self.profile_for(job)
        length = job.reaction_length_s

        video_chain = self._normalize_filter(profile)
        if not layout.is_empty:
            drawtext = build_drawtext_filter(layout, str(artifacts.hook_text), self.settings.font_path)
            video_chain = f"{video_chain},{drawtext}"

        args = ["-y", *self._trim_input_args(job.reaction_trim.start_s, length), "-i", job.reaction_path]
        return self._segment_invocation("reaction", args, video_chain, has_audio, profile, length, artifacts.reaction)

    def build_demo_invocation(
        self,
        job: RenderJobPayload,
        has_audio: bool,
        artifacts: RenderArtifacts,
    ) -> StageInvocation:
        """Letterbox + optional trim for the demo clip."""
        profile = self.profile_for(job)
        start_s = job.demo_trim.start_s if job.demo_trim else 0.0
        length = job.demo_trim.duration_s if job.demo_trim else None

        args = ["-y", *self._trim_input_args(start_s, length), "-i", job.demo_path]
        return self._segment_invocation(
            "demo", args, self._normalize_filter(profile), has_audio, profile, length, artifacts.demo
        )

    def build_concat_invocation(self, concat_list: Path, output_path: Path) -> StageInvocation:
        args = [
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_list),
            "-c", "copy",
            "-movflags", "+faststart",
            str(output_path),
        ]
        return StageInvocation("concat", tuple(args), str(output_path), self.ffmpeg_path)

    def _segment_invocation(
        self,
        stage: str,
        args: list[str],
        video_chain: str,
        has_audio: bool,
        profile: RenderProfile,
        length: float | None,
        output_path: Path,
    ) -> StageInvocation:
        filter_parts = [f"[0:v]{video_chain}[v]"]
        if has_audio:
            filter_parts.append(
                f"[0:a]aresample={profile.sample_rate},aformat=channel_layouts=stereo[a]"
            )
            audio_map = "[a]"
        else:
            # Silent track so every segment has the same stream layout for concat
            args.extend(["-f", "lavfi", "-i", f"anullsrc=r={profile.sample_rate}:cl=stereo"])
            audio_map = "1:a"

        args.extend([
            "-filter_complex", ";".join(filter_parts),
            "-map", "[v]",
            "-map", audio_map,
        ])
        if length is not None:
            args.extend(["-t", _seconds(length)])
        args.extend(self._encode_args(profile))
        args.append(str(output_path))
        return StageInvocation(stage, tuple(args), str(output_path), self.ffmpeg_path)

    @staticmethod
    def _normalize_filter(profile: RenderProfile) -> str:
        w, h = profile.width, profile.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,"
            f"setsar=1,fps={profile.fps}"
        )

    @staticmethod
    def _trim_input_args(start_s: float, length: float | None) -> list[str]:
        args: list[str] = []
        if start_s > 0:
            args.extend(["-ss", _seconds(start_s)])
        if length is not None:
            args.extend(["-t", _seconds(length)])
        return args

    @staticmethod
    def _encode_args(profile: RenderProfile) -> list[str]:
        return [
            "-c:v", profile.video_codec,
            "-preset", profile.preset,
            "-crf", str(profile.crf),
            "-pix_fmt", profile.pix_fmt,
            "-r", str(profile.fps),
            "-c:a", profile.audio_codec,
            "-b:a", profile.audio_bitrate,
            "-ar", str(profile.sample_rate),
            "-ac", "2",
            "-shortest",
            "-movflags", "+faststart",
        ]
