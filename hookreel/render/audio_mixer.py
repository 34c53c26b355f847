"""
Music bed mixing for finished reels.

The program audio (reaction + demo) stays at full gain and the music is
looped underneath at ``music_volume``:

    out = program * 1.0 + music * music_volume

amix runs with normalize=0 so neither input is rescaled by the input count,
and the output lasts exactly as long as the program.
"""

from dataclasses import dataclass

from hookreel.config import Settings, get_settings
from hookreel.render.stage_runner import StageInvocation

PROGRAM_GAIN = 1.0


@dataclass
class MusicBed:
    """Music to place under the program audio."""

    file_path: str
    volume: float = 0.3
    loop: bool = True


class AudioMixer:
    """Builds FFmpeg invocations for the music mix stage."""

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.ffmpeg_path = settings.ffmpeg_path
        self.sample_rate = settings.render_audio_sample_rate
        self.audio_bitrate = settings.render_audio_bitrate

    def build_filter(self, music: MusicBed) -> str:
        """Build the filter_complex blending program audio (input 0) with music (input 1)."""
        return (
            f"[0:a]volume={PROGRAM_GAIN}[program];"
            f"[1:a]aresample={self.sample_rate},volume={music.volume}[music];"
            "[program][music]amix=inputs=2:duration=first:dropout_transition=0:normalize=0[out]"
        )

    def build_mix_invocation(
        self,
        program_path: str,
        music: MusicBed,
        output_path: str,
    ) -> StageInvocation:
        """Mix ``music`` under the audio of ``program_path``; video is stream-copied."""
        music_input = ["-stream_loop", "-1"] if music.loop else []
        args = [
            "-y",
            "-i", program_path,
            *music_input,
            "-i", music.file_path,
            "-filter_complex", self.build_filter(music),
            "-map", "0:v:0",
            "-map", "[out]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-ar", str(self.sample_rate),
            "-ac", "2",
            "-movflags", "+faststart",
            output_path,
        ]
        return StageInvocation(
            stage="mix",
            args=tuple(args),
            output_path=output_path,
            binary=self.ffmpeg_path,
        )
