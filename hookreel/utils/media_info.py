"""Media file information utilities using FFprobe."""

import asyncio
import json
import subprocess
from dataclasses import dataclass

from hookreel.config import get_settings
from hookreel.exceptions import MediaProbeError, SpawnFailure


@dataclass
class MediaInfo:
    """Media file information."""

    duration_ms: int | None = None
    width: int | None = None
    height: int | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, *args: str) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=settings.stage_timeout_s or None,
        )
    except subprocess.TimeoutExpired as e:
        raise MediaProbeError(f"ffprobe timed out after {e.timeout}s for {file_path}") from e
    except OSError as e:
        raise SpawnFailure(f"Could not start ffprobe: {e}", binary=settings.ffprobe_path) from e

    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed for {file_path}: {result.stderr.strip()[-500:]}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output for {file_path}: {e}")


def parse_media_info(data: dict) -> MediaInfo:
    """Build MediaInfo from ``ffprobe -show_format -show_streams`` JSON."""
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration_ms = int(float(format_info["duration"]) * 1000)

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
        elif codec_type == "audio":
            info.has_audio = True

    return info


def get_media_info(file_path: str) -> MediaInfo:
    """
    Get media file information.

    Raises:
        SpawnFailure: If ffprobe cannot be started
        MediaProbeError: If ffprobe fails, times out or its output is unusable
    """
    return parse_media_info(_run_ffprobe(file_path, "-show_format", "-show_streams"))


async def probe_media(file_path: str) -> MediaInfo:
    """Async wrapper for get_media_info (runs ffprobe off the event loop)."""
    return await asyncio.to_thread(get_media_info, file_path)
