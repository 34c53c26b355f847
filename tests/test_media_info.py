"""Tests for ffprobe output parsing."""

import subprocess

import pytest

from hookreel.config import Settings
from hookreel.exceptions import MediaProbeError, SpawnFailure
from hookreel.utils import media_info
from hookreel.utils.media_info import get_media_info, parse_media_info


class TestParseMediaInfo:
    def test_video_with_audio(self):
        data = {
            "format": {"duration": "12.480000"},
            "streams": [
                {"codec_type": "video", "width": 1920, "height": 1080},
                {"codec_type": "audio", "sample_rate": "48000"},
            ],
        }

        info = parse_media_info(data)

        assert info.duration_ms == 12480
        assert (info.width, info.height) == (1920, 1080)
        assert info.has_video is True
        assert info.has_audio is True

    def test_video_without_audio(self):
        info = parse_media_info({"streams": [{"codec_type": "video", "width": 640, "height": 360}]})

        assert info.has_audio is False
        assert info.duration_ms is None

    def test_first_video_stream_wins(self):
        info = parse_media_info({
            "streams": [
                {"codec_type": "video", "width": 1080, "height": 1920},
                {"codec_type": "video", "width": 320, "height": 240},
            ]
        })
        assert (info.width, info.height) == (1080, 1920)


class TestGetMediaInfo:
    def test_missing_ffprobe(self, monkeypatch, temp_output_dir):
        settings = Settings(_env_file=None, ffprobe_path=str(temp_output_dir / "no-ffprobe"))
        monkeypatch.setattr(media_info, "get_settings", lambda: settings)

        with pytest.raises(SpawnFailure):
            get_media_info(str(temp_output_dir / "clip.mp4"))

    def test_ffprobe_timeout(self, monkeypatch, temp_output_dir):
        settings = Settings(_env_file=None, stage_timeout_s=5)
        monkeypatch.setattr(media_info, "get_settings", lambda: settings)
        seen: dict = {}

        def hanging_run(cmd, **kwargs):
            seen.update(kwargs)
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(media_info.subprocess, "run", hanging_run)

        with pytest.raises(MediaProbeError, match="ffprobe timed out"):
            get_media_info(str(temp_output_dir / "clip.mp4"))
        assert seen["timeout"] == 5

    def test_disabled_deadline_waits_indefinitely(self, monkeypatch, temp_output_dir):
        settings = Settings(_env_file=None, stage_timeout_s=0)
        monkeypatch.setattr(media_info, "get_settings", lambda: settings)
        seen: dict = {}

        def fake_run(cmd, **kwargs):
            seen.update(kwargs)
            return subprocess.CompletedProcess(cmd, 0, stdout='{"format": {"duration": "2.0"}}', stderr="")

        monkeypatch.setattr(media_info.subprocess, "run", fake_run)

        assert get_media_info(str(temp_output_dir / "clip.mp4")).duration_ms == 2000
        assert seen["timeout"] is None
