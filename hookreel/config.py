import logging
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "hookreel"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Durable broker (Celery + Redis). Empty = in-process fallback.
    redis_url: str = ""
    queue_name: str = "hookreel-render"

    # Storage
    data_dir: str = "./data"
    output_dir: str = "./data/output"
    output_url_prefix: str = "/output"
    output_extension: str = "mp4"

    # Worker pool
    worker_concurrency: int = 2

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    font_path: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"

    # Render settings (vertical 9:16)
    reaction_duration: float = 4.5
    output_width: int = 1080
    output_height: int = 1920
    render_fps: int = 30
    render_video_preset: str = "fast"
    render_crf: int = 23
    render_audio_bitrate: str = "128k"
    render_audio_sample_rate: int = 44100

    # Stage runner hardening. 0 disables the deadline.
    stage_timeout_s: float = 600
    stage_stderr_tail_bytes: int = 4096

    # Retry policy (durable broker only)
    job_max_attempts: int = 3
    job_retry_backoff_s: float = 1.0

    # Record retention (durable broker only)
    completed_retention_age_s: int = 3600
    completed_retention_count: int = 100
    failed_retention_age_s: int = 86400
    failed_retention_count: int = 500
    # Registry and result-backend lifetime; kept above the failed retention age
    job_record_ttl_s: int = 172800

    @computed_field
    @property
    def has_redis(self) -> bool:
        """True when a durable broker is configured."""
        return bool(self.redis_url.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging for in-process use (Celery configures its own)."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
