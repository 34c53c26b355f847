from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ClipKind(str, Enum):
    REACTION = "reaction"
    DEMO = "demo"
    MUSIC = "music"


class Clip(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: ClipKind
    path: str
    duration_hint_s: float | None = None


class TrimWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_s: float = Field(0.0, ge=0)
    duration_s: float | None = Field(None, gt=0)  # None = to the end (demo) / default length (reaction)


class TextSettings(BaseModel):
    max_width_percent: float = Field(60, ge=20, le=100)
    font_size: int = Field(38, ge=16, le=80)
    align: Literal["left", "center", "right"] = "center"
    position: Literal["top", "center", "bottom"] = "center"


class AudioSettings(BaseModel):
    music_volume: float = Field(0.3, ge=0, le=1)
    music_id: str | None = None  # Batch-wide default music


class Combination(BaseModel):
    model_config = ConfigDict(frozen=True)

    reaction_id: str
    demo_id: str
    music_id: str | None = None
    hook_index: int = -1
    reaction_trim: TrimWindow | None = None
    demo_trim: TrimWindow | None = None


class BatchRequest(BaseModel):
    combinations: list[Combination] = Field(min_length=1)
    hooks: list[str] = Field(default_factory=list)
    text_settings: TextSettings = Field(default_factory=TextSettings)
    audio_settings: AudioSettings = Field(default_factory=AudioSettings)


class RenderJobPayload(BaseModel):
    """Everything a worker needs to render one combination.

    Serialized as JSON when handed to the durable broker.
    """

    reaction_path: str
    demo_path: str
    music_path: str | None = None
    hook_text: str = ""
    output_path: str
    output_url: str | None = None
    reaction_trim: TrimWindow = Field(default_factory=TrimWindow)
    demo_trim: TrimWindow | None = None
    reaction_duration: float = 4.5
    width: int = 1080
    height: int = 1920
    text_settings: TextSettings = Field(default_factory=TextSettings)
    music_volume: float = Field(0.3, ge=0, le=1)

    @property
    def reaction_length_s(self) -> float:
        """Reaction segment length: explicit trim duration or the default."""
        return self.reaction_trim.duration_s or self.reaction_duration


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobResult(BaseModel):
    success: bool
    output_path: str | None = None
    output_url: str | None = None
    error: str | None = None


class JobStatus(BaseModel):
    id: str
    state: JobState
    progress: int = Field(0, ge=0, le=100)
    result: JobResult | None = None


class BatchSubmission(BaseModel):
    batch_id: str
    job_ids: list[str]
    skipped: list[int] = Field(default_factory=list)  # 1-based combination indices

    @property
    def message(self) -> str:
        return f"Started {len(self.job_ids)} video generation jobs"
