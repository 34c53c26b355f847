from hookreel.schemas.render import (
    AudioSettings,
    BatchRequest,
    BatchSubmission,
    Clip,
    ClipKind,
    Combination,
    JobResult,
    JobState,
    JobStatus,
    RenderJobPayload,
    TextSettings,
    TrimWindow,
)

__all__ = [
    "AudioSettings",
    "BatchRequest",
    "BatchSubmission",
    "Clip",
    "ClipKind",
    "Combination",
    "JobResult",
    "JobState",
    "JobStatus",
    "RenderJobPayload",
    "TextSettings",
    "TrimWindow",
]
