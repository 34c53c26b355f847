"""Custom exceptions for hookreel.

Every error keeps its message as the only positional argument so that the
Celery result backend can rebuild it from ``exc_message`` when a job is read
back in another process.
"""


class HookReelError(Exception):
    """Base exception for all hookreel errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(self, message: str | None = None, *, retryable: bool | None = None):
        self.message = message or self.__class__.message
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Subprocess errors
# =============================================================================


class SpawnFailure(HookReelError):
    """The stage subprocess could not be started (missing binary, permission)."""

    code = "SPAWN_FAILURE"
    message = "Failed to start subprocess"

    def __init__(self, message: str | None = None, *, binary: str | None = None):
        self.binary = binary
        super().__init__(message)


class StageFailure(HookReelError):
    """The stage subprocess ran but exited nonzero or produced no output."""

    code = "STAGE_FAILURE"
    message = "Render stage failed"
    retryable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        stage: str | None = None,
        exit_code: int | None = None,
        stderr_tail: bytes = b"",
    ):
        self.stage = stage
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(message)


class StageTimeout(StageFailure):
    """The stage exceeded its deadline and was killed."""

    code = "STAGE_TIMEOUT"
    message = "Render stage timed out"


class MediaProbeError(HookReelError):
    """ffprobe could not describe a media file."""

    code = "MEDIA_PROBE_FAILED"
    message = "Failed to probe media file"


# =============================================================================
# Input errors
# =============================================================================


class MissingAssetFailure(HookReelError):
    """A referenced clip does not exist."""

    code = "MISSING_ASSET"
    message = "Referenced clip not found"

    def __init__(self, message: str | None = None, *, path: str | None = None):
        self.path = path
        if message is None and path:
            message = f"Referenced clip not found: {path}"
        super().__init__(message)


class ValidationFailure(HookReelError):
    """Malformed request or settings, rejected before any job exists."""

    code = "VALIDATION_ERROR"
    message = "Invalid render request"


# =============================================================================
# Pipeline errors (tagged by stage)
# =============================================================================


class PipelineStageError(HookReelError):
    """A pipeline step failed. Retryability follows the underlying cause."""

    code = "PIPELINE_STAGE_FAILED"
    stage: str = "pipeline"

    @classmethod
    def from_cause(cls, cause: HookReelError) -> "PipelineStageError":
        return cls(f"{cls.message}: {cause}", retryable=cause.retryable)


class ReactionStageFailed(PipelineStageError):
    code = "REACTION_STAGE_FAILED"
    message = "Reaction stage failed"
    stage = "reaction"


class DemoStageFailed(PipelineStageError):
    code = "DEMO_STAGE_FAILED"
    message = "Demo stage failed"
    stage = "demo"


class ConcatFailed(PipelineStageError):
    code = "CONCAT_FAILED"
    message = "Concatenation failed"
    stage = "concat"


class MixStageFailed(PipelineStageError):
    code = "MIX_STAGE_FAILED"
    message = "Music mix stage failed"
    stage = "mix"


# =============================================================================
# Job store errors
# =============================================================================


class JobNotFoundError(HookReelError):
    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, message: str | None = None, *, job_id: str | None = None):
        self.job_id = job_id
        if message is None and job_id:
            message = f"Job not found: {job_id}"
        super().__init__(message)


class InvalidJobTransition(HookReelError):
    """A job update would move state backwards or decrease progress."""

    code = "INVALID_JOB_TRANSITION"
    message = "Invalid job state transition"
