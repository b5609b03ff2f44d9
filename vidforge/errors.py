"""
Error hierarchy for the processing pipeline.

Four kinds of failure exist:
- NotFoundError: missing record or artifact precondition
- GatewayError: storage, media tool or AI provider failed or timed out
- ValidationError: invalid stage name or malformed job data
- ConflictError: concurrent run attempted for the same video

ValidationError and ConflictError are raised at submission time; a stage
also raises ValidationError for an original file it cannot read.
NotFoundError and GatewayError raised inside a stage abort the run and are
recorded on the video by the orchestrator.
"""


class PipelineError(Exception):
    """
    Base error with pipeline context.

    Attributes:
        message: Error description
        stage: Stage value where the error occurred (if known)
        cause: Original exception (if any)
    """

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        cause: Exception | None = None,
    ):
        self.message = message
        self.stage = stage
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class NotFoundError(PipelineError):
    """A record or artifact required by the operation does not exist."""


class VideoNotFoundError(NotFoundError):
    """Video record does not exist."""

    def __init__(self, video_id: str, stage: str | None = None):
        self.video_id = video_id
        super().__init__(f"Video not found: {video_id}", stage=stage)


class ArtifactNotFoundError(NotFoundError):
    """Stored blob or derived record is missing."""


class GatewayError(PipelineError):
    """An external system (storage, media tool, AI provider) failed."""


class StorageError(GatewayError):
    """Storage backend failure."""


class MediaToolError(GatewayError):
    """
    Transcoding or probing failed.

    Attributes:
        operation: Media operation name (e.g. "extract_audio")
        returncode: Process exit code, None if the tool never ran
        diagnostics: Tail of the tool's stderr output
    """

    def __init__(
        self,
        operation: str,
        message: str,
        returncode: int | None = None,
        diagnostics: str = "",
        cause: Exception | None = None,
    ):
        self.operation = operation
        self.returncode = returncode
        self.diagnostics = diagnostics
        detail = f"{operation} failed: {message}"
        if diagnostics:
            detail += f" ({diagnostics.strip().splitlines()[-1]})"
        super().__init__(detail, cause=cause)


class GenerativeError(GatewayError):
    """AI provider call failed."""


class StageTimeoutError(GatewayError):
    """Stage exceeded its time budget."""

    def __init__(self, stage: str, timeout: float):
        self.timeout = timeout
        super().__init__(f"Stage timed out after {timeout:g}s", stage=stage)


class ValidationError(PipelineError):
    """Submission or input data is invalid."""


class InvalidStageError(ValidationError):
    """Stage name is not a runnable pipeline stage."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid processing stage: {value!r}")


class QueueClosedError(ValidationError):
    """Queue no longer accepts submissions."""


class ConflictError(PipelineError):
    """Another pipeline run is active or queued for the same video."""

    def __init__(self, video_id: str, message: str | None = None):
        self.video_id = video_id
        super().__init__(message or f"Pipeline already running for video: {video_id}")
