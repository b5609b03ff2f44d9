"""
Pydantic models for the video enhancement pipeline.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field

from vidforge.errors import InvalidStageError


class VideoStatus(str, Enum):
    """Lifecycle status of an uploaded video."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class ProcessingStage(str, Enum):
    """Pipeline stage of a video.

    UPLOAD is the initial value of a fresh record, COMPLETE the terminal one.
    Only the seven stages in PIPELINE_STAGES can be requested.
    """
    UPLOAD = "upload"
    EXTRACT_AUDIO = "extract_audio"
    TRANSCRIBE = "transcribe"
    ENHANCE_SCRIPT = "enhance_script"
    GENERATE_VOICEOVER = "generate_voiceover"
    DETECT_SCENES = "detect_scenes"
    GENERATE_CAPTIONS = "generate_captions"
    RENDER_VIDEO = "render_video"
    COMPLETE = "complete"


PIPELINE_STAGES: tuple[ProcessingStage, ...] = (
    ProcessingStage.EXTRACT_AUDIO,
    ProcessingStage.TRANSCRIBE,
    ProcessingStage.ENHANCE_SCRIPT,
    ProcessingStage.GENERATE_VOICEOVER,
    ProcessingStage.DETECT_SCENES,
    ProcessingStage.GENERATE_CAPTIONS,
    ProcessingStage.RENDER_VIDEO,
)


def parse_stage(value: "str | ProcessingStage") -> ProcessingStage:
    """Parse a requested stage by value or name, case-insensitively.

    Args:
        value: Stage value ("render_video"), name ("RENDER_VIDEO") or enum

    Returns:
        Runnable ProcessingStage

    Raises:
        InvalidStageError: If the value is not one of PIPELINE_STAGES
    """
    if isinstance(value, ProcessingStage):
        stage = value
    elif isinstance(value, str):
        normalized = value.strip().lower()
        try:
            stage = ProcessingStage(normalized)
        except ValueError:
            raise InvalidStageError(value) from None
    else:
        raise InvalidStageError(value)

    if stage not in PIPELINE_STAGES:
        raise InvalidStageError(value)
    return stage


def stages_from(stage: ProcessingStage) -> list[ProcessingStage]:
    """Return the requested stage and every stage after it."""
    index = PIPELINE_STAGES.index(stage)
    return list(PIPELINE_STAGES[index:])


# ═══════════════════════════════════════════════════════════════════════════
# Video record
# ═══════════════════════════════════════════════════════════════════════════


class Resolution(BaseModel):
    """Frame size in pixels."""

    width: int = 0
    height: int = 0


class VideoFile(BaseModel):
    """Reference to a stored video blob."""

    url: str
    key: str
    size_bytes: int = 0
    duration_seconds: float = 0.0
    format: str = "mp4"
    resolution: Resolution = Field(default_factory=Resolution)


class CaptionPosition(str, Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class CaptionStyle(BaseModel):
    """Visual style of a caption cue."""

    font_size: int = 24
    font_family: str = "Arial"
    color: str = "#FFFFFF"
    background_color: str = "#000000"
    position: CaptionPosition = CaptionPosition.BOTTOM


class Caption(BaseModel):
    """Single timed caption cue."""

    id: str
    start_sec: float = Field(..., ge=0)
    end_sec: float = Field(..., ge=0)
    text: str
    style: CaptionStyle = Field(default_factory=CaptionStyle)


class Scene(BaseModel):
    id: str
    start_sec: float
    end_sec: float
    description: str = ""
    thumbnail: str = ""


class HighlightType(str, Enum):
    ZOOM = "zoom"
    HIGHLIGHT = "highlight"
    ANNOTATION = "annotation"


class Highlight(BaseModel):
    id: str
    start_sec: float
    end_sec: float
    type: HighlightType
    data: dict = Field(default_factory=dict)


class Keyframe(BaseModel):
    """Thumbnail captured at a timestamp."""

    timestamp: float
    thumbnail: str
    key: str = ""


class AudioLevel(BaseModel):
    timestamp: float
    level: float


class VideoMetadata(BaseModel):
    """Analysis lists populated by the scene detection stage."""

    scenes: list[Scene] = Field(default_factory=list)
    highlights: list[Highlight] = Field(default_factory=list)
    keyframes: list[Keyframe] = Field(default_factory=list)
    audio_levels: list[AudioLevel] = Field(default_factory=list)


class ProcessingState(BaseModel):
    """Current pipeline position of a video."""

    stage: ProcessingStage = ProcessingStage.UPLOAD
    progress: float = Field(default=0, ge=0, le=100)
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class VideoRecord(BaseModel):
    """Persisted video entity holding status, progress and artifact references."""

    id: str
    title: str = ""
    owner_id: str | None = None
    status: VideoStatus = VideoStatus.UPLOADING
    original_file: VideoFile
    processed_file: VideoFile | None = None
    transcript_ref: str | None = None
    captions: list[Caption] = Field(default_factory=list)
    metadata: VideoMetadata = Field(default_factory=VideoMetadata)
    processing: ProcessingState = Field(default_factory=ProcessingState)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class StatusView(BaseModel):
    """Status projection consumed by API and UI layers."""

    status: VideoStatus
    processing: ProcessingState

    @classmethod
    def from_record(cls, video: VideoRecord) -> "StatusView":
        return cls(status=video.status, processing=video.processing.model_copy())


# ═══════════════════════════════════════════════════════════════════════════
# Transcript
# ═══════════════════════════════════════════════════════════════════════════


class TranscriptSegment(BaseModel):
    """Timed transcript segment."""

    id: str
    text: str
    start_sec: float = Field(..., ge=0)
    end_sec: float = Field(..., ge=0)
    confidence: float = Field(default=1.0, ge=0, le=1)
    speaker: str | None = None


class TranscriptRecord(BaseModel):
    """Transcript of a video (1:1), created by the transcription stage."""

    id: str
    video_id: str
    original_text: str
    enhanced_text: str | None = None
    improvements: list[str] = Field(default_factory=list)
    segments: list[TranscriptSegment] = Field(default_factory=list)
    language: str = "en"
    confidence: float = Field(default=0.0, ge=0, le=1)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @computed_field
    @property
    def script_text(self) -> str:
        """Enhanced text if present, otherwise the original."""
        return self.enhanced_text or self.original_text


class DocumentationStep(BaseModel):
    title: str
    description: str
    timestamp: float | None = Field(default=None, ge=0)


class VideoDocumentation(BaseModel):
    """Step-by-step guide written from a transcript."""

    introduction: str = ""
    steps: list[DocumentationStep] = Field(default_factory=list)
    conclusion: str = ""


# ═══════════════════════════════════════════════════════════════════════════
# Jobs
# ═══════════════════════════════════════════════════════════════════════════


class JobStatus(str, Enum):
    """Status of a queue submission."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """One queue submission. Immutable history once finished."""

    id: str
    video_id: str
    user_id: str
    requested_stage: ProcessingStage
    status: JobStatus = JobStatus.WAITING
    created_at: datetime = Field(default_factory=datetime.now)
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    failure_reason: str | None = None

    @computed_field
    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class QueueStats(BaseModel):
    """Job counts per status."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0


class JobRequest(BaseModel):
    """Job submission payload."""

    user_id: str = Field(..., min_length=1)
    stage: str = ProcessingStage.EXTRACT_AUDIO.value


# ═══════════════════════════════════════════════════════════════════════════
# Direct uploads
# ═══════════════════════════════════════════════════════════════════════════


class UploadRequest(BaseModel):
    """Ask for a URL the client can PUT the original file to."""

    filename: str = Field(..., min_length=1)
    content_type: str = "video/mp4"


class UploadTicket(BaseModel):
    key: str
    upload_url: str
    expires_in: int
