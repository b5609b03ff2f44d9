"""Data models for the video enhancement pipeline."""

from vidforge.models.schemas import (
    PIPELINE_STAGES,
    AudioLevel,
    Caption,
    CaptionPosition,
    CaptionStyle,
    DocumentationStep,
    Highlight,
    HighlightType,
    Job,
    JobRequest,
    JobStatus,
    Keyframe,
    ProcessingStage,
    ProcessingState,
    QueueStats,
    Resolution,
    Scene,
    StatusView,
    TranscriptRecord,
    TranscriptSegment,
    UploadRequest,
    UploadTicket,
    VideoDocumentation,
    VideoFile,
    VideoMetadata,
    VideoRecord,
    VideoStatus,
    parse_stage,
    stages_from,
)

__all__ = [
    "PIPELINE_STAGES",
    "AudioLevel",
    "Caption",
    "CaptionPosition",
    "CaptionStyle",
    "DocumentationStep",
    "Highlight",
    "HighlightType",
    "Job",
    "JobRequest",
    "JobStatus",
    "Keyframe",
    "ProcessingStage",
    "ProcessingState",
    "QueueStats",
    "Resolution",
    "Scene",
    "StatusView",
    "TranscriptRecord",
    "TranscriptSegment",
    "UploadRequest",
    "UploadTicket",
    "VideoDocumentation",
    "VideoFile",
    "VideoMetadata",
    "VideoRecord",
    "VideoStatus",
    "parse_stage",
    "stages_from",
]
