"""
Stage abstraction for the video pipeline.

A stage runs in two steps:
- execute(context): reads the frozen snapshot, calls gateways, stores
  artifacts and returns a typed result. It never writes the record.
- commit(context, result): persists the result with scoped record writes.

The orchestrator gives each stage a fresh StageContext built from the
record store right before the stage starts, so a stage sees everything
earlier stages committed and nothing else.

Example:
    class CaptionsStage(BaseStage):
        stage = ProcessingStage.GENERATE_CAPTIONS

        async def validate_context(self, context: StageContext) -> None:
            self.require_transcript(context)

        async def execute(self, context: StageContext) -> CaptionsResult:
            ...

        async def commit(self, context: StageContext, result: CaptionsResult) -> None:
            await self.services.records.update(context.video_id, {"captions": result.captions})
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vidforge.config import Settings
from vidforge.errors import ArtifactNotFoundError
from vidforge.models.schemas import ProcessingStage, TranscriptRecord, VideoRecord
from vidforge.services.generative import GenerativeGateway
from vidforge.services.media_tool import MediaTool
from vidforge.services.record_store import RecordStore
from vidforge.services.storage import StorageGateway

if TYPE_CHECKING:
    from vidforge.services.pipeline.progress_manager import ProgressReporter

DEFAULT_PROGRESS_WINDOW = (20.0, 80.0)


@dataclass
class StageServices:
    """Gateways and configuration shared by all stages."""

    storage: StorageGateway
    media: MediaTool
    generative: GenerativeGateway
    records: RecordStore
    settings: Settings
    pipeline_config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StageContext:
    """
    Immutable input of one stage run.

    Attributes:
        video: Deep copy of the video record at stage start
        transcript: Deep copy of the transcript, None if not created yet
        workspace: Scratch directory, removed after the stage
        progress: Reporter for this stage's 0..100 progress
        job_id: Queue job that triggered the run (if any)
    """

    video: VideoRecord
    transcript: TranscriptRecord | None
    workspace: Path
    progress: "ProgressReporter"
    job_id: str | None = None

    @property
    def video_id(self) -> str:
        return self.video.id


class BaseStage(ABC):
    """
    Abstract base class for pipeline stages.

    Subclasses must define:
    - stage: ProcessingStage handled by this class
    - execute(): gateway work, returns a typed result

    Optional overrides:
    - validate_context(): precondition checks (raise NotFoundError)
    - commit(): record writes for the result
    """

    stage: ProcessingStage

    def __init__(self, services: StageServices):
        self.services = services

    @property
    def name(self) -> str:
        return self.stage.value

    async def validate_context(self, context: StageContext) -> None:
        """
        Check preconditions before execute().

        Raises:
            NotFoundError: If a required record or artifact is missing
        """

    @abstractmethod
    async def execute(self, context: StageContext) -> Any:
        """
        Run the stage.

        Args:
            context: Snapshot and scratch space

        Returns:
            Typed stage result passed to commit()

        Raises:
            PipelineError: NotFound or Gateway failures
        """

    async def commit(self, context: StageContext, result: Any) -> None:
        """Persist the result. Default: nothing to write."""

    # ═══════════════════════════════════════════════════════════════════════
    # Shared precondition helpers
    # ═══════════════════════════════════════════════════════════════════════

    async def require_artifact(self, key: str, description: str) -> None:
        if not await self.services.storage.exists(key):
            raise ArtifactNotFoundError(f"{description} not found: {key}", stage=self.name)

    async def require_original(self, context: StageContext) -> None:
        await self.require_artifact(context.video.original_file.key, "Original video")

    def require_transcript(self, context: StageContext) -> TranscriptRecord:
        if context.transcript is None:
            raise ArtifactNotFoundError(
                f"Transcript not found for video: {context.video_id}", stage=self.name
            )
        return context.transcript

    def progress_window(self) -> tuple[float, float]:
        """Sub-range of stage progress for the main gateway operation."""
        window = self.services.pipeline_config.get("progress_windows", {}).get(self.name)
        if not window:
            return DEFAULT_PROGRESS_WINDOW
        start, end = (float(v) for v in window)
        return start, end

    def original_filename(self, context: StageContext) -> str:
        suffix = Path(context.video.original_file.key).suffix or f".{context.video.original_file.format}"
        return f"original{suffix}"
