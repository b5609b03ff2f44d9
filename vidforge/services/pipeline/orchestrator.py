"""
Pipeline orchestrator for video processing.

Runs the ordered stages for one video, from a requested stage to the
end, tracking progress and failure on the video record.

Failure handling:
- Any error inside a stage aborts the run; nothing is rolled back.
- The video is marked status=error with processing.error set and the
  run returns a failed PipelineOutcome (the caller marks the job).
- Cancellation marks the video "Cancelled by request" and propagates.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from vidforge.errors import ConflictError, PipelineError, StageTimeoutError
from vidforge.models.schemas import (
    ProcessingStage,
    VideoStatus,
    parse_stage,
    stages_from,
)
from vidforge.services.pipeline.progress_manager import ProgressReporter
from vidforge.services.pipeline.workspace import stage_workspace
from vidforge.services.progress_hub import ProgressHub
from vidforge.services.stages import (
    BaseStage,
    StageContext,
    StageServices,
    create_default_stages,
)

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by request"


@dataclass
class PipelineOutcome:
    """
    Result of one orchestrator run.

    Attributes:
        video_id: Processed video
        success: True when every requested stage completed
        stages_completed: Stages that finished, in order
        failed_stage: Stage that failed (if any)
        error: Failure message recorded on the video (if any)
        duration_sec: Wall time of the run
    """

    video_id: str
    success: bool
    stages_completed: list[ProcessingStage] = field(default_factory=list)
    failed_stage: ProcessingStage | None = None
    error: str | None = None
    duration_sec: float = 0.0


class PipelineOrchestrator:
    """
    Stage machine over PIPELINE_STAGES.

    At most one run per video is active in this process; a second
    concurrent run for the same video raises ConflictError. The queue
    serializes runs before they get here, this is a second guard.

    Example:
        orchestrator = PipelineOrchestrator(services, hub)
        outcome = await orchestrator.run("vid_1")
        # Regenerate captions and everything after them
        outcome = await orchestrator.run("vid_1", ProcessingStage.GENERATE_CAPTIONS)
    """

    def __init__(
        self,
        services: StageServices,
        hub: ProgressHub | None = None,
        stages: dict[ProcessingStage, BaseStage] | None = None,
    ):
        self.services = services
        self.hub = hub
        self.stages = stages or create_default_stages(services)
        self._active: set[str] = set()

    def is_running(self, video_id: str) -> bool:
        return video_id in self._active

    def stage_timeout(self, stage: ProcessingStage) -> float:
        """Timeout from pipeline.yaml stage_timeouts, else settings.stage_timeout_seconds."""
        timeouts = self.services.pipeline_config.get("stage_timeouts", {})
        return float(timeouts.get(stage.value, self.services.settings.stage_timeout_seconds))

    # ═══════════════════════════════════════════════════════════════════════
    # Run
    # ═══════════════════════════════════════════════════════════════════════

    async def run(
        self,
        video_id: str,
        from_stage: "ProcessingStage | str" = ProcessingStage.EXTRACT_AUDIO,
        job_id: str | None = None,
    ) -> PipelineOutcome:
        """
        Run from_stage and every stage after it.

        Earlier stages are never re-run; their artifacts are reused.

        Args:
            video_id: Video to process
            from_stage: First stage to run
            job_id: Triggering job (for logs)

        Returns:
            PipelineOutcome

        Raises:
            InvalidStageError: If from_stage is not runnable
            VideoNotFoundError: If the video does not exist
            ConflictError: If a run for the video is already active
        """
        first = parse_stage(from_stage)
        if video_id in self._active:
            raise ConflictError(video_id)

        self._active.add(video_id)
        try:
            return await self._run(video_id, first, job_id)
        finally:
            self._active.discard(video_id)

    async def _run(
        self,
        video_id: str,
        first: ProcessingStage,
        job_id: str | None,
    ) -> PipelineOutcome:
        records = self.services.records
        await records.get(video_id)

        started = time.time()
        outcome = PipelineOutcome(video_id=video_id, success=False)
        reporter = ProgressReporter(records, self.hub, video_id)

        await records.update(
            video_id,
            {"status": VideoStatus.PROCESSING.value, "processing.error": None},
        )
        logger.info(f"[{video_id}] Pipeline started from {first.value} (job={job_id})")

        current: ProcessingStage | None = None
        try:
            for current in stages_from(first):
                await self._run_stage(self.stages[current], video_id, reporter, job_id)
                outcome.stages_completed.append(current)

        except asyncio.CancelledError:
            logger.warning(f"[{video_id}] Pipeline cancelled during {current.value if current else '-'}")
            await asyncio.shield(self._mark_failed(video_id, CANCELLED_MESSAGE))
            raise

        except PipelineError as e:
            if e.stage is None and current is not None:
                e.stage = current.value
            logger.error(f"[{video_id}] Pipeline failed: {e}")
            return await self._fail(outcome, current, e.message, started)

        except Exception as e:
            logger.exception(f"[{video_id}] Unexpected error in {current.value if current else '-'}")
            return await self._fail(outcome, current, f"{type(e).__name__}: {e}", started)

        await records.update(
            video_id,
            {
                "status": VideoStatus.READY.value,
                "processing.stage": ProcessingStage.COMPLETE.value,
                "processing.progress": 100,
                "processing.error": None,
            },
        )
        await self._publish(video_id, {"type": "status", "status": VideoStatus.READY.value})

        outcome.success = True
        outcome.duration_sec = time.time() - started
        logger.info(
            f"[{video_id}] Pipeline complete: {len(outcome.stages_completed)} stages "
            f"in {outcome.duration_sec:.1f}s"
        )
        return outcome

    async def _run_stage(
        self,
        stage: BaseStage,
        video_id: str,
        reporter: ProgressReporter,
        job_id: str | None,
    ) -> None:
        records = self.services.records
        await reporter.start_stage(stage.stage)

        # Fresh snapshot: everything committed by earlier stages, deep-copied.
        video = await records.get(video_id)
        transcript = await records.get_transcript(video_id)

        with stage_workspace(self.services.settings.temp_dir, video_id, stage.name) as workspace:
            context = StageContext(
                video=video,
                transcript=transcript,
                workspace=workspace,
                progress=reporter,
                job_id=job_id,
            )
            timeout = self.stage_timeout(stage.stage)
            stage_started = time.time()

            try:
                result = await asyncio.wait_for(self._execute(stage, context), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise StageTimeoutError(stage.name, timeout) from e

            await stage.commit(context, result)

        await reporter.complete_stage()
        logger.info(f"[{video_id}] {stage.name} done in {time.time() - stage_started:.1f}s")

    @staticmethod
    async def _execute(stage: BaseStage, context: StageContext):
        await stage.validate_context(context)
        return await stage.execute(context)

    # ═══════════════════════════════════════════════════════════════════════
    # Failure marking
    # ═══════════════════════════════════════════════════════════════════════

    async def _fail(
        self,
        outcome: PipelineOutcome,
        stage: ProcessingStage | None,
        message: str,
        started: float,
    ) -> PipelineOutcome:
        await self._mark_failed(outcome.video_id, message)
        outcome.failed_stage = stage
        outcome.error = message
        outcome.duration_sec = time.time() - started
        return outcome

    async def _mark_failed(self, video_id: str, message: str) -> None:
        await self.services.records.update(
            video_id,
            {"status": VideoStatus.ERROR.value, "processing.error": message},
        )
        await self._publish(video_id, {"type": "status", "status": VideoStatus.ERROR.value, "error": message})

    async def _publish(self, video_id: str, message: dict) -> None:
        if self.hub is not None:
            await self.hub.publish(video_id, message)
