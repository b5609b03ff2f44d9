"""
Progress management for pipeline stages.

Each stage owns the 0..100 range of processing.progress: the value is
reset to 0 when a stage starts and only moves forward until the stage
reports 100. Gateway operations (ffmpeg) report their own 0..100, which
a stage maps into a sub-range with window().
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable

from vidforge.models.schemas import ProcessingStage
from vidforge.services.progress_hub import ProgressHub
from vidforge.services.record_store import RecordStore

logger = logging.getLogger(__name__)

# Signature: (percent) -> None
ProgressCallback = Callable[[float], Awaitable[None]]


class ProgressReporter:
    """
    Writes monotonic per-stage progress to the record store and hub.

    Example:
        reporter = ProgressReporter(store, hub, video_id)
        await reporter.start_stage(ProcessingStage.RENDER_VIDEO)
        await tool.render_with_captions(..., on_progress=reporter.window(20, 80))
        await reporter.complete_stage()
    """

    def __init__(self, store: RecordStore, hub: ProgressHub | None, video_id: str):
        self.store = store
        self.hub = hub
        self.video_id = video_id
        self.stage: ProcessingStage | None = None
        self.progress = 0.0

    async def start_stage(self, stage: ProcessingStage) -> None:
        """Enter a stage: progress 0, started_at now, completed_at cleared."""
        self.stage = stage
        self.progress = 0.0
        await self.store.update(
            self.video_id,
            {
                "processing.stage": stage.value,
                "processing.progress": 0,
                "processing.started_at": datetime.now(),
                "processing.completed_at": None,
            },
        )
        await self._publish()
        logger.debug(f"[{self.video_id}] {stage.value}: started")

    async def report(self, percent: float) -> None:
        """
        Report stage progress.

        Values below the last reported one are ignored so progress
        never moves backwards within a stage.

        Args:
            percent: Progress 0..100 (clamped)
        """
        percent = round(max(0.0, min(100.0, percent)), 1)
        if percent <= self.progress:
            return

        self.progress = percent
        changes = {"processing.progress": percent}
        if percent >= 100:
            changes["processing.completed_at"] = datetime.now()
        await self.store.update(self.video_id, changes)
        await self._publish()

    async def complete_stage(self) -> None:
        await self.report(100)
        if self.stage:
            logger.debug(f"[{self.video_id}] {self.stage.value}: done")

    def window(self, start: float, end: float) -> ProgressCallback:
        """
        Callback mapping an operation's 0..100 into [start, end].

        Args:
            start: Stage progress at operation 0%
            end: Stage progress at operation 100%

        Returns:
            Async progress callback
        """

        async def callback(percent: float) -> None:
            await self.report(start + (end - start) * max(0.0, min(100.0, percent)) / 100)

        return callback

    async def _publish(self) -> None:
        if self.hub is None or self.stage is None:
            return
        await self.hub.publish(
            self.video_id,
            {"type": "progress", "stage": self.stage.value, "progress": self.progress},
        )
