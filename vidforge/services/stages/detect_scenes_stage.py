"""
Detect scenes stage: evenly spaced keyframe thumbnails.
"""

import logging

from vidforge.models.schemas import Keyframe, ProcessingStage
from vidforge.services.stages.artifacts import thumbnail_key
from vidforge.services.stages.base import BaseStage, StageContext

logger = logging.getLogger(__name__)


class DetectScenesStage(BaseStage):
    """Capture keyframes from the original video.

    Thumbnail i (0-based) is taken at i * duration / count and stored at
    artifacts/<id>/thumbnails/thumb-<i+1>.png. Thumbnails from an earlier
    run that the new run did not produce are deleted.

    Commit:
        metadata.keyframes replaced
    """

    stage = ProcessingStage.DETECT_SCENES

    async def validate_context(self, context: StageContext) -> None:
        await self.require_original(context)

    async def execute(self, context: StageContext) -> list[Keyframe]:
        storage = self.services.storage
        media = self.services.media
        count = self.services.settings.thumbnail_count

        source = await storage.download(
            context.video.original_file.key,
            context.workspace / self.original_filename(context),
        )
        await context.progress.report(10)

        duration = context.video.original_file.duration_seconds
        if duration <= 0:
            duration = (await media.probe(source)).duration_sec

        start, end = self.progress_window()
        await context.progress.report(start)
        paths = await media.thumbnails(
            source,
            context.workspace / "thumbnails",
            count=count,
            on_progress=context.progress.window(start, end),
        )

        keyframes = []
        for i, path in enumerate(paths):
            key = thumbnail_key(context.video_id, i + 1)
            uploaded = await storage.upload_file(path, key, "image/png")
            keyframes.append(
                Keyframe(timestamp=round(i * duration / len(paths), 3), thumbnail=uploaded.url, key=key)
            )
            await context.progress.report(end + (95 - end) * (i + 1) / len(paths))

        new_keys = {k.key for k in keyframes}
        stale = {k.key for k in context.video.metadata.keyframes if k.key} - new_keys
        for key in sorted(stale):
            await storage.delete(key)

        logger.info(
            f"[{context.video_id}] Keyframes: {len(keyframes)} captured, {len(stale)} stale removed"
        )
        return keyframes

    async def commit(self, context: StageContext, result: list[Keyframe]) -> None:
        await self.services.records.update(context.video_id, {"metadata.keyframes": result})
