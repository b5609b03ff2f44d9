"""
Render stage: burn captions in, mix the voiceover and store the deliverable.
"""

import logging
from pathlib import Path

from vidforge.errors import ArtifactNotFoundError
from vidforge.models.schemas import ProcessingStage, Resolution, VideoFile
from vidforge.services.media_tool import RenderOptions
from vidforge.services.stages.artifacts import captions_key, processed_key
from vidforge.services.stages.base import BaseStage, StageContext
from vidforge.services.stages.voiceover_stage import find_voiceover_key

logger = logging.getLogger(__name__)


class RenderVideoStage(BaseStage):
    """Produce processed/<id>.mp4.

    Steps:
        1. render_with_captions: original + captions.srt
        2. merge_audio_video: replace audio with the voiceover
           (only when settings.mix_voiceover)
        3. upload and probe the result

    Output:
        VideoFile for video.processed_file. The orchestrator marks the
        video ready after this stage commits.
    """

    stage = ProcessingStage.RENDER_VIDEO

    async def validate_context(self, context: StageContext) -> None:
        await self.require_original(context)
        await self.require_artifact(captions_key(context.video_id), "Subtitle file")
        if self.services.settings.mix_voiceover:
            if await find_voiceover_key(self.services.storage, context.video_id) is None:
                raise ArtifactNotFoundError(
                    f"Voiceover not found for video: {context.video_id}", stage=self.name
                )

    def render_options(self) -> RenderOptions:
        return RenderOptions.from_config(self.services.pipeline_config.get("render", {}))

    async def execute(self, context: StageContext) -> VideoFile:
        storage = self.services.storage
        media = self.services.media
        workspace = context.workspace
        start, end = self.progress_window()

        source = await storage.download(
            context.video.original_file.key, workspace / self.original_filename(context)
        )
        subtitle = await storage.download(captions_key(context.video_id), workspace / "captions.srt")

        voiceover: Path | None = None
        if self.services.settings.mix_voiceover:
            voiceover_key = await find_voiceover_key(storage, context.video_id)
            voiceover = await storage.download(voiceover_key, workspace / Path(voiceover_key).name)
        await context.progress.report(start / 2)

        rendered = workspace / "rendered.mp4"
        render_end = start + (end - start) * (0.75 if voiceover else 1.0)
        await context.progress.report(start)
        await media.render_with_captions(
            source,
            rendered,
            subtitle,
            options=self.render_options(),
            on_progress=context.progress.window(start, render_end),
        )

        final = rendered
        if voiceover:
            final = workspace / "final.mp4"
            await media.merge_audio_video(
                rendered,
                voiceover,
                final,
                on_progress=context.progress.window(render_end, end),
            )
        await context.progress.report(end)

        key = processed_key(context.video_id)
        uploaded = await storage.upload_file(final, key, "video/mp4")
        info = await media.probe(final)
        await context.progress.report(95)

        logger.info(
            f"[{context.video_id}] Rendered: {key} "
            f"({uploaded.size / 1024 / 1024:.1f} MB, {info.duration_sec:.1f}s)"
        )
        return VideoFile(
            url=uploaded.url,
            key=key,
            size_bytes=uploaded.size,
            duration_seconds=info.duration_sec,
            format="mp4",
            resolution=Resolution(width=info.width, height=info.height),
        )

    async def commit(self, context: StageContext, result: VideoFile) -> None:
        await self.services.records.update(context.video_id, {"processed_file": result})
