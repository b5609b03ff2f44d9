"""
Extract audio stage.

Downloads the original upload, probes it and extracts a PCM WAV track
for transcription.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from vidforge.errors import ValidationError
from vidforge.models.schemas import ProcessingStage, Resolution
from vidforge.services.media_tool import MediaInfo
from vidforge.services.stages.artifacts import audio_key
from vidforge.services.stages.base import BaseStage, StageContext
from vidforge.services.storage import UploadResult
from vidforge.utils.media_utils import is_audio_file, is_video_file

logger = logging.getLogger(__name__)


@dataclass
class ExtractAudioResult:
    audio: UploadResult
    source_info: MediaInfo


class ExtractAudioStage(BaseStage):
    """Extract audio from the original video.

    Input (from context):
        - video.original_file.key: must exist in storage and name a video or
          audio container

    Output:
        ExtractAudioResult; audio stored at artifacts/<id>/audio.wav

    Commit:
        original_file.duration_seconds and resolution from the probe
    """

    stage = ProcessingStage.EXTRACT_AUDIO

    async def validate_context(self, context: StageContext) -> None:
        source = Path(self.original_filename(context))
        if not (is_video_file(source) or is_audio_file(source)):
            raise ValidationError(
                f"Unsupported original file type: {context.video.original_file.key}",
                stage=self.stage.value,
            )
        await self.require_original(context)

    async def execute(self, context: StageContext) -> ExtractAudioResult:
        storage = self.services.storage
        media = self.services.media
        audio_config = self.services.pipeline_config.get("audio", {})

        source = await storage.download(
            context.video.original_file.key,
            context.workspace / self.original_filename(context),
        )
        await context.progress.report(10)

        info = await media.probe(source)
        start, end = self.progress_window()
        await context.progress.report(start)

        audio_path = await media.extract_audio(
            source,
            context.workspace / "audio.wav",
            format="wav",
            bitrate=str(audio_config.get("bitrate", "192k")),
            on_progress=context.progress.window(start, end),
        )

        uploaded = await storage.upload_file(audio_path, audio_key(context.video_id), "audio/wav")
        await context.progress.report(95)

        logger.info(
            f"[{context.video_id}] Audio extracted: {uploaded.size / 1024 / 1024:.1f} MB, "
            f"source {info.duration_sec:.1f}s {info.width}x{info.height}"
        )
        return ExtractAudioResult(audio=uploaded, source_info=info)

    async def commit(self, context: StageContext, result: ExtractAudioResult) -> None:
        info = result.source_info
        changes = {}
        if info.duration_sec > 0:
            changes["original_file.duration_seconds"] = info.duration_sec
        if info.width and info.height:
            changes["original_file.resolution"] = Resolution(width=info.width, height=info.height)
        if changes:
            await self.services.records.update(context.video_id, changes)
