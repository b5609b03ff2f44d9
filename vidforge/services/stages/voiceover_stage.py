"""
Voiceover stage: synthesize speech for the script.
"""

import logging

from vidforge.errors import ArtifactNotFoundError
from vidforge.models.schemas import ProcessingStage
from vidforge.services.stages.artifacts import VOICEOVER_FORMATS, voiceover_key
from vidforge.services.stages.base import BaseStage, StageContext
from vidforge.services.storage import UploadResult
from vidforge.utils.media_utils import guess_content_type, sniff_audio_format

logger = logging.getLogger(__name__)


class GenerateVoiceoverStage(BaseStage):
    """Synthesize the enhanced script (or the original text when not enhanced).

    Output:
        UploadResult of artifacts/<id>/voiceover.<fmt>; the container
        format is sniffed from the returned bytes and variants in other
        formats left by earlier runs are deleted.
    """

    stage = ProcessingStage.GENERATE_VOICEOVER

    async def validate_context(self, context: StageContext) -> None:
        transcript = self.require_transcript(context)
        if not transcript.script_text.strip():
            raise ArtifactNotFoundError(
                f"Transcript of {context.video_id} has no text to voice", stage=self.name
            )

    async def execute(self, context: StageContext) -> UploadResult:
        storage = self.services.storage
        text = self.require_transcript(context).script_text
        await context.progress.report(10)

        audio = await self.services.generative.synthesize_voice(text, self.services.settings.voice_id)
        await context.progress.report(70)

        fmt = sniff_audio_format(audio)
        key = voiceover_key(context.video_id, fmt)
        uploaded = await storage.put(
            audio,
            key,
            guess_content_type(key),
            metadata={"voice_id": self.services.settings.voice_id},
        )

        for other in VOICEOVER_FORMATS:
            if other != fmt:
                await storage.delete(voiceover_key(context.video_id, other))
        await context.progress.report(95)

        logger.info(f"[{context.video_id}] Voiceover stored: {key} ({uploaded.size / 1024:.1f} KB)")
        return uploaded


async def find_voiceover_key(storage, video_id: str) -> str | None:
    """Key of the stored voiceover, None if no stage run produced one."""
    for fmt in VOICEOVER_FORMATS:
        key = voiceover_key(video_id, fmt)
        if await storage.exists(key):
            return key
    return None
