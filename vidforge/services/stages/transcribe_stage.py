"""
Transcribe stage for speech-to-text via the generative gateway.
"""

import logging
from datetime import datetime

from vidforge.models.schemas import ProcessingStage, TranscriptRecord
from vidforge.services.generative import TranscriptionResult
from vidforge.services.stages.artifacts import audio_key
from vidforge.services.stages.base import BaseStage, StageContext

logger = logging.getLogger(__name__)


class TranscribeStage(BaseStage):
    """Transcribe the extracted audio.

    Input (from context):
        - artifacts/<id>/audio.wav in storage

    Output:
        TranscriptionResult

    Commit:
        TranscriptRecord created or overwritten (id and created_at of an
        existing transcript are kept), video.transcript_ref set
    """

    stage = ProcessingStage.TRANSCRIBE

    async def validate_context(self, context: StageContext) -> None:
        await self.require_artifact(audio_key(context.video_id), "Audio artifact")

    async def execute(self, context: StageContext) -> TranscriptionResult:
        audio = await self.services.storage.read(audio_key(context.video_id))
        await context.progress.report(10)

        result = await self.services.generative.transcribe(audio, "audio.wav")
        await context.progress.report(90)

        logger.info(
            f"[{context.video_id}] Transcribed: {len(result.segments)} segments, "
            f"language={result.language}, confidence={result.confidence:.2f}"
        )
        return result

    async def commit(self, context: StageContext, result: TranscriptionResult) -> None:
        existing = context.transcript
        now = datetime.now()
        transcript = TranscriptRecord(
            id=existing.id if existing else f"tr_{context.video_id}",
            video_id=context.video_id,
            original_text=result.text,
            segments=result.segments,
            language=result.language,
            confidence=result.confidence,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        await self.services.records.save_transcript(transcript)
        await self.services.records.update(context.video_id, {"transcript_ref": transcript.id})
