"""
Enhance script stage: polish the transcript into a voiceover script.
"""

import logging

from vidforge.models.schemas import ProcessingStage
from vidforge.services.generative import ScriptEnhancement
from vidforge.services.stages.base import BaseStage, StageContext

logger = logging.getLogger(__name__)


class EnhanceScriptStage(BaseStage):
    """Rewrite the original transcript text.

    The video title is passed as context so the model knows the topic.
    Commit writes enhanced_text and improvements of the transcript only.
    """

    stage = ProcessingStage.ENHANCE_SCRIPT

    async def validate_context(self, context: StageContext) -> None:
        self.require_transcript(context)

    async def execute(self, context: StageContext) -> ScriptEnhancement:
        transcript = self.require_transcript(context)
        await context.progress.report(10)

        result = await self.services.generative.enhance_script(
            transcript.original_text,
            context=context.video.title or None,
        )
        await context.progress.report(90)

        logger.info(
            f"[{context.video_id}] Script enhanced: "
            f"{len(transcript.original_text)} -> {len(result.enhanced_text)} chars, "
            f"{len(result.improvements)} improvements"
        )
        return result

    async def commit(self, context: StageContext, result: ScriptEnhancement) -> None:
        await self.services.records.update_transcript(
            context.video_id,
            {"enhanced_text": result.enhanced_text, "improvements": result.improvements},
        )
