"""
Generate captions stage: transcript segments to caption cues and SubRip.
"""

import logging
from dataclasses import dataclass

from vidforge.errors import ArtifactNotFoundError
from vidforge.models.schemas import Caption, CaptionStyle, ProcessingStage, TranscriptSegment
from vidforge.services.stages.artifacts import captions_key
from vidforge.services.stages.base import BaseStage, StageContext
from vidforge.services.storage import UploadResult
from vidforge.utils.srt import to_srt

logger = logging.getLogger(__name__)


@dataclass
class CaptionsResult:
    captions: list[Caption]
    subtitle: UploadResult


def build_captions(segments: list[TranscriptSegment], style: CaptionStyle) -> list[Caption]:
    """
    One caption per non-empty segment, in time order.

    Args:
        segments: Transcript segments
        style: Style applied to every cue

    Returns:
        Caption cues with ids caption_0..caption_n
    """
    ordered = sorted((s for s in segments if s.text.strip()), key=lambda s: s.start_sec)
    return [
        Caption(
            id=f"caption_{i}",
            start_sec=segment.start_sec,
            end_sec=max(segment.end_sec, segment.start_sec),
            text=segment.text.strip(),
            style=style.model_copy(),
        )
        for i, segment in enumerate(ordered)
    ]


class GenerateCaptionsStage(BaseStage):
    """Build caption cues and the SubRip file.

    Pure transform of transcript segments; no AI call.

    Commit:
        video.captions replaced
    """

    stage = ProcessingStage.GENERATE_CAPTIONS

    async def validate_context(self, context: StageContext) -> None:
        transcript = self.require_transcript(context)
        if not transcript.segments:
            raise ArtifactNotFoundError(
                f"Transcript of {context.video_id} has no segments", stage=self.name
            )

    def caption_style(self) -> CaptionStyle:
        style = self.services.pipeline_config.get("captions", {}).get("style", {})
        return CaptionStyle(**style)

    async def execute(self, context: StageContext) -> CaptionsResult:
        transcript = self.require_transcript(context)
        captions = build_captions(transcript.segments, self.caption_style())
        await context.progress.report(50)

        subtitle = await self.services.storage.put(
            to_srt(captions).encode("utf-8"),
            captions_key(context.video_id),
            "application/x-subrip",
        )
        await context.progress.report(90)

        logger.info(f"[{context.video_id}] Captions: {len(captions)} cues")
        return CaptionsResult(captions=captions, subtitle=subtitle)

    async def commit(self, context: StageContext, result: CaptionsResult) -> None:
        await self.services.records.update(context.video_id, {"captions": result.captions})
