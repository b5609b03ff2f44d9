"""
Pipeline stages for video processing.

Each stage handles one ProcessingStage. The orchestrator runs them in
PIPELINE_STAGES order starting from the requested stage.

Usage:
    from vidforge.services.stages import StageServices, create_default_stages

    services = StageServices(storage, media, generative, records, settings, config)
    stages = create_default_stages(services)
    stage = stages[ProcessingStage.GENERATE_CAPTIONS]
"""

from vidforge.models.schemas import PIPELINE_STAGES, ProcessingStage
from vidforge.services.stages.base import BaseStage, StageContext, StageServices
from vidforge.services.stages.captions_stage import GenerateCaptionsStage, build_captions
from vidforge.services.stages.detect_scenes_stage import DetectScenesStage
from vidforge.services.stages.enhance_script_stage import EnhanceScriptStage
from vidforge.services.stages.extract_audio_stage import ExtractAudioStage
from vidforge.services.stages.render_stage import RenderVideoStage
from vidforge.services.stages.transcribe_stage import TranscribeStage
from vidforge.services.stages.voiceover_stage import GenerateVoiceoverStage

STAGE_CLASSES: tuple[type[BaseStage], ...] = (
    ExtractAudioStage,
    TranscribeStage,
    EnhanceScriptStage,
    GenerateVoiceoverStage,
    DetectScenesStage,
    GenerateCaptionsStage,
    RenderVideoStage,
)


def create_default_stages(services: StageServices) -> dict[ProcessingStage, BaseStage]:
    """
    Instantiate every pipeline stage.

    Args:
        services: Shared gateways and configuration

    Returns:
        Mapping of stage enum to stage instance, in pipeline order
    """
    stages = {cls.stage: cls(services) for cls in STAGE_CLASSES}
    missing = [s for s in PIPELINE_STAGES if s not in stages]
    if missing:
        raise RuntimeError(f"No stage implementation for: {[s.value for s in missing]}")
    return {s: stages[s] for s in PIPELINE_STAGES}


__all__ = [
    "BaseStage",
    "DetectScenesStage",
    "EnhanceScriptStage",
    "ExtractAudioStage",
    "GenerateCaptionsStage",
    "GenerateVoiceoverStage",
    "RenderVideoStage",
    "STAGE_CLASSES",
    "StageContext",
    "StageServices",
    "TranscribeStage",
    "build_captions",
    "create_default_stages",
]
