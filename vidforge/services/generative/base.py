"""
Generative gateway protocol and result types.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from vidforge.models.schemas import TranscriptSegment, VideoDocumentation


@dataclass
class TranscriptionResult:
    """
    Speech-to-text output.

    Attributes:
        text: Full transcript text
        segments: Timed segments in order
        language: Detected or requested language code
        confidence: Overall confidence 0..1
    """

    text: str
    segments: list[TranscriptSegment] = field(default_factory=list)
    language: str = "en"
    confidence: float = 0.0


@dataclass
class ScriptEnhancement:
    """
    Polished script with a list of the edits made.

    Attributes:
        enhanced_text: Improved script
        improvements: Human-readable list of applied changes
    """

    enhanced_text: str
    improvements: list[str] = field(default_factory=list)


@runtime_checkable
class GenerativeGateway(Protocol):
    """
    AI operations used by the pipeline.

    Implementations:
        SyntheticGenerativeGateway: deterministic offline fallback
        ProviderGenerativeGateway: Whisper, Claude and TTS providers
    """

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        ...

    async def enhance_script(self, text: str, context: str | None = None) -> ScriptEnhancement:
        ...

    async def synthesize_voice(self, text: str, voice_id: str = "alloy") -> bytes:
        ...

    async def summarize(self, text: str) -> str:
        ...

    async def generate_documentation(
        self,
        transcript: str,
        video_title: str,
        segments: list[TranscriptSegment] | None = None,
    ) -> VideoDocumentation:
        ...

    async def close(self) -> None:
        ...
