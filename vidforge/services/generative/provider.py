"""
Generative gateway backed by live AI providers.

Each operation uses its provider client when one is configured and the
synthetic gateway otherwise. Provider failures are wrapped into
GenerativeError; an unparsable enhancement answer falls back to the
rule-based polish with a warning.
"""

import logging
import math

from vidforge.config import Settings, load_prompt
from vidforge.errors import GenerativeError
from vidforge.models.schemas import TranscriptSegment, VideoDocumentation
from vidforge.services.ai_clients import (
    AIClientError,
    ClaudeClient,
    SpeechClient,
    WhisperClient,
)
from vidforge.services.generative.base import ScriptEnhancement, TranscriptionResult
from vidforge.services.generative.synthetic import SyntheticGenerativeGateway
from vidforge.utils.json_utils import extract_json_object

logger = logging.getLogger(__name__)


def _segment_confidence(segment: dict) -> float:
    """Map Whisper avg_logprob to 0..1, default 1.0 when absent."""
    logprob = segment.get("avg_logprob")
    if logprob is None:
        return float(segment.get("confidence", 1.0))
    return max(0.0, min(1.0, math.exp(logprob)))


def timed_transcript(transcript: str, segments: list[TranscriptSegment] | None) -> str:
    """One "[start] text" line per segment, or the plain transcript without segments."""
    if not segments:
        return transcript
    return "\n".join(f"[{segment.start_sec:.1f}] {segment.text}" for segment in segments)


def parse_whisper_result(result: dict) -> TranscriptionResult:
    """
    Convert a verbose_json Whisper response to TranscriptionResult.

    Args:
        result: Whisper API response

    Returns:
        TranscriptionResult with one segment per Whisper segment
    """
    segments = []
    for i, raw in enumerate(result.get("segments", [])):
        text = str(raw.get("text", "")).strip()
        if not text:
            continue
        start = max(0.0, float(raw.get("start", 0.0)))
        segments.append(
            TranscriptSegment(
                id=f"segment_{i}",
                text=text,
                start_sec=start,
                end_sec=max(start, float(raw.get("end", start))),
                confidence=_segment_confidence(raw),
                speaker=raw.get("speaker"),
            )
        )

    confidence = (
        sum(s.confidence for s in segments) / len(segments) if segments else 0.0
    )
    return TranscriptionResult(
        text=str(result.get("text", "")).strip() or " ".join(s.text for s in segments),
        segments=segments,
        language=result.get("language") or "en",
        confidence=round(confidence, 4),
    )


class ProviderGenerativeGateway:
    """
    GenerativeGateway using Whisper, Claude and a TTS endpoint.

    Example:
        gateway = ProviderGenerativeGateway.from_settings(settings)
        result = await gateway.transcribe(audio_bytes, "audio.wav")
        await gateway.close()
    """

    def __init__(
        self,
        settings: Settings,
        whisper: WhisperClient | None = None,
        claude: ClaudeClient | None = None,
        speech: SpeechClient | None = None,
        fallback: SyntheticGenerativeGateway | None = None,
    ):
        self.settings = settings
        self.whisper = whisper
        self.claude = claude
        self.speech = speech
        self.fallback = fallback or SyntheticGenerativeGateway()

    @classmethod
    def from_settings(cls, settings: Settings, require_all: bool = False) -> "ProviderGenerativeGateway":
        """
        Build clients for every configured provider.

        Args:
            settings: Application settings
            require_all: Raise instead of skipping unconfigured providers

        Raises:
            ValueError: If require_all and a provider is not configured
        """
        clients = {}
        for name, factory in (
            ("whisper", WhisperClient.from_settings),
            ("claude", ClaudeClient.from_settings),
            ("speech", SpeechClient.from_settings),
        ):
            try:
                clients[name] = factory(settings)
            except ValueError as e:
                if require_all:
                    raise
                logger.info(f"{name} provider not configured, using fallback: {e}")
        return cls(settings, **clients)

    @property
    def configured_providers(self) -> list[str]:
        return [
            name
            for name, client in (
                ("whisper", self.whisper),
                ("claude", self.claude),
                ("speech", self.speech),
            )
            if client is not None
        ]

    async def close(self) -> None:
        for client in (self.whisper, self.claude, self.speech):
            if client is not None:
                await client.close()

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        if self.whisper is None:
            return await self.fallback.transcribe(audio, filename)

        try:
            result = await self.whisper.transcribe(audio, filename)
        except AIClientError as e:
            raise GenerativeError(f"Transcription failed: {e}", cause=e) from e

        return parse_whisper_result(result)

    async def enhance_script(self, text: str, context: str | None = None) -> ScriptEnhancement:
        if self.claude is None:
            return await self.fallback.enhance_script(text, context)

        system_prompt = load_prompt("enhance_script", "system", self.settings)
        user_prompt = (
            load_prompt("enhance_script", "user", self.settings)
            .replace("{context}", context or "untitled")
            .replace("{transcript}", text)
        )

        try:
            answer = await self.claude.complete(
                system_prompt,
                user_prompt,
                temperature=0.3,
            )
        except AIClientError as e:
            raise GenerativeError(f"Script enhancement failed: {e}", cause=e) from e

        data = extract_json_object(answer)
        enhanced = data.get("enhancedText") if data else None
        if not isinstance(enhanced, str) or not enhanced.strip():
            logger.warning("Unparsable enhancement answer, using rule-based polish")
            return await self.fallback.enhance_script(text, context)

        improvements = [str(item) for item in data.get("improvements") or [] if str(item).strip()]
        return ScriptEnhancement(
            enhanced_text=enhanced.strip(),
            improvements=improvements or ["Rewrote script for clarity"],
        )

    async def synthesize_voice(self, text: str, voice_id: str = "alloy") -> bytes:
        if self.speech is None:
            return await self.fallback.synthesize_voice(text, voice_id)

        try:
            return await self.speech.synthesize(text, voice=voice_id)
        except AIClientError as e:
            raise GenerativeError(f"Voice synthesis failed: {e}", cause=e) from e

    async def summarize(self, text: str) -> str:
        if self.claude is None:
            return await self.fallback.summarize(text)

        system_prompt = load_prompt("summarize", "system", self.settings)
        user_prompt = load_prompt("summarize", "user", self.settings).replace("{transcript}", text)

        try:
            answer = await self.claude.complete(
                system_prompt,
                user_prompt,
                temperature=0.3,
                max_tokens=512,
            )
        except AIClientError as e:
            raise GenerativeError(f"Summary failed: {e}", cause=e) from e

        data = extract_json_object(answer)
        summary = data.get("summary") if data else None
        if isinstance(summary, str) and summary.strip():
            return summary.strip()

        logger.warning("Unparsable summary answer, using extractive summary")
        return await self.fallback.summarize(text)

    async def generate_documentation(
        self,
        transcript: str,
        video_title: str,
        segments: list[TranscriptSegment] | None = None,
    ) -> VideoDocumentation:
        if self.claude is None:
            return await self.fallback.generate_documentation(transcript, video_title, segments)

        system_prompt = load_prompt("generate_documentation", "system", self.settings)
        user_prompt = (
            load_prompt("generate_documentation", "user", self.settings)
            .replace("{title}", video_title or "untitled")
            .replace("{transcript}", timed_transcript(transcript, segments))
        )

        try:
            answer = await self.claude.complete(system_prompt, user_prompt, temperature=0.3)
        except AIClientError as e:
            raise GenerativeError(f"Documentation generation failed: {e}", cause=e) from e

        data = extract_json_object(answer)
        if data and data.get("steps"):
            try:
                return VideoDocumentation.model_validate(data)
            except ValueError as e:
                logger.warning(f"Invalid documentation answer: {e}")

        logger.warning("Unusable documentation answer, using transcript outline")
        return await self.fallback.generate_documentation(transcript, video_title, segments)
