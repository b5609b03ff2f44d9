"""
Deterministic offline generative gateway.

Used when no AI provider is configured (development, tests, air-gapped
deployments) and as the per-operation fallback of the provider gateway.
Same input always yields the same output; no network access.
"""

import hashlib
import io
import logging
import math
import re
import struct
import wave

from vidforge.models.schemas import DocumentationStep, TranscriptSegment, VideoDocumentation
from vidforge.services.generative.base import ScriptEnhancement, TranscriptionResult
from vidforge.utils.media_utils import estimate_speech_duration

logger = logging.getLogger(__name__)

SENTENCE_BANK = (
    "Welcome to this screen recording tutorial.",
    "In this video, I'll guide you through the main features of the application.",
    "We'll highlight key workflows and a few best practices along the way.",
    "Let's start by exploring the dashboard where all primary functions live.",
    "Next, open the settings panel to adjust the project defaults.",
    "Notice how changes are saved automatically as you work.",
    "Now let's export the result and share it with the team.",
    "That covers the essentials, thanks for watching.",
)
SEGMENT_COUNT = 4
SEGMENT_CONFIDENCES = (0.95, 0.92, 0.88, 0.91)
TRANSCRIPT_CONFIDENCE = 0.92
CHARS_PER_SECOND = 15.0

FILLER_RE = re.compile(
    r"\b(?:um|uh|like|you know|so|basically|actually|literally)\b",
    re.IGNORECASE,
)
CONNECTOR_RE = re.compile(r"\. (and|but|so|then) ", re.IGNORECASE)
INFORMAL = (
    (re.compile(r"\bgonna\b", re.IGNORECASE), "going to"),
    (re.compile(r"\bwanna\b", re.IGNORECASE), "want to"),
    (re.compile(r"\bgotta\b", re.IGNORECASE), "have to"),
    (re.compile(r"\bkinda\b", re.IGNORECASE), "kind of"),
    (re.compile(r"\bsorta\b", re.IGNORECASE), "sort of"),
)

# Voice tone: 400 Hz at 8 kHz is exactly 20 samples per period.
SAMPLE_RATE = 8000
TONE_HZ = 400
MIN_VOICE_SECONDS = 1
MAX_VOICE_SECONDS = 600
SUMMARY_MAX_CHARS = 280
MAX_DOC_STEPS = 8
STEP_TITLE_WORDS = 6
# Outline for transcripts with nothing usable in them.
GENERIC_STEPS = (
    ("Getting started", "Open the application and go to the main dashboard.", 0.0),
    ("Configure settings", "Set the configuration options your use case needs.", 30.0),
    ("Run the main workflow", "Follow the guided workflow to complete the primary task.", 60.0),
    ("Review the results", "Check that the process finished and review the output.", 90.0),
)


def _digest(*parts: bytes) -> int:
    h = hashlib.sha256()
    for part in parts:
        h.update(part)
    return int.from_bytes(h.digest()[:8], "big")


def _clean_punctuation(text: str) -> str:
    """Tidy commas and spaces left behind by removed words."""
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s+([,.!?;:])", r"\1", text)
    text = re.sub(r",(\s*,)+", ",", text)
    text = re.sub(r",\s*([.!?])", r"\1", text)
    return text.strip().lstrip(",;: ").strip()


def enhance_text(text: str) -> ScriptEnhancement:
    """
    Rule-based script polish.

    Removes filler words, normalizes spacing and punctuation,
    capitalizes sentence connectors and the first letter, ensures a
    terminal punctuation mark and expands informal contractions.

    Args:
        text: Raw transcript text

    Returns:
        ScriptEnhancement listing only the edits that changed something

    Example:
        >>> enhance_text("um so basically this is great").enhanced_text
        'This is great.'
    """
    improvements: list[str] = []

    enhanced, fillers = FILLER_RE.subn("", text)
    if fillers:
        improvements.append(f"Removed {fillers} filler word{'s' if fillers != 1 else ''}")
    enhanced = _clean_punctuation(enhanced)

    enhanced, connectors = CONNECTOR_RE.subn(lambda m: f". {m.group(1).capitalize()} ", enhanced)
    if connectors:
        improvements.append("Capitalized sentence connectors")

    if enhanced and enhanced[0].islower():
        enhanced = enhanced[0].upper() + enhanced[1:]
        improvements.append("Capitalized first letter")

    if enhanced and enhanced[-1] not in ".!?":
        enhanced += "."
        improvements.append("Added terminal punctuation")

    expanded = 0
    for pattern, replacement in INFORMAL:
        enhanced, count = pattern.subn(replacement, enhanced)
        expanded += count
    if expanded:
        improvements.append("Expanded informal contractions")

    if not improvements:
        improvements.append("Normalized whitespace and punctuation")

    return ScriptEnhancement(enhanced_text=enhanced, improvements=improvements)


def summarize_text(text: str) -> str:
    """First two sentences, trimmed to SUMMARY_MAX_CHARS."""
    sentences = re.split(r"(?<=[.!?])\s+", text.strip())
    summary = " ".join(sentences[:2]).strip()
    if len(summary) > SUMMARY_MAX_CHARS:
        summary = summary[: SUMMARY_MAX_CHARS - 3].rstrip() + "..."
    return summary


def _step_title(description: str) -> str:
    words = description.rstrip(".!?").split()
    title = " ".join(words[:STEP_TITLE_WORDS])
    return f"{title}..." if len(words) > STEP_TITLE_WORDS else title


def document_text(
    transcript: str,
    video_title: str,
    segments: list[TranscriptSegment] | None = None,
) -> VideoDocumentation:
    """
    Outline a transcript as a step-by-step guide.

    Each segment becomes one step stamped with its start time. Without
    segments the transcript is split into sentences and steps carry no
    timestamp. Step text goes through the rule-based polish; at most
    MAX_DOC_STEPS steps are kept.

    Args:
        transcript: Script or transcript text
        video_title: Title used in the introduction and conclusion
        segments: Timed transcript segments, if known

    Returns:
        VideoDocumentation, the generic outline when nothing usable remains
    """
    if segments:
        parts = [(segment.text, segment.start_sec) for segment in segments]
    else:
        parts = [(sentence, None) for sentence in re.split(r"(?<=[.!?])\s+", transcript.strip())]

    steps = []
    for text, timestamp in parts:
        description = enhance_text(text).enhanced_text if text.strip() else ""
        if not description.strip(".!? "):
            continue
        steps.append(DocumentationStep(title=_step_title(description), description=description, timestamp=timestamp))
        if len(steps) == MAX_DOC_STEPS:
            break

    if not steps:
        steps = [DocumentationStep(title=t, description=d, timestamp=ts) for t, d, ts in GENERIC_STEPS]

    subject = video_title.strip() or "this video"
    return VideoDocumentation(
        introduction=f"This guide walks through {subject} in {len(steps)} steps.",
        steps=steps,
        conclusion=f"You have completed every step of {subject}.",
    )


def synthesize_tone(text: str) -> bytes:
    """
    Mono 16-bit PCM WAV sine tone sized to the text.

    Duration is len(text) / 15 seconds, clamped to 1..600.
    """
    seconds = estimate_speech_duration(text, CHARS_PER_SECOND)
    seconds = min(max(seconds, MIN_VOICE_SECONDS), MAX_VOICE_SECONDS)
    total_samples = int(seconds * SAMPLE_RATE)

    period = SAMPLE_RATE // TONE_HZ
    one_period = b"".join(
        struct.pack("<h", int(8000 * math.sin(2 * math.pi * i / period)))
        for i in range(period)
    )
    full_periods, remainder = divmod(total_samples, period)
    frames = one_period * full_periods + one_period[: remainder * 2]

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(SAMPLE_RATE)
        wav.writeframes(frames)
    return buffer.getvalue()


class SyntheticGenerativeGateway:
    """
    Offline GenerativeGateway.

    Never raises for valid input. Transcripts are built from a fixed
    sentence bank, picked by a hash of the audio bytes and file name.

    Example:
        gateway = SyntheticGenerativeGateway()
        result = await gateway.enhance_script("um so basically this is great")
        # result.enhanced_text == "This is great."
    """

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        offset = _digest(audio, filename.encode("utf-8")) % len(SENTENCE_BANK)
        sentences = [
            SENTENCE_BANK[(offset + i) % len(SENTENCE_BANK)] for i in range(SEGMENT_COUNT)
        ]

        segments = []
        cursor = 0.0
        for i, sentence in enumerate(sentences):
            # Round to half seconds so cue boundaries stay readable.
            length = max(1.0, round(len(sentence) / CHARS_PER_SECOND * 2) / 2)
            segments.append(
                TranscriptSegment(
                    id=f"segment_{i}",
                    text=sentence,
                    start_sec=cursor,
                    end_sec=cursor + length,
                    confidence=SEGMENT_CONFIDENCES[i % len(SEGMENT_CONFIDENCES)],
                )
            )
            cursor += length

        logger.info(f"Synthetic transcription for {filename}: {len(segments)} segments")
        return TranscriptionResult(
            text=" ".join(sentences),
            segments=segments,
            language="en",
            confidence=TRANSCRIPT_CONFIDENCE,
        )

    async def enhance_script(self, text: str, context: str | None = None) -> ScriptEnhancement:
        result = enhance_text(text)
        logger.info(f"Synthetic enhancement: {len(result.improvements)} improvements")
        return result

    async def synthesize_voice(self, text: str, voice_id: str = "alloy") -> bytes:
        audio = synthesize_tone(text)
        logger.info(f"Synthetic voiceover: {len(audio) / 1024:.1f} KB (voice={voice_id})")
        return audio

    async def summarize(self, text: str) -> str:
        return summarize_text(text)

    async def generate_documentation(
        self,
        transcript: str,
        video_title: str,
        segments: list[TranscriptSegment] | None = None,
    ) -> VideoDocumentation:
        documentation = document_text(transcript, video_title, segments)
        logger.info(f"Synthetic documentation: {len(documentation.steps)} steps")
        return documentation

    async def close(self) -> None:
        pass
