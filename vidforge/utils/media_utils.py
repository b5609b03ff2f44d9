"""
Media utilities for video/audio file handling.

Provides common helpers for media operations:
- Frame rate parsing from ffprobe output
- Content type detection by extension
- Audio container sniffing for synthesized speech
"""

from pathlib import Path

AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".m4a", ".flac", ".aac", ".ogg"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mkv", ".avi", ".mov", ".webm"})

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".srt": "application/x-subrip",
}


def is_audio_file(file_path: Path) -> bool:
    """Check if file is an audio file by extension."""
    return file_path.suffix.lower() in AUDIO_EXTENSIONS


def is_video_file(file_path: Path) -> bool:
    """Check if file is a video file by extension."""
    return file_path.suffix.lower() in VIDEO_EXTENSIONS


def guess_content_type(filename: str) -> str:
    """Guess MIME type from file extension.

    Args:
        filename: File name or key

    Returns:
        MIME type, application/octet-stream if unknown
    """
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def parse_fps(value: str | None, default: float = 30.0) -> float:
    """Parse ffprobe frame rate ("30000/1001", "25") into frames per second.

    Args:
        value: r_frame_rate or avg_frame_rate string
        default: Value used when the string is missing or malformed

    Returns:
        Frames per second
    """
    if not value:
        return default

    try:
        if "/" in value:
            num, den = value.split("/", 1)
            den_value = float(den)
            if den_value == 0:
                return default
            return float(num) / den_value
        return float(value)
    except ValueError:
        return default


def sniff_audio_format(data: bytes) -> str:
    """Detect audio container from magic bytes.

    Args:
        data: Encoded audio

    Returns:
        "wav", "ogg", "flac" or "mp3" (default for MPEG frames and unknown data)
    """
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    if data[:4] == b"OggS":
        return "ogg"
    if data[:4] == b"fLaC":
        return "flac"
    return "mp3"


def estimate_speech_duration(text: str, chars_per_second: float = 15.0) -> float:
    """Estimate spoken duration of text.

    Args:
        text: Script text
        chars_per_second: Speech rate in characters per second

    Returns:
        Estimated duration in seconds
    """
    return len(text.strip()) / chars_per_second
