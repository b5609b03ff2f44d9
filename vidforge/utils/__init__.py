"""
Shared utilities.

Modules:
    json_utils: JSON extraction from LLM responses
    media_utils: Media file helpers (fps parsing, content types, audio sniffing)
    srt: SubRip timed-text export and import
"""

from vidforge.utils.json_utils import extract_json_object
from vidforge.utils.media_utils import (
    estimate_speech_duration,
    guess_content_type,
    is_audio_file,
    is_video_file,
    parse_fps,
    sniff_audio_format,
)
from vidforge.utils.srt import SrtCue, format_timestamp, parse_srt, parse_timestamp, to_srt

__all__ = [
    # json_utils
    "extract_json_object",
    # media_utils
    "estimate_speech_duration",
    "guess_content_type",
    "is_audio_file",
    "is_video_file",
    "parse_fps",
    "sniff_audio_format",
    # srt
    "SrtCue",
    "format_timestamp",
    "parse_srt",
    "parse_timestamp",
    "to_srt",
]
