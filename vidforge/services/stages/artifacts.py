"""
Deterministic artifact keys.

Every stage writes to fixed keys derived from the video id, so a re-run
overwrites its previous output instead of leaving orphans next to it.
"""

VOICEOVER_FORMATS = ("wav", "mp3", "ogg", "flac")


def audio_key(video_id: str) -> str:
    return f"artifacts/{video_id}/audio.wav"


def voiceover_key(video_id: str, fmt: str) -> str:
    return f"artifacts/{video_id}/voiceover.{fmt}"


def thumbnail_key(video_id: str, index: int) -> str:
    """Key of the 1-based thumbnail index."""
    return f"artifacts/{video_id}/thumbnails/thumb-{index}.png"


def captions_key(video_id: str) -> str:
    return f"artifacts/{video_id}/captions.srt"


def processed_key(video_id: str) -> str:
    return f"processed/{video_id}.mp4"
