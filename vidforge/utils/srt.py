"""
SubRip (.srt) timed-text export and import.

Cue layout:

    1
    00:00:00,000 --> 00:00:02,500
    Hello

Every cue is terminated by a blank line.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Protocol

_TIMING_RE = re.compile(
    r"(\d{2,}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{2,}):(\d{2}):(\d{2})[,.](\d{3})"
)


class TimedText(Protocol):
    start_sec: float
    end_sec: float
    text: str


@dataclass(frozen=True)
class SrtCue:
    """Cue parsed from a SubRip file."""

    index: int
    start_sec: float
    end_sec: float
    text: str


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS,mmm.

    Rounds to the nearest millisecond so 2.5 -> 00:00:02,500 and float noise
    like 0.1 + 0.2 does not drop a millisecond.
    """
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def parse_timestamp(value: str) -> float:
    """Parse HH:MM:SS,mmm (or HH:MM:SS.mmm) into seconds."""
    match = re.fullmatch(r"\s*(\d{2,}):(\d{2}):(\d{2})[,.](\d{3})\s*", value)
    if not match:
        raise ValueError(f"Invalid SubRip timestamp: {value!r}")
    h, m, s, ms = (int(g) for g in match.groups())
    return h * 3600 + m * 60 + s + ms / 1000


def to_srt(cues: Iterable[TimedText]) -> str:
    """
    Render cues as a SubRip document.

    Sequence numbers start at 1. Multi-line text is kept, blank lines inside
    a cue are dropped because they would terminate it.

    Args:
        cues: Objects with start_sec, end_sec and text

    Returns:
        SubRip document text (empty string for no cues)
    """
    blocks = []
    for index, cue in enumerate(cues, start=1):
        lines = [line for line in cue.text.strip().splitlines() if line.strip()]
        blocks.append(
            f"{index}\n"
            f"{format_timestamp(cue.start_sec)} --> {format_timestamp(cue.end_sec)}\n"
            + "\n".join(lines)
            + "\n\n"
        )
    return "".join(blocks)


def parse_srt(content: str) -> list[SrtCue]:
    """
    Parse a SubRip document.

    Args:
        content: SubRip text

    Returns:
        Cues in file order

    Raises:
        ValueError: If a block has no valid timing line
    """
    cues: list[SrtCue] = []
    normalized = content.replace("\r\n", "\n").lstrip("\ufeff")

    for block in re.split(r"\n\s*\n", normalized.strip()):
        lines = block.strip().split("\n")
        if not lines or not lines[0].strip():
            continue

        timing_idx = 1 if lines[0].strip().isdigit() else 0
        if timing_idx >= len(lines):
            raise ValueError(f"Cue without timing line: {block!r}")

        match = _TIMING_RE.search(lines[timing_idx])
        if not match:
            raise ValueError(f"Invalid cue timing: {lines[timing_idx]!r}")

        g = [int(x) for x in match.groups()]
        start = g[0] * 3600 + g[1] * 60 + g[2] + g[3] / 1000
        end = g[4] * 3600 + g[5] * 60 + g[6] + g[7] / 1000
        index = int(lines[0]) if timing_idx == 1 else len(cues) + 1

        cues.append(
            SrtCue(
                index=index,
                start_sec=start,
                end_sec=end,
                text="\n".join(lines[timing_idx + 1:]).strip(),
            )
        )

    return cues
