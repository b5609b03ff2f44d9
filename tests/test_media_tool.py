"""Tests for the ffmpeg gateway using stand-in ffmpeg/ffprobe scripts."""

import json
import sys
from pathlib import Path

import pytest

from vidforge.errors import MediaToolError
from vidforge.services.media_tool import DEFAULT_FORCE_STYLE, FFmpegTool, RenderOptions

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX shell scripts")

PROBE_OUTPUT = {
    "format": {"duration": "12.000000", "format_name": "mov,mp4,m4a", "bit_rate": "2000000"},
    "streams": [
        {"codec_type": "audio"},
        {"codec_type": "video", "width": 1920, "height": 1080, "r_frame_rate": "30000/1001"},
    ],
}

FFMPEG_OK = """#!/bin/sh
echo "$@" >> "$(dirname "$0")/ffmpeg.log"
echo "out_time_us=3000000"
echo "out_time_ms=6000000"
echo "out_time_us=garbage"
echo "progress=end"
for last; do :; done
printf 'fake output' > "$last"
"""

FFMPEG_FAIL = """#!/bin/sh
echo "Input #0, mov,mp4" >&2
echo "Invalid data found when processing input" >&2
exit 1
"""


def write_script(path: Path, body: str) -> str:
    path.write_text(body)
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def bin_dir(tmp_path) -> Path:
    directory = tmp_path / "bin"
    directory.mkdir()
    probe_json = directory / "probe.json"
    probe_json.write_text(json.dumps(PROBE_OUTPUT))
    write_script(directory / "ffprobe", f'#!/bin/sh\ncat "{probe_json}"\n')
    return directory


@pytest.fixture
def tool(bin_dir) -> FFmpegTool:
    return FFmpegTool(
        ffmpeg_path=write_script(bin_dir / "ffmpeg", FFMPEG_OK),
        ffprobe_path=str(bin_dir / "ffprobe"),
    )


async def test_probe_parses_streams(tool, tmp_path):
    info = await tool.probe(tmp_path / "input.mp4")

    assert info.duration_sec == 12.0
    assert (info.width, info.height) == (1920, 1080)
    assert info.format == "mov"
    assert info.bitrate == 2_000_000
    assert info.fps == pytest.approx(29.97, abs=0.01)


async def test_extract_audio_reports_progress(tool, tmp_path):
    reported = []

    async def on_progress(percent):
        reported.append(percent)

    output = await tool.extract_audio(tmp_path / "input.mp4", tmp_path / "out" / "audio.wav", on_progress=on_progress)

    assert output.read_bytes() == b"fake output"
    assert reported == [25.0, 50.0, 100.0]
    log = (Path(tool.ffmpeg_path).parent / "ffmpeg.log").read_text()
    assert "pcm_s16le" in log
    assert "-progress pipe:1" in log


async def test_thumbnails_are_evenly_spaced(tool, tmp_path):
    paths = await tool.thumbnails(tmp_path / "input.mp4", tmp_path / "thumbs", count=3)

    assert [p.name for p in paths] == ["thumb-1.png", "thumb-2.png", "thumb-3.png"]
    log = (Path(tool.ffmpeg_path).parent / "ffmpeg.log").read_text().splitlines()
    assert [line.split("-ss ")[1].split()[0] for line in log] == ["0.000", "4.000", "8.000"]


async def test_render_passes_options(tool, tmp_path):
    options = RenderOptions(resolution=(1280, 720), fps=25, bitrate="1500k")

    await tool.render_with_captions(
        tmp_path / "input.mp4", tmp_path / "rendered.mp4", tmp_path / "captions.srt", options
    )

    log = (Path(tool.ffmpeg_path).parent / "ffmpeg.log").read_text()
    assert "scale=1280:720,subtitles=" in log
    assert "-b:v 1500k" in log
    assert "-r 25" in log


async def test_ffmpeg_failure_carries_diagnostics(bin_dir, tmp_path):
    tool = FFmpegTool(
        ffmpeg_path=write_script(bin_dir / "ffmpeg-broken", FFMPEG_FAIL),
        ffprobe_path=str(bin_dir / "ffprobe"),
    )

    with pytest.raises(MediaToolError) as exc_info:
        await tool.extract_audio(tmp_path / "input.mp4", tmp_path / "audio.wav")

    error = exc_info.value
    assert error.operation == "extract_audio"
    assert error.returncode == 1
    assert "Invalid data found" in error.diagnostics
    assert error.message.endswith("(Invalid data found when processing input)")


async def test_missing_binary(tmp_path):
    tool = FFmpegTool(ffmpeg_path=str(tmp_path / "nope"), ffprobe_path=str(tmp_path / "nope-probe"))

    with pytest.raises(MediaToolError, match="binary not found"):
        await tool.probe(tmp_path / "input.mp4")


def test_render_options_from_config():
    options = RenderOptions.from_config({"resolution": [1920, 1080], "fps": "24", "codec": "libx265"})

    assert options.resolution == (1920, 1080)
    assert options.fps == 24
    assert options.codec == "libx265"
    assert options.force_style == DEFAULT_FORCE_STYLE
    assert RenderOptions.from_config({}).resolution is None


async def test_convert_and_frame_at(tool, tmp_path):
    converted = await tool.convert(
        tmp_path / "input.mov", tmp_path / "out.webm", "webm", {"video_codec": "libvpx-vp9", "size": "640x360"}
    )
    frame = await tool.frame_at(tmp_path / "input.mp4", tmp_path / "frame.png", 2.5)

    assert converted.exists() and frame.exists()
    log = (Path(tool.ffmpeg_path).parent / "ffmpeg.log").read_text().splitlines()
    assert "-c:v libvpx-vp9 -s 640x360 -f webm" in log[0]
    assert "-ss 2.500" in log[1]
    assert "-s 1920x1080" in log[1]
