"""
Media tool gateway backed by ffmpeg/ffprobe.

All operations run ffmpeg as an asyncio subprocess. Long operations
report progress by parsing ffmpeg's "-progress pipe:1" key=value stream
(out_time_us / out_time_ms, both microseconds) against the probed input
duration.

Every failure, including a missing binary, surfaces as MediaToolError
carrying the operation name, exit code and the tail of stderr.
"""

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Protocol, runtime_checkable

from vidforge.config import Settings
from vidforge.errors import MediaToolError
from vidforge.utils.media_utils import parse_fps

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]

DEFAULT_FORCE_STYLE = (
    "FontSize=24,PrimaryColour=&HFFFFFF&,OutlineColour=&H000000&,BorderStyle=3"
)
THUMBNAIL_SIZE = "640x360"
FRAME_SIZE = "1920x1080"
STDERR_TAIL_LINES = 20


@dataclass
class MediaInfo:
    """Probe result for a media file."""

    duration_sec: float
    width: int = 0
    height: int = 0
    format: str = ""
    bitrate: int = 0
    fps: float = 0.0


@dataclass
class RenderOptions:
    """
    Encoding options for the caption burn-in render.

    Attributes:
        resolution: Output (width, height), None keeps the input size
        fps: Output frame rate
        bitrate: Video bitrate (ffmpeg notation, e.g. "2000k")
        codec: Video codec
        force_style: ASS style override for burned-in subtitles
    """

    resolution: tuple[int, int] | None = None
    fps: int = 30
    bitrate: str = "2000k"
    codec: str = "libx264"
    force_style: str = DEFAULT_FORCE_STYLE

    @classmethod
    def from_config(cls, config: dict) -> "RenderOptions":
        """Build options from the "render" section of pipeline.yaml."""
        resolution = config.get("resolution")
        return cls(
            resolution=tuple(resolution) if resolution else None,
            fps=int(config.get("fps", 30)),
            bitrate=str(config.get("bitrate", "2000k")),
            codec=str(config.get("codec", "libx264")),
            force_style=str(config.get("force_style", DEFAULT_FORCE_STYLE)),
        )


@runtime_checkable
class MediaTool(Protocol):
    """Transcoding operations used by the pipeline stages."""

    async def probe(self, path: Path) -> MediaInfo:
        ...

    async def extract_audio(
        self,
        input_path: Path,
        output_path: Path,
        format: str = "wav",
        bitrate: str = "192k",
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        ...

    async def thumbnails(
        self,
        input_path: Path,
        output_dir: Path,
        count: int = 10,
        on_progress: ProgressCallback | None = None,
    ) -> list[Path]:
        ...

    async def render_with_captions(
        self,
        input_path: Path,
        output_path: Path,
        subtitle_path: Path,
        options: RenderOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        ...

    async def merge_audio_video(
        self,
        video_path: Path,
        audio_path: Path,
        output_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        ...

    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        format: str,
        options: dict | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        ...

    async def frame_at(self, input_path: Path, output_path: Path, timestamp_sec: float) -> Path:
        ...


def _escape_filter_value(value: str) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return value.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def _thumbnail_timestamps(duration: float, count: int) -> list[float]:
    """Evenly spaced capture points: i * duration / count."""
    return [i * duration / count for i in range(count)]


class FFmpegTool:
    """
    MediaTool implementation running the ffmpeg CLI.

    Example:
        tool = FFmpegTool.from_settings(settings)
        info = await tool.probe(Path("input.mp4"))
        await tool.extract_audio(Path("input.mp4"), Path("audio.wav"))
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    @classmethod
    def from_settings(cls, settings: Settings) -> "FFmpegTool":
        return cls(ffmpeg_path=settings.ffmpeg_path, ffprobe_path=settings.ffprobe_path)

    # ═══════════════════════════════════════════════════════════════════════
    # Process execution
    # ═══════════════════════════════════════════════════════════════════════

    async def _spawn(self, operation: str, cmd: list[str]) -> asyncio.subprocess.Process:
        logger.debug(f"{operation}: {' '.join(cmd)}")
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise MediaToolError(operation, f"binary not found: {cmd[0]}", cause=e) from e
        except OSError as e:
            raise MediaToolError(operation, f"cannot start {cmd[0]}: {e}", cause=e) from e

    async def _run_ffmpeg(
        self,
        operation: str,
        args: list[str],
        duration: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Run ffmpeg and forward progress.

        Args:
            operation: Operation name for errors and logs
            args: Arguments after the global options
            duration: Input duration for percentage computation
            on_progress: Async callback receiving 0..100

        Raises:
            MediaToolError: On non-zero exit or missing binary
        """
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-y",
            "-progress", "pipe:1",
            *args,
        ]
        process = await self._spawn(operation, cmd)
        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        async def read_progress() -> None:
            last_reported = -1.0
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                key, _, value = line.partition("=")
                if key not in ("out_time_us", "out_time_ms") or not duration or not on_progress:
                    continue
                try:
                    seconds = int(value) / 1_000_000
                except ValueError:
                    continue
                percent = max(0.0, min(100.0, seconds / duration * 100))
                if percent > last_reported:
                    last_reported = percent
                    await on_progress(percent)

        async def read_stderr() -> None:
            async for raw in process.stderr:
                stderr_tail.append(raw.decode("utf-8", errors="replace").rstrip())

        try:
            await asyncio.gather(read_progress(), read_stderr())
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if returncode != 0:
            diagnostics = "\n".join(stderr_tail)
            logger.error(f"ffmpeg {operation} failed (code {returncode}): {diagnostics[-500:]}")
            raise MediaToolError(
                operation,
                f"ffmpeg exited with code {returncode}",
                returncode=returncode,
                diagnostics=diagnostics,
            )

        if on_progress:
            await on_progress(100.0)

    async def _duration_or_none(self, path: Path) -> float | None:
        try:
            return (await self.probe(path)).duration_sec or None
        except MediaToolError as e:
            logger.warning(f"Cannot probe {Path(path).name} for progress: {e}")
            return None

    # ═══════════════════════════════════════════════════════════════════════
    # Operations
    # ═══════════════════════════════════════════════════════════════════════

    async def probe(self, path: Path) -> MediaInfo:
        """
        Read container and stream information with ffprobe.

        Args:
            path: Media file

        Returns:
            MediaInfo (width/height/fps are 0 for audio-only files)

        Raises:
            MediaToolError: If ffprobe fails or returns unparsable output
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        process = await self._spawn("probe", cmd)
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            raise MediaToolError(
                "probe",
                f"ffprobe exited with code {process.returncode}",
                returncode=process.returncode,
                diagnostics=stderr.decode("utf-8", errors="replace"),
            )

        try:
            data = json.loads(stdout.decode("utf-8", errors="replace") or "{}")
        except json.JSONDecodeError as e:
            raise MediaToolError("probe", "unparsable ffprobe output", cause=e) from e

        fmt = data.get("format", {})
        video = next(
            (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
            {},
        )
        return MediaInfo(
            duration_sec=float(fmt.get("duration") or video.get("duration") or 0),
            width=int(video.get("width") or 0),
            height=int(video.get("height") or 0),
            format=str(fmt.get("format_name", "")).split(",")[0],
            bitrate=int(fmt.get("bit_rate") or 0),
            fps=parse_fps(video.get("r_frame_rate"), default=0.0) if video else 0.0,
        )

    async def extract_audio(
        self,
        input_path: Path,
        output_path: Path,
        format: str = "wav",
        bitrate: str = "192k",
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """
        Extract the audio track.

        Args:
            input_path: Source video
            output_path: Target audio file
            format: "wav" (PCM 16-bit) or "mp3"
            bitrate: Bitrate for lossy formats
            on_progress: Progress callback

        Returns:
            output_path
        """
        if format == "wav":
            codec_args = ["-acodec", "pcm_s16le"]
        elif format == "mp3":
            codec_args = ["-acodec", "libmp3lame", "-ab", bitrate]
        else:
            codec_args = ["-ab", bitrate]

        duration = await self._duration_or_none(input_path) if on_progress else None
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Extracting audio: {Path(input_path).name} -> {output_path.name}")

        await self._run_ffmpeg(
            "extract_audio",
            ["-i", str(input_path), "-vn", *codec_args, "-ar", "44100", "-f", format, str(output_path)],
            duration=duration,
            on_progress=on_progress,
        )
        return output_path

    async def thumbnails(
        self,
        input_path: Path,
        output_dir: Path,
        count: int = 10,
        on_progress: ProgressCallback | None = None,
    ) -> list[Path]:
        """
        Capture count evenly spaced 640x360 PNG thumbnails.

        Frame i is taken at i * duration / count and written to
        output_dir/thumb-<i+1>.png.

        Returns:
            Thumbnail paths in timestamp order
        """
        if count <= 0:
            return []

        info = await self.probe(input_path)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = []
        for i, timestamp in enumerate(_thumbnail_timestamps(info.duration_sec, count)):
            target = output_dir / f"thumb-{i + 1}.png"
            await self._run_ffmpeg(
                "thumbnails",
                [
                    "-ss", f"{timestamp:.3f}",
                    "-i", str(input_path),
                    "-frames:v", "1",
                    "-s", THUMBNAIL_SIZE,
                    str(target),
                ],
            )
            paths.append(target)
            if on_progress:
                await on_progress((i + 1) / count * 100)

        logger.info(f"Captured {len(paths)} thumbnails from {Path(input_path).name}")
        return paths

    async def render_with_captions(
        self,
        input_path: Path,
        output_path: Path,
        subtitle_path: Path,
        options: RenderOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """
        Re-encode video with subtitles burned in.

        Args:
            input_path: Source video
            output_path: Rendered file
            subtitle_path: SubRip file
            options: Encoding options
            on_progress: Progress callback

        Returns:
            output_path
        """
        options = options or RenderOptions()
        filters = [
            f"subtitles='{_escape_filter_value(str(subtitle_path))}'"
            f":force_style='{options.force_style}'"
        ]
        if options.resolution:
            width, height = options.resolution
            filters.insert(0, f"scale={width}:{height}")

        duration = await self._duration_or_none(input_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Rendering captions: {Path(input_path).name} -> {output_path.name}")

        await self._run_ffmpeg(
            "render_with_captions",
            [
                "-i", str(input_path),
                "-vf", ",".join(filters),
                "-c:v", options.codec,
                "-b:v", options.bitrate,
                "-r", str(options.fps),
                "-c:a", "copy",
                str(output_path),
            ],
            duration=duration,
            on_progress=on_progress,
        )
        return output_path

    async def merge_audio_video(
        self,
        video_path: Path,
        audio_path: Path,
        output_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """Replace the audio track: video stream copied, audio encoded AAC 192k."""
        duration = await self._duration_or_none(video_path) if on_progress else None
        output_path.parent.mkdir(parents=True, exist_ok=True)

        await self._run_ffmpeg(
            "merge_audio_video",
            [
                "-i", str(video_path),
                "-i", str(audio_path),
                "-map", "0:v:0",
                "-map", "1:a:0",
                "-c:v", "copy",
                "-c:a", "aac",
                "-b:a", "192k",
                str(output_path),
            ],
            duration=duration,
            on_progress=on_progress,
        )
        return output_path

    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        format: str,
        options: dict | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """
        Transcode to another container.

        Args:
            options: Optional video_codec, audio_codec, video_bitrate,
                audio_bitrate, size ("WxH")
        """
        options = options or {}
        args = ["-i", str(input_path)]
        for key, flag in (
            ("video_codec", "-c:v"),
            ("audio_codec", "-c:a"),
            ("video_bitrate", "-b:v"),
            ("audio_bitrate", "-b:a"),
            ("size", "-s"),
        ):
            if options.get(key):
                args += [flag, str(options[key])]
        args += ["-f", format, str(output_path)]

        duration = await self._duration_or_none(input_path) if on_progress else None
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await self._run_ffmpeg("convert", args, duration=duration, on_progress=on_progress)
        return output_path

    async def frame_at(self, input_path: Path, output_path: Path, timestamp_sec: float) -> Path:
        """Capture a single 1920x1080 frame."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await self._run_ffmpeg(
            "frame_at",
            [
                "-ss", f"{timestamp_sec:.3f}",
                "-i", str(input_path),
                "-frames:v", "1",
                "-s", FRAME_SIZE,
                str(output_path),
            ],
        )
        return output_path
