"""
Shared fixtures: fake media tool, local storage on tmp_path, synthetic
generative gateway and in-memory records.
"""

import asyncio
from pathlib import Path

import pytest

from vidforge.config import Settings, load_pipeline_config
from vidforge.errors import MediaToolError
from vidforge.models.schemas import Job, Resolution, VideoFile, VideoRecord
from vidforge.services.generative import SyntheticGenerativeGateway
from vidforge.services.media_tool import MediaInfo, RenderOptions
from vidforge.services.pipeline import PipelineOrchestrator
from vidforge.services.progress_hub import ProgressHub
from vidforge.services.record_store import InMemoryRecordStore
from vidforge.services.stages import StageServices
from vidforge.services.storage import LocalStorage

ORIGINAL_BYTES = b"\x00\x00\x00\x18ftypmp42 fake video payload"


class FakeMediaTool:
    """
    MediaTool double writing placeholder files.

    Every long operation reports 25/50/100 through on_progress.
    Failures, delays and a gate (asyncio.Event blocking extract_audio)
    can be injected per operation.
    """

    def __init__(self, duration: float = 12.0, width: int = 1280, height: int = 720):
        self.duration = duration
        self.width = width
        self.height = height
        self.calls: list[str] = []
        self.failures: dict[str, MediaToolError] = {}
        self.delays: dict[str, float] = {}
        self.gate: asyncio.Event | None = None
        self.render_options: RenderOptions | None = None

    def fail_on(self, operation: str, message: str = "simulated failure") -> None:
        self.failures[operation] = MediaToolError(
            operation,
            message,
            returncode=1,
            diagnostics="Error while processing the input",
        )

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation == "extract_audio" and self.gate is not None:
            await self.gate.wait()
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        if operation in self.failures:
            raise self.failures[operation]

    @staticmethod
    async def _report(on_progress) -> None:
        if on_progress:
            for percent in (25.0, 50.0, 100.0):
                await on_progress(percent)

    @staticmethod
    def _write(path: Path, data: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    async def probe(self, path: Path) -> MediaInfo:
        await self._enter("probe")
        return MediaInfo(
            duration_sec=self.duration,
            width=self.width,
            height=self.height,
            format="mp4",
            bitrate=2_000_000,
            fps=30.0,
        )

    async def extract_audio(self, input_path, output_path, format="wav", bitrate="192k", on_progress=None):
        await self._enter("extract_audio")
        await self._report(on_progress)
        return self._write(output_path, b"RIFF\x00\x00\x00\x00WAVEfake audio of " + Path(input_path).read_bytes()[:8])

    async def thumbnails(self, input_path, output_dir, count=10, on_progress=None):
        await self._enter("thumbnails")
        paths = [self._write(output_dir / f"thumb-{i + 1}.png", b"\x89PNG fake %d" % i) for i in range(count)]
        await self._report(on_progress)
        return paths

    async def render_with_captions(self, input_path, output_path, subtitle_path, options=None, on_progress=None):
        await self._enter("render_with_captions")
        self.render_options = options
        await self._report(on_progress)
        return self._write(output_path, b"rendered:" + Path(subtitle_path).read_bytes()[:32])

    async def merge_audio_video(self, video_path, audio_path, output_path, on_progress=None):
        await self._enter("merge_audio_video")
        await self._report(on_progress)
        return self._write(output_path, b"merged:" + Path(video_path).read_bytes())

    async def convert(self, input_path, output_path, format, options=None, on_progress=None):
        await self._enter("convert")
        await self._report(on_progress)
        return self._write(output_path, Path(input_path).read_bytes())

    async def frame_at(self, input_path, output_path, timestamp_sec):
        await self._enter("frame_at")
        return self._write(output_path, b"\x89PNG frame")


class RecordingHub(ProgressHub):
    """ProgressHub that also keeps every published event."""

    def __init__(self):
        super().__init__()
        self.events: list[dict] = []

    async def publish(self, video_id: str, message: dict) -> None:
        self.events.append({"video_id": video_id, **message})
        await super().publish(video_id, message)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        storage_backend="local",
        storage_dir=tmp_path / "storage",
        public_base_url="http://test/files",
        upload_base_url="http://test/api/uploads",
        temp_dir=tmp_path / "tmp",
        generative_mode="fallback",
        whisper_url=None,
        speech_url=None,
        anthropic_api_key=None,
        queue_backend="memory",
        record_store_backend="memory",
        thumbnail_count=3,
        stage_timeout_seconds=30,
    )


@pytest.fixture
def pipeline_config(settings) -> dict:
    return load_pipeline_config(settings)


@pytest.fixture
def storage(settings) -> LocalStorage:
    return LocalStorage.from_settings(settings)


@pytest.fixture
def media() -> FakeMediaTool:
    return FakeMediaTool()


@pytest.fixture
def generative() -> SyntheticGenerativeGateway:
    return SyntheticGenerativeGateway()


@pytest.fixture
def records() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def services(storage, media, generative, records, settings, pipeline_config) -> StageServices:
    return StageServices(
        storage=storage,
        media=media,
        generative=generative,
        records=records,
        settings=settings,
        pipeline_config=pipeline_config,
    )


@pytest.fixture
def orchestrator(services, hub) -> PipelineOrchestrator:
    return PipelineOrchestrator(services, hub)


async def create_video(
    records,
    storage,
    video_id: str = "vid_1",
    title: str = "Product demo",
    upload: bool = True,
) -> VideoRecord:
    """Create a video record, with the original uploaded unless upload=False."""
    key = f"videos/{video_id}.mp4"
    if upload:
        result = await storage.put(ORIGINAL_BYTES, key, "video/mp4")
        url, size = result.url, result.size
    else:
        url, size = storage.url_for(key), 0

    video = VideoRecord(
        id=video_id,
        title=title,
        owner_id="user_1",
        original_file=VideoFile(url=url, key=key, size_bytes=size, resolution=Resolution()),
    )
    return await records.create(video)


@pytest.fixture
async def video(records, storage) -> VideoRecord:
    return await create_video(records, storage)


async def wait_for_job(queue, job_id: str, timeout: float = 5.0) -> Job:
    """Poll until the job finished."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        job = await queue.status(job_id)
        if job.is_finished:
            return job
        if loop.time() > deadline:
            raise AssertionError(f"Job {job_id} still {job.status.value} after {timeout}s")
        await asyncio.sleep(0.01)


async def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll an async predicate until it is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.01)
