"""Tests for the stage orchestrator: full runs, regeneration and failure marking."""

import asyncio
import dataclasses
from itertools import groupby

import pytest
from conftest import create_video, wait_until

from vidforge.errors import ConflictError, InvalidStageError, VideoNotFoundError
from vidforge.models.schemas import (
    PIPELINE_STAGES,
    Caption,
    ProcessingStage,
    VideoFile,
    VideoRecord,
    VideoStatus,
)
from vidforge.services.generative import SyntheticGenerativeGateway
from vidforge.services.pipeline import PipelineOrchestrator
from vidforge.services.stages.artifacts import (
    audio_key,
    captions_key,
    processed_key,
    thumbnail_key,
    voiceover_key,
)
from vidforge.utils.srt import to_srt


async def test_fresh_run_ends_ready(orchestrator, records, storage, media, video):
    outcome = await orchestrator.run(video.id)

    assert outcome.success
    assert outcome.stages_completed == list(PIPELINE_STAGES)
    assert outcome.error is None

    stored = await records.get(video.id)
    assert stored.status == VideoStatus.READY
    assert stored.processing.stage == ProcessingStage.COMPLETE
    assert stored.processing.progress == 100
    assert stored.processing.error is None
    assert stored.processed_file is not None
    assert stored.processed_file.key == processed_key(video.id)
    assert stored.processed_file.duration_seconds == media.duration
    assert stored.original_file.duration_seconds == media.duration
    assert stored.original_file.resolution.width == 1280
    assert stored.transcript_ref == f"tr_{video.id}"


async def test_fresh_run_stores_every_artifact(orchestrator, records, storage, settings, video):
    await orchestrator.run(video.id)

    for key in (
        audio_key(video.id),
        voiceover_key(video.id, "wav"),
        captions_key(video.id),
        processed_key(video.id),
        *[thumbnail_key(video.id, i) for i in range(1, settings.thumbnail_count + 1)],
    ):
        assert await storage.exists(key), key

    stored = await records.get(video.id)
    assert [k.timestamp for k in stored.metadata.keyframes] == [0.0, 4.0, 8.0]
    assert stored.metadata.keyframes[0].thumbnail.endswith("thumb-1.png")

    transcript = await records.get_transcript(video.id)
    assert transcript.enhanced_text
    assert transcript.improvements
    assert len(stored.captions) == len(transcript.segments)
    assert (await storage.read(captions_key(video.id))).decode() == to_srt(stored.captions)


async def test_render_uses_configured_options(orchestrator, media, video):
    await orchestrator.run(video.id)

    assert media.render_options.fps == 30
    assert media.render_options.codec == "libx264"
    assert "BorderStyle=3" in media.render_options.force_style
    assert media.calls.index("render_with_captions") < media.calls.index("merge_audio_video")


async def test_progress_is_monotonic_per_stage(orchestrator, hub, video):
    await orchestrator.run(video.id)

    progress = [e for e in hub.events if e["type"] == "progress"]
    by_stage = [(stage, [e["progress"] for e in events]) for stage, events in groupby(progress, key=lambda e: e["stage"])]

    assert [stage for stage, _ in by_stage] == [s.value for s in PIPELINE_STAGES]
    for stage, values in by_stage:
        assert values[0] == 0, stage
        assert values[-1] == 100, stage
        assert len(values) >= 3, stage
        assert values == sorted(values), stage

    assert hub.events[-1]["type"] == "status"
    assert hub.events[-1]["status"] == "ready"


async def test_regenerate_captions_leaves_earlier_artifacts(orchestrator, records, storage, media, video):
    await orchestrator.run(video.id)
    transcript_before = await records.get_transcript(video.id)
    audio_before = await storage.read(audio_key(video.id))
    voice_before = await storage.read(voiceover_key(video.id, "wav"))
    await records.update(
        video.id,
        {"captions": [Caption(id="stale", start_sec=0, end_sec=99, text="Stale cue")]},
    )
    media.calls.clear()

    outcome = await orchestrator.run(video.id, "generate_captions")

    assert outcome.success
    assert outcome.stages_completed == [ProcessingStage.GENERATE_CAPTIONS, ProcessingStage.RENDER_VIDEO]
    assert "extract_audio" not in media.calls
    assert "thumbnails" not in media.calls

    assert (await records.get_transcript(video.id)) == transcript_before
    assert await storage.read(audio_key(video.id)) == audio_before
    assert await storage.read(voiceover_key(video.id, "wav")) == voice_before

    stored = await records.get(video.id)
    assert [c.text for c in stored.captions] == [s.text for s in transcript_before.segments]
    assert all(c.id != "stale" for c in stored.captions)
    assert "Stale cue" not in (await storage.read(captions_key(video.id))).decode()
    assert stored.status == VideoStatus.READY


async def test_render_failure_marks_error(orchestrator, records, storage, media, hub, video):
    media.fail_on("render_with_captions")

    outcome = await orchestrator.run(video.id)

    assert not outcome.success
    assert outcome.failed_stage == ProcessingStage.RENDER_VIDEO
    assert "render_with_captions failed" in outcome.error

    stored = await records.get(video.id)
    assert stored.status == VideoStatus.ERROR
    assert stored.processing.error == outcome.error
    assert stored.processing.stage == ProcessingStage.RENDER_VIDEO
    assert stored.processed_file is None
    assert not await storage.exists(processed_key(video.id))
    assert hub.events[-1] == {
        "video_id": video.id,
        "type": "status",
        "status": "error",
        "error": outcome.error,
    }


async def test_rerun_after_failure_clears_error(orchestrator, records, media, video):
    media.fail_on("render_with_captions")
    await orchestrator.run(video.id)
    media.failures.clear()

    outcome = await orchestrator.run(video.id, ProcessingStage.RENDER_VIDEO)

    stored = await records.get(video.id)
    assert outcome.success
    assert stored.status == VideoStatus.READY
    assert stored.processing.error is None


async def test_stage_timeout_fails_run(orchestrator, services, records, media, settings, video):
    services.pipeline_config["stage_timeouts"]["extract_audio"] = 0.05
    media.delays["extract_audio"] = 5

    outcome = await orchestrator.run(video.id)

    assert outcome.failed_stage == ProcessingStage.EXTRACT_AUDIO
    assert outcome.error == "Stage timed out after 0.05s"
    assert (await records.get(video.id)).status == VideoStatus.ERROR
    assert not (settings.temp_dir / video.id).exists()


def test_stage_timeout_falls_back_to_settings(orchestrator, services):
    services.pipeline_config["stage_timeouts"].pop("transcribe")

    assert orchestrator.stage_timeout(ProcessingStage.TRANSCRIBE) == 30
    assert orchestrator.stage_timeout(ProcessingStage.RENDER_VIDEO) == 3600


async def test_missing_original_fails_first_stage(orchestrator, records, storage):
    await create_video(records, storage, "vid_2", upload=False)

    outcome = await orchestrator.run("vid_2")

    assert outcome.failed_stage == ProcessingStage.EXTRACT_AUDIO
    assert "Original video not found" in outcome.error
    assert (await records.get("vid_2")).status == VideoStatus.ERROR


async def test_extract_audio_rejects_unsupported_original(orchestrator, records, storage, media):
    await storage.put(b"%PDF-1.7", "videos/vid_3.pdf", "application/pdf")
    await records.create(
        VideoRecord(id="vid_3", original_file=VideoFile(url="u", key="videos/vid_3.pdf"))
    )

    outcome = await orchestrator.run("vid_3")

    assert outcome.failed_stage == ProcessingStage.EXTRACT_AUDIO
    assert "Unsupported original file type: videos/vid_3.pdf" in outcome.error
    assert (await records.get("vid_3")).status == VideoStatus.ERROR
    assert media.calls == []


async def test_regeneration_requires_prior_artifacts(orchestrator, records, video):
    outcome = await orchestrator.run(video.id, "transcribe")

    assert outcome.failed_stage == ProcessingStage.TRANSCRIBE
    assert "Audio artifact not found" in outcome.error
    assert outcome.stages_completed == []


async def test_unexpected_exception_is_recorded(services, hub, records, video):
    class BrokenGateway(SyntheticGenerativeGateway):
        async def enhance_script(self, text, context=None):
            raise RuntimeError("model exploded")

    orchestrator = PipelineOrchestrator(dataclasses.replace(services, generative=BrokenGateway()), hub)

    outcome = await orchestrator.run(video.id)

    assert outcome.failed_stage == ProcessingStage.ENHANCE_SCRIPT
    assert outcome.error == "RuntimeError: model exploded"
    assert (await records.get(video.id)).processing.error == "RuntimeError: model exploded"


async def test_render_without_voiceover_mix(services, hub, records, media, settings, video):
    no_mix = dataclasses.replace(services, settings=settings.model_copy(update={"mix_voiceover": False}))

    outcome = await PipelineOrchestrator(no_mix, hub).run(video.id)

    assert outcome.success
    assert "merge_audio_video" not in media.calls


async def test_concurrent_run_for_same_video_conflicts(orchestrator, media, video):
    media.gate = asyncio.Event()
    first = asyncio.create_task(orchestrator.run(video.id))

    async def started() -> bool:
        return "extract_audio" in media.calls

    await wait_until(started)
    with pytest.raises(ConflictError):
        await orchestrator.run(video.id, "transcribe")

    media.gate.set()
    assert (await first).success
    assert not orchestrator.is_running(video.id)


async def test_run_validates_input(orchestrator, video):
    with pytest.raises(InvalidStageError):
        await orchestrator.run(video.id, "upload")
    with pytest.raises(VideoNotFoundError):
        await orchestrator.run("missing")
