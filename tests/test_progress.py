"""Tests for progress reporting, the progress hub and stage workspaces."""

import pytest

from vidforge.models.schemas import ProcessingStage
from vidforge.services.pipeline import ProgressReporter, stage_workspace
from vidforge.services.progress_hub import SUBSCRIBER_QUEUE_SIZE, ProgressHub


async def test_progress_never_moves_backwards(records, storage, hub, video):
    reporter = ProgressReporter(records, hub, video.id)
    await reporter.start_stage(ProcessingStage.TRANSCRIBE)

    for percent in (10, 40, 30, 40, 55.56, -5, 250):
        await reporter.report(percent)

    stored = await records.get(video.id)
    assert stored.processing.progress == 100
    assert stored.processing.completed_at is not None

    values = [e["progress"] for e in hub.events if e["type"] == "progress"]
    assert values == [0, 10, 40, 55.6, 100]


async def test_start_stage_resets_progress(records, hub, video):
    reporter = ProgressReporter(records, hub, video.id)
    await reporter.start_stage(ProcessingStage.EXTRACT_AUDIO)
    await reporter.complete_stage()

    await reporter.start_stage(ProcessingStage.TRANSCRIBE)

    stored = await records.get(video.id)
    assert stored.processing.stage == ProcessingStage.TRANSCRIBE
    assert stored.processing.progress == 0
    assert stored.processing.started_at is not None
    assert stored.processing.completed_at is None


async def test_window_maps_operation_progress(records, video):
    reporter = ProgressReporter(records, None, video.id)
    await reporter.start_stage(ProcessingStage.RENDER_VIDEO)
    callback = reporter.window(20, 80)

    await callback(50)
    assert reporter.progress == 50

    await callback(100)
    assert reporter.progress == 80


async def test_hub_fan_out_and_unsubscribe():
    hub = ProgressHub()
    first = hub.subscribe("v1")
    second = hub.subscribe("v1")
    other = hub.subscribe("v2")

    await hub.publish("v1", {"type": "progress", "progress": 10})

    assert (await first.get())["progress"] == 10
    assert (await second.get())["video_id"] == "v1"
    assert other.empty()

    hub.unsubscribe("v1", first)
    hub.unsubscribe("v1", second)
    assert hub.subscriber_count("v1") == 0


async def test_hub_drops_oldest_for_slow_subscriber():
    hub = ProgressHub()
    queue = hub.subscribe("v1")

    for i in range(SUBSCRIBER_QUEUE_SIZE + 5):
        await hub.publish("v1", {"n": i})

    assert queue.qsize() == SUBSCRIBER_QUEUE_SIZE
    assert (await queue.get())["n"] == 5


def test_workspace_removed_on_success(tmp_path):
    with stage_workspace(tmp_path, "v1", "render_video") as workspace:
        (workspace / "rendered.mp4").write_bytes(b"x")
        assert workspace.is_dir()

    assert not (tmp_path / "v1").exists()


def test_workspace_removed_on_failure(tmp_path):
    with pytest.raises(RuntimeError):
        with stage_workspace(tmp_path, "v1", "extract_audio") as workspace:
            (workspace / "partial.wav").write_bytes(b"x")
            raise RuntimeError("boom")

    assert not (tmp_path / "v1" / "extract_audio").exists()
