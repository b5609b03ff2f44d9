"""Tests for stage parsing, record models and small media helpers."""

from pathlib import Path

import pytest

from vidforge.errors import InvalidStageError, ValidationError
from vidforge.models.schemas import (
    PIPELINE_STAGES,
    Job,
    JobStatus,
    ProcessingStage,
    StatusView,
    TranscriptRecord,
    VideoFile,
    VideoRecord,
    VideoStatus,
    parse_stage,
    stages_from,
)
from vidforge.utils.media_utils import (
    guess_content_type,
    is_audio_file,
    is_video_file,
    parse_fps,
    sniff_audio_format,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("render_video", ProcessingStage.RENDER_VIDEO),
        ("RENDER_VIDEO", ProcessingStage.RENDER_VIDEO),
        ("  Generate_Captions ", ProcessingStage.GENERATE_CAPTIONS),
        (ProcessingStage.TRANSCRIBE, ProcessingStage.TRANSCRIBE),
    ],
)
def test_parse_stage(value, expected):
    assert parse_stage(value) == expected


@pytest.mark.parametrize("value", ["upload", "complete", "COMPLETE", "bogus", "", 3, None])
def test_parse_stage_rejects_non_runnable(value):
    with pytest.raises(InvalidStageError) as exc_info:
        parse_stage(value)
    assert isinstance(exc_info.value, ValidationError)


def test_stages_from():
    assert stages_from(ProcessingStage.EXTRACT_AUDIO) == list(PIPELINE_STAGES)
    assert stages_from(ProcessingStage.GENERATE_CAPTIONS) == [
        ProcessingStage.GENERATE_CAPTIONS,
        ProcessingStage.RENDER_VIDEO,
    ]


def test_fresh_record_defaults():
    video = VideoRecord(id="v1", original_file=VideoFile(url="u", key="videos/v1.mp4"))

    assert video.status == VideoStatus.UPLOADING
    assert video.processing.stage == ProcessingStage.UPLOAD
    assert video.processing.progress == 0
    assert video.processed_file is None
    assert video.captions == []


def test_status_view_is_a_copy():
    video = VideoRecord(id="v1", original_file=VideoFile(url="u", key="k"))

    view = StatusView.from_record(video)
    view.processing.progress = 50

    assert video.processing.progress == 0
    assert view.status == VideoStatus.UPLOADING


def test_script_text_prefers_enhanced():
    transcript = TranscriptRecord(id="t", video_id="v", original_text="raw")
    assert transcript.script_text == "raw"

    transcript.enhanced_text = "Polished."
    assert transcript.script_text == "Polished."


def test_job_is_finished():
    job = Job(id="j", video_id="v", user_id="u", requested_stage=ProcessingStage.TRANSCRIBE)

    assert job.status == JobStatus.WAITING
    assert not job.is_finished
    assert job.model_copy(update={"status": JobStatus.FAILED}).is_finished


@pytest.mark.parametrize(
    "value, expected",
    [("30000/1001", 29.97), ("25", 25.0), ("0/0", 30.0), (None, 30.0), ("abc", 30.0)],
)
def test_parse_fps(value, expected):
    assert parse_fps(value) == pytest.approx(expected, abs=0.01)


def test_sniff_audio_format():
    assert sniff_audio_format(b"RIFF\x00\x00\x00\x00WAVEfmt ") == "wav"
    assert sniff_audio_format(b"OggS\x00\x02") == "ogg"
    assert sniff_audio_format(b"fLaC\x00") == "flac"
    assert sniff_audio_format(b"ID3\x04") == "mp3"


def test_media_file_helpers():
    assert guess_content_type("artifacts/v/captions.srt") == "application/x-subrip"
    assert guess_content_type("blob.unknown") == "application/octet-stream"
    assert is_audio_file(Path("voice.MP3"))
    assert is_video_file(Path("clip.mov"))
    assert not is_video_file(Path("voice.wav"))
