"""
Video and transcript record persistence.

Writes are single-field scoped: update(video_id, {"processing.progress": 40})
touches only that path, under a per-record lock, so concurrent writers
(pipeline progress, a title edit from the API) never overwrite each
other's fields. The JSON backend also takes an flock on a per-record lock
file, so API and worker processes sharing one directory serialize too.

Backends:
    InMemoryRecordStore: process-local dict (tests, single-process dev)
    JsonFileRecordStore: one JSON document per record, atomic replace,
        safe to share between processes on one host or volume
"""

import asyncio
import fcntl
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Protocol, runtime_checkable

from pydantic import BaseModel

from vidforge.config import Settings
from vidforge.errors import ArtifactNotFoundError, ValidationError, VideoNotFoundError
from vidforge.models.schemas import TranscriptRecord, VideoRecord

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
LOCK_POLL_SECONDS = 0.01


def _plain(value: Any) -> Any:
    """Convert models (and lists of models) to plain data for validation."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def apply_changes(data: dict, changes: dict[str, Any]) -> dict:
    """
    Apply dotted-path assignments to a nested dict in place.

    Args:
        data: Document as produced by model_dump()
        changes: {"processing.stage": "render_video", "title": "New"}

    Returns:
        The same dict

    Raises:
        ValidationError: If a path walks through a non-object value
    """
    for path, value in changes.items():
        parts = path.split(".")
        target = data
        for part in parts[:-1]:
            child = target.get(part)
            if child is None:
                child = target[part] = {}
            if not isinstance(child, dict):
                raise ValidationError(f"Cannot set {path}: {part} is not an object")
            target = child
        target[parts[-1]] = _plain(value)
    return data


@runtime_checkable
class RecordStore(Protocol):
    """Persistence for VideoRecord and TranscriptRecord."""

    async def create(self, video: VideoRecord) -> VideoRecord:
        ...

    async def get(self, video_id: str) -> VideoRecord:
        ...

    async def exists(self, video_id: str) -> bool:
        ...

    async def update(self, video_id: str, changes: dict[str, Any]) -> VideoRecord:
        ...

    async def save_transcript(self, transcript: TranscriptRecord) -> TranscriptRecord:
        ...

    async def get_transcript(self, video_id: str) -> TranscriptRecord | None:
        ...

    async def update_transcript(self, video_id: str, changes: dict[str, Any]) -> TranscriptRecord:
        ...


class BaseRecordStore(ABC):
    """
    Scoped-update logic shared by backends.

    Subclasses provide raw document load/store; this class owns locking,
    validation and the updated_at stamp. Returned records are always
    independent copies.
    """

    def __init__(self):
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @abstractmethod
    async def _load(self, kind: str, record_id: str) -> dict | None:
        """Raw document or None."""

    @abstractmethod
    async def _store(self, kind: str, record_id: str, data: dict) -> None:
        """Persist raw document."""

    @asynccontextmanager
    async def _exclusive(self, kind: str, record_id: str) -> AsyncIterator[None]:
        """Hold the write lock of one record for a load-modify-store cycle."""
        async with self._locks[f"{kind}:{record_id}"]:
            yield

    @staticmethod
    def _check_id(video_id: str) -> str:
        if not video_id or not _ID_RE.match(video_id):
            raise ValidationError(f"Invalid video id: {video_id!r}")
        return video_id

    async def create(self, video: VideoRecord) -> VideoRecord:
        self._check_id(video.id)
        async with self._exclusive("video", video.id):
            await self._store("video", video.id, video.model_dump(mode="json"))
        logger.debug(f"Created video record {video.id}")
        return video.model_copy(deep=True)

    async def get(self, video_id: str) -> VideoRecord:
        self._check_id(video_id)
        data = await self._load("video", video_id)
        if data is None:
            raise VideoNotFoundError(video_id)
        return VideoRecord.model_validate(data)

    async def exists(self, video_id: str) -> bool:
        try:
            self._check_id(video_id)
        except ValidationError:
            return False
        return await self._load("video", video_id) is not None

    async def update(self, video_id: str, changes: dict[str, Any]) -> VideoRecord:
        """
        Apply scoped changes to a video record.

        Args:
            video_id: Video ID
            changes: Dotted path -> new value

        Returns:
            Updated record

        Raises:
            VideoNotFoundError: If the record does not exist
            ValidationError: If the result does not validate
        """
        self._check_id(video_id)
        async with self._exclusive("video", video_id):
            data = await self._load("video", video_id)
            if data is None:
                raise VideoNotFoundError(video_id)
            apply_changes(data, changes)
            data["updated_at"] = datetime.now()
            video = self._validate(VideoRecord, data)
            await self._store("video", video_id, video.model_dump(mode="json"))
        return video

    async def save_transcript(self, transcript: TranscriptRecord) -> TranscriptRecord:
        """Create or overwrite the transcript of a video."""
        self._check_id(transcript.video_id)
        async with self._exclusive("transcript", transcript.video_id):
            await self._store(
                "transcript", transcript.video_id, transcript.model_dump(mode="json", exclude={"script_text"})
            )
        return transcript.model_copy(deep=True)

    async def get_transcript(self, video_id: str) -> TranscriptRecord | None:
        self._check_id(video_id)
        data = await self._load("transcript", video_id)
        if data is None:
            return None
        data.pop("script_text", None)
        return TranscriptRecord.model_validate(data)

    async def update_transcript(self, video_id: str, changes: dict[str, Any]) -> TranscriptRecord:
        """
        Apply scoped changes to a transcript.

        Raises:
            ArtifactNotFoundError: If the video has no transcript
        """
        self._check_id(video_id)
        async with self._exclusive("transcript", video_id):
            data = await self._load("transcript", video_id)
            if data is None:
                raise ArtifactNotFoundError(f"Transcript not found for video: {video_id}")
            data.pop("script_text", None)
            apply_changes(data, changes)
            data["updated_at"] = datetime.now()
            transcript = self._validate(TranscriptRecord, data)
            await self._store(
                "transcript", video_id, transcript.model_dump(mode="json", exclude={"script_text"})
            )
        return transcript

    @staticmethod
    def _validate(model: type[BaseModel], data: dict) -> Any:
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise ValidationError(f"Invalid {model.__name__} update: {e}", cause=e) from e


class InMemoryRecordStore(BaseRecordStore):
    """Records held in a dict of JSON-compatible documents."""

    def __init__(self):
        super().__init__()
        self._documents: dict[tuple[str, str], dict] = {}

    async def _load(self, kind: str, record_id: str) -> dict | None:
        data = self._documents.get((kind, record_id))
        return None if data is None else _deep_copy(data)

    async def _store(self, kind: str, record_id: str, data: dict) -> None:
        self._documents[(kind, record_id)] = _deep_copy(data)


def _deep_copy(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _deep_copy(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_deep_copy(v) for v in data]
    return data


class JsonFileRecordStore(BaseRecordStore):
    """
    One JSON file per record under root/{videos,transcripts}/<id>.json.

    Files are written to a unique temporary name and renamed, so readers
    never see a partial document. Updates hold an exclusive flock on
    <id>.json.lock next to the record for the whole load-modify-store
    cycle; another process updating the same record waits for it.
    """

    FOLDERS = {"video": "videos", "transcript": "transcripts"}

    def __init__(self, root: Path):
        super().__init__()
        self.root = Path(root)

    @classmethod
    def from_settings(cls, settings: Settings) -> "JsonFileRecordStore":
        return cls(settings.record_store_dir)

    def _path(self, kind: str, record_id: str) -> Path:
        return self.root / self.FOLDERS[kind] / f"{record_id}.json"

    async def _load(self, kind: str, record_id: str) -> dict | None:
        path = self._path(kind, record_id)

        def read() -> dict | None:
            if not path.exists():
                return None
            return json.loads(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(read)

    @asynccontextmanager
    async def _exclusive(self, kind: str, record_id: str) -> AsyncIterator[None]:
        async with super()._exclusive(kind, record_id):
            path = self._path(kind, record_id)
            lock_path = path.with_name(f"{path.name}.lock")
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            with open(lock_path, "a") as handle:
                while True:
                    try:
                        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        await asyncio.sleep(LOCK_POLL_SECONDS)
                try:
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    async def _store(self, kind: str, record_id: str, data: dict) -> None:
        path = self._path(kind, record_id)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2, default=str)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        await asyncio.to_thread(write)


def create_record_store(settings: Settings) -> RecordStore:
    """
    Create record store selected by settings.record_store_backend.

    Raises:
        ValueError: If backend name is unknown
    """
    backend = settings.record_store_backend.lower()
    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "json":
        return JsonFileRecordStore.from_settings(settings)
    raise ValueError(f"Unknown record store backend: {settings.record_store_backend}")
