"""Tests for the Celery queue backend with Redis and Celery doubles."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import fakeredis
import pytest

from vidforge.errors import ConflictError, NotFoundError, QueueClosedError, VideoNotFoundError
from vidforge.models.schemas import Job, JobStatus, ProcessingStage, VideoStatus
from vidforge.services.pipeline import CANCELLED_MESSAGE, PipelineOutcome
from vidforge.services.queue import CeleryJobQueue, RedisJobStore, create_job_queue
from vidforge.services.queue import celery_app as worker
from vidforge.services.queue.celery_queue import PIPELINE_TASK_NAME, video_lock_key


class FakeLock:
    def __init__(self, redis: "FakeRedis", name: str):
        self.redis = redis
        self.name = name

    async def acquire(self):
        self.redis.locks.append(self.name)
        return True

    async def reacquire(self):
        return True

    async def release(self):
        self.redis.released.append(self.name)


class FakeRedis:
    """Subset of redis.asyncio.Redis used by the job store and worker."""

    def __init__(self):
        self.values: dict[str, bytes] = {}
        self.sets: dict[str, set[bytes]] = {}
        self.locks: list[str] = []
        self.released: list[str] = []
        self.closed = False

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value):
        self.values[key] = value.encode() if isinstance(value, str) else value

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(m.encode() for m in members)

    async def srem(self, key, *members):
        self.sets.get(key, set()).difference_update(m.encode() for m in members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def scard(self, key):
        return len(self.sets.get(key, set()))

    def lock(self, name, timeout=None):
        return FakeLock(self, name)

    async def aclose(self):
        self.closed = True


class FakeCelery:
    def __init__(self):
        self.sent: list[tuple[str, list, str]] = []
        self.revoked: list[tuple[str, bool]] = []
        self.control = SimpleNamespace(revoke=self._revoke)

    def send_task(self, name, args=None, task_id=None):
        self.sent.append((name, args, task_id))

    def _revoke(self, task_id, terminate=False):
        self.revoked.append((task_id, terminate))


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def celery() -> FakeCelery:
    return FakeCelery()


@pytest.fixture
def queue(records, redis, celery) -> CeleryJobQueue:
    return CeleryJobQueue(records, redis, celery)


async def test_submit_records_job_and_sends_task(queue, records, celery, video):
    job_id = await queue.submit(video.id, "user_1", "transcribe")

    assert celery.sent == [(PIPELINE_TASK_NAME, [job_id], job_id)]
    job = await queue.status(job_id)
    assert job.status == JobStatus.WAITING
    assert job.requested_stage == ProcessingStage.TRANSCRIBE
    assert (await records.get(video.id)).status == VideoStatus.PROCESSING
    assert (await queue.stats()).waiting == 1


async def test_submit_validation(queue, celery, video):
    with pytest.raises(VideoNotFoundError):
        await queue.submit("missing", "user_1", "transcribe")
    assert celery.sent == []


async def test_reject_policy(records, redis, celery, video):
    queue = CeleryJobQueue(records, redis, celery, conflict_policy="reject")
    await queue.submit(video.id, "user_1", "transcribe")

    with pytest.raises(ConflictError):
        await queue.submit(video.id, "user_1", "render_video")
    assert len(celery.sent) == 1


async def test_cancel_revokes_and_marks_video(queue, records, celery, video):
    job_id = await queue.submit(video.id, "user_1", "transcribe")

    assert await queue.cancel(job_id) is True

    assert celery.revoked == [(job_id, True)]
    job = await queue.status(job_id)
    assert job.status == JobStatus.FAILED
    assert job.failure_reason == CANCELLED_MESSAGE
    stored = await records.get(video.id)
    assert stored.status == VideoStatus.ERROR
    assert stored.processing.error == CANCELLED_MESSAGE

    assert await queue.cancel(job_id) is False
    stats = await queue.stats()
    assert (stats.waiting, stats.failed) == (0, 1)


async def test_cancel_waiting_job_behind_another(queue, records, video):
    first = await queue.submit(video.id, "user_1", "transcribe")
    second = await queue.submit(video.id, "user_1", "render_video")
    await queue.jobs.update(first, status=JobStatus.ACTIVE)

    assert await queue.cancel(second) is True

    assert (await records.get(video.id)).status == VideoStatus.PROCESSING


async def test_shutdown_closes_redis(queue, redis, video):
    await queue.shutdown()

    assert redis.closed
    with pytest.raises(QueueClosedError):
        await queue.submit(video.id, "user_1", "transcribe")


async def test_job_store_tracks_status_sets(redis):
    jobs = RedisJobStore(redis)
    job = await jobs.save(Job(id="j1", video_id="v1", user_id="u1", requested_stage="transcribe"))

    assert await jobs.pending_for_video("v1") == ["j1"]
    await jobs.update(job.id, status=JobStatus.COMPLETED)

    assert await jobs.pending_for_video("v1") == []
    stats = await jobs.stats()
    assert (stats.waiting, stats.completed) == (0, 1)
    with pytest.raises(NotFoundError):
        await jobs.get("nope")


def test_create_job_queue_backends(settings, orchestrator, records):
    from vidforge.services.queue import InProcessJobQueue

    assert isinstance(create_job_queue(settings, orchestrator, records), InProcessJobQueue)
    with pytest.raises(ValueError):
        create_job_queue(settings.model_copy(update={"queue_backend": "sqs"}), orchestrator, records)


# ═══════════════════════════════════════════════════════════════════════════
# Worker task
# ═══════════════════════════════════════════════════════════════════════════


class FakeOrchestrator:
    def __init__(self, outcome=None, error=None):
        self.outcome = outcome
        self.error = error
        self.runs: list[tuple] = []

    async def run(self, video_id, from_stage, job_id=None):
        self.runs.append((video_id, from_stage, job_id))
        if self.error:
            raise self.error
        return self.outcome


class FakeContainer:
    def __init__(self, orchestrator):
        self.orchestrator = orchestrator
        self.closed = False

    async def aclose(self):
        self.closed = True


@pytest.fixture
def worker_env(monkeypatch, redis):
    def install(orchestrator):
        container = FakeContainer(orchestrator)
        monkeypatch.setattr(worker, "Redis", SimpleNamespace(from_url=lambda url: redis))
        monkeypatch.setattr(worker, "build_pipeline", lambda settings: container)
        return container

    return install


async def _saved_job(redis, job_id="j1") -> Job:
    return await RedisJobStore(redis).save(
        Job(id=job_id, video_id="v1", user_id="u1", requested_stage="render_video")
    )


async def test_worker_runs_job_under_video_lock(worker_env, redis):
    orchestrator = FakeOrchestrator(PipelineOutcome(video_id="v1", success=True))
    container = worker_env(orchestrator)
    await _saved_job(redis)

    result = await worker.run_job("j1")

    assert result == {"job_id": "j1", "status": "completed"}
    assert orchestrator.runs == [("v1", ProcessingStage.RENDER_VIDEO, "j1")]
    assert redis.locks == redis.released == [video_lock_key("v1")]
    assert container.closed and redis.closed
    assert (await RedisJobStore(redis).get("j1")).processed_at is not None


async def test_worker_records_failed_outcome(worker_env, redis):
    worker_env(FakeOrchestrator(PipelineOutcome(video_id="v1", success=False, error="render failed")))
    await _saved_job(redis)

    result = await worker.run_job("j1")

    assert result["status"] == "failed"
    assert (await RedisJobStore(redis).get("j1")).failure_reason == "render failed"


async def test_worker_records_crash(worker_env, redis):
    worker_env(FakeOrchestrator(error=RuntimeError("disk full")))
    await _saved_job(redis)

    result = await worker.run_job("j1")

    assert result["status"] == "failed"
    assert (await RedisJobStore(redis).get("j1")).failure_reason == "disk full"


async def test_worker_skips_missing_and_finished_jobs(worker_env, redis):
    orchestrator = FakeOrchestrator()
    worker_env(orchestrator)

    assert (await worker.run_job("ghost"))["status"] == "missing"

    job = await _saved_job(redis, "done")
    await RedisJobStore(redis).update(job.id, status=JobStatus.FAILED)
    assert (await worker.run_job("done"))["status"] == "failed"
    assert orchestrator.runs == []


async def test_worker_releases_lock_after_crash(worker_env, redis):
    worker_env(FakeOrchestrator(error=RuntimeError("disk full")))
    await _saved_job(redis)

    await worker.run_job("j1")

    assert redis.released == [video_lock_key("v1")]


# ═══════════════════════════════════════════════════════════════════════════
# Worker lock against Redis expiry semantics
# ═══════════════════════════════════════════════════════════════════════════


class SlowOrchestrator:
    """Outlives the lock TTL, then checks whether another worker could take the video."""

    def __init__(self, redis, duration: float, steal: bool = False):
        self.redis = redis
        self.duration = duration
        self.steal = steal
        self.other_worker_acquired: bool | None = None

    async def run(self, video_id, from_stage, job_id=None):
        await asyncio.sleep(self.duration)
        other = self.redis.lock(video_lock_key(video_id), timeout=5)
        self.other_worker_acquired = await other.acquire(blocking=False)
        if self.steal:
            await self.redis.delete(video_lock_key(video_id))
        return PipelineOutcome(video_id=video_id, success=True)


@pytest.fixture
def expiring_redis(monkeypatch, settings):
    redis = fakeredis.FakeAsyncRedis()
    monkeypatch.setattr(redis, "aclose", AsyncMock())
    monkeypatch.setattr(worker, "Redis", SimpleNamespace(from_url=lambda url: redis))
    monkeypatch.setattr(
        worker, "get_settings", lambda: settings.model_copy(update={"video_lock_timeout": 1})
    )
    return redis


async def test_worker_keeps_video_lock_beyond_its_ttl(monkeypatch, expiring_redis):
    orchestrator = SlowOrchestrator(expiring_redis, duration=1.5)
    monkeypatch.setattr(worker, "build_pipeline", lambda settings: FakeContainer(orchestrator))
    await _saved_job(expiring_redis)

    result = await worker.run_job("j1")

    assert orchestrator.other_worker_acquired is False
    assert result == {"job_id": "j1", "status": "completed"}
    assert await expiring_redis.exists(video_lock_key("v1")) == 0


async def test_worker_lock_lost_mid_run_keeps_run_outcome(monkeypatch, expiring_redis):
    orchestrator = SlowOrchestrator(expiring_redis, duration=0.1, steal=True)
    monkeypatch.setattr(worker, "build_pipeline", lambda settings: FakeContainer(orchestrator))
    await _saved_job(expiring_redis)

    result = await worker.run_job("j1")

    assert result["status"] == "completed"
    assert (await RedisJobStore(expiring_redis).get("j1")).failure_reason is None


async def test_release_lock_tolerates_expired_lock():
    redis = fakeredis.FakeAsyncRedis()
    lock = redis.lock("video-lock:v1", timeout=5)
    assert await lock.acquire(blocking=False)
    await redis.delete("video-lock:v1")

    await worker.release_lock(lock)

    assert await redis.exists("video-lock:v1") == 0
