"""
Celery-backed job queue.

Jobs are recorded in Redis (one JSON document per job plus one set per
status) and dispatched to the ``vidforge.run_pipeline`` Celery task. The
worker takes a Redis lock per video so runs for the same video are
serialized across workers; worker concurrency bounds parallelism.

Requires a record store shared between API and workers
(``RECORD_STORE_BACKEND=json`` on a shared volume).
"""

import asyncio
import logging
import uuid
from datetime import datetime

from celery import Celery
from redis.asyncio import Redis

from vidforge.errors import ConflictError, NotFoundError, QueueClosedError
from vidforge.models.schemas import Job, JobStatus, ProcessingStage, QueueStats, VideoStatus
from vidforge.services.pipeline import CANCELLED_MESSAGE
from vidforge.services.queue.base import validate_conflict_policy, validate_submission
from vidforge.services.record_store import RecordStore

logger = logging.getLogger(__name__)

PIPELINE_TASK_NAME = "vidforge.run_pipeline"


def job_key(job_id: str) -> str:
    return f"vidforge:job:{job_id}"


def status_key(status: JobStatus) -> str:
    return f"vidforge:jobs:{status.value}"


def video_jobs_key(video_id: str) -> str:
    return f"vidforge:video-jobs:{video_id}"


def video_lock_key(video_id: str) -> str:
    return f"vidforge:video-lock:{video_id}"


class RedisJobStore:
    """
    Job history in Redis.

    Layout:
        vidforge:job:<id>              Job JSON
        vidforge:jobs:<status>         set of job ids per status
        vidforge:video-jobs:<video_id> set of unfinished job ids per video
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    async def save(self, job: Job) -> Job:
        await self.redis.set(job_key(job.id), job.model_dump_json())
        for status in JobStatus:
            if status != job.status:
                await self.redis.srem(status_key(status), job.id)
        await self.redis.sadd(status_key(job.status), job.id)

        if job.is_finished:
            await self.redis.srem(video_jobs_key(job.video_id), job.id)
        else:
            await self.redis.sadd(video_jobs_key(job.video_id), job.id)
        return job

    async def get(self, job_id: str) -> Job:
        raw = await self.redis.get(job_key(job_id))
        if raw is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return Job.model_validate_json(raw)

    async def update(self, job_id: str, **changes) -> Job:
        job = (await self.get(job_id)).model_copy(update=changes)
        return await self.save(job)

    async def pending_for_video(self, video_id: str, exclude: str | None = None) -> list[str]:
        members = await self.redis.smembers(video_jobs_key(video_id))
        ids = sorted(m.decode() if isinstance(m, bytes) else m for m in members)
        return [job_id for job_id in ids if job_id != exclude]

    async def stats(self) -> QueueStats:
        counts = {}
        for status in JobStatus:
            counts[status.value] = int(await self.redis.scard(status_key(status)))
        return QueueStats(**counts)


class CeleryJobQueue:
    """
    JobQueue dispatching runs to Celery workers.

    Example:
        queue = CeleryJobQueue(records, Redis.from_url(url), celery_app)
        job_id = await queue.submit("vid_1", "user_1", "render_video")
    """

    def __init__(
        self,
        records: RecordStore,
        redis: Redis,
        celery_app: Celery,
        conflict_policy: str = "queue",
    ):
        self.records = records
        self.redis = redis
        self.celery_app = celery_app
        self.jobs = RedisJobStore(redis)
        self.conflict_policy = validate_conflict_policy(conflict_policy)
        self._closed = False

    async def submit(self, video_id: str, user_id: str, stage: "str | ProcessingStage") -> str:
        if self._closed:
            raise QueueClosedError("Queue is shut down")

        requested = await validate_submission(self.records, video_id, user_id, stage)

        pending = await self.jobs.pending_for_video(video_id)
        if pending and self.conflict_policy == "reject":
            raise ConflictError(video_id, f"Job {pending[0]} is already pending for video {video_id}")

        job = Job(
            id=uuid.uuid4().hex,
            video_id=video_id,
            user_id=user_id,
            requested_stage=requested,
        )
        await self.jobs.save(job)

        if not pending:
            await self.records.update(
                video_id,
                {"status": VideoStatus.PROCESSING.value, "processing.error": None},
            )

        await asyncio.to_thread(
            self.celery_app.send_task,
            PIPELINE_TASK_NAME,
            args=[job.id],
            task_id=job.id,
        )
        logger.info(f"Job {job.id} sent to workers: video={video_id}, stage={requested.value}")
        return job.id

    async def status(self, job_id: str) -> Job:
        return await self.jobs.get(job_id)

    async def stats(self) -> QueueStats:
        return await self.jobs.stats()

    async def cancel(self, job_id: str) -> bool:
        job = await self.jobs.get(job_id)
        if job.is_finished:
            return False

        await asyncio.to_thread(self.celery_app.control.revoke, job_id, terminate=True)
        await self.jobs.update(
            job_id,
            status=JobStatus.FAILED,
            finished_at=datetime.now(),
            failure_reason=CANCELLED_MESSAGE,
        )

        # A terminated worker cannot mark the video itself.
        others = await self.jobs.pending_for_video(job.video_id, exclude=job_id)
        if job.status == JobStatus.ACTIVE or not others:
            await self.records.update(
                job.video_id,
                {"status": VideoStatus.ERROR.value, "processing.error": CANCELLED_MESSAGE},
            )
        logger.info(f"Job {job_id} revoked")
        return True

    async def shutdown(self) -> None:
        """Refuse new jobs. Jobs already sent keep running on the workers."""
        self._closed = True
        await self.redis.aclose()
        logger.info("Queue shut down")
