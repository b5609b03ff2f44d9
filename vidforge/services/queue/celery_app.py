"""
Celery application and the pipeline worker task.

Run a worker with:
    celery -A vidforge.services.queue.celery_app worker --loglevel=info
"""

import asyncio
import logging
from datetime import datetime

from celery import Celery, signals
from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError, LockNotOwnedError

from vidforge.config import get_settings
from vidforge.errors import NotFoundError
from vidforge.logging_config import setup_logging
from vidforge.models.schemas import JobStatus
from vidforge.services.container import build_pipeline
from vidforge.services.queue.celery_queue import RedisJobStore, video_lock_key

logger = logging.getLogger(__name__)

# The lock TTL is reset this many times per TTL while a run is active.
LOCK_RENEWALS_PER_TTL = 3

settings = get_settings()

celery_app = Celery(
    "vidforge",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["vidforge.services.queue.celery_app"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=False,
    worker_prefetch_multiplier=1,
)


@signals.setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the application log format in workers instead of Celery's."""
    setup_logging(get_settings())


@celery_app.task(bind=True, name="vidforge.run_pipeline")
def run_pipeline_task(self, job_id: str) -> dict:
    """
    Run the pipeline for one queued job.

    The job document in Redis is the source of truth; the Celery result
    only mirrors the final status.
    """
    logger.info(f"Worker picked job {job_id} (task={self.request.id})")
    return asyncio.run(run_job(job_id))


async def keep_lock(lock: Lock, interval: float) -> None:
    """Reset the TTL of a held lock every interval seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await lock.reacquire()
        except LockError as e:
            logger.error(f"Lost {lock.name} while the run was active: {e}")
            return


async def release_lock(lock: Lock) -> None:
    """Release a lock; one that already expired is only logged."""
    try:
        await lock.release()
    except LockNotOwnedError:
        logger.warning(f"{lock.name} expired before the run released it")


async def run_job(job_id: str) -> dict:
    """
    Execute a job inside a worker process.

    Holds the per-video Redis lock for the whole run so two workers never
    process the same video at once. The lock TTL (video_lock_timeout) is
    renewed in the background, so runs longer than one TTL keep it.
    Failures are recorded on the job and never escape to Celery.
    """
    worker_settings = get_settings()
    redis = Redis.from_url(worker_settings.redis_url)
    jobs = RedisJobStore(redis)
    try:
        job = await jobs.get(job_id)
    except NotFoundError:
        logger.error(f"Job {job_id} not found in Redis")
        await redis.aclose()
        return {"job_id": job_id, "status": "missing"}

    if job.is_finished:
        logger.info(f"Job {job_id} already {job.status.value}, skipping")
        await redis.aclose()
        return {"job_id": job_id, "status": job.status.value}

    container = build_pipeline(worker_settings)
    try:
        lock_ttl = worker_settings.video_lock_timeout
        lock = redis.lock(video_lock_key(job.video_id), timeout=lock_ttl)
        await lock.acquire()
        renewal = asyncio.create_task(keep_lock(lock, lock_ttl / LOCK_RENEWALS_PER_TTL))
        try:
            await jobs.update(job_id, status=JobStatus.ACTIVE, processed_at=datetime.now())
            outcome = await container.orchestrator.run(job.video_id, job.requested_stage, job_id=job_id)
        finally:
            renewal.cancel()
            await asyncio.gather(renewal, return_exceptions=True)
            await release_lock(lock)

        if outcome.success:
            job = await jobs.update(job_id, status=JobStatus.COMPLETED, finished_at=datetime.now())
            logger.info(f"Job {job_id} completed in {outcome.duration_sec:.1f}s")
        else:
            job = await jobs.update(
                job_id,
                status=JobStatus.FAILED,
                finished_at=datetime.now(),
                failure_reason=outcome.error,
            )
            logger.warning(f"Job {job_id} failed: {outcome.error}")

    except Exception as e:
        logger.exception(f"Job {job_id} crashed")
        job = await jobs.update(
            job_id,
            status=JobStatus.FAILED,
            finished_at=datetime.now(),
            failure_reason=str(e),
        )

    finally:
        await container.aclose()
        await redis.aclose()

    return {"job_id": job_id, "status": job.status.value}
