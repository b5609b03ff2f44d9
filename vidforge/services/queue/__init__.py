"""
Job queue: accepts pipeline jobs and runs them.

Backends (Settings.queue_backend):
    memory: InProcessJobQueue, asyncio tasks in the API process
    celery: CeleryJobQueue, Redis job history and Celery workers
"""

from redis.asyncio import Redis

from vidforge.config import Settings
from vidforge.services.pipeline import PipelineOrchestrator
from vidforge.services.queue.base import JobQueue, validate_submission
from vidforge.services.queue.celery_queue import CeleryJobQueue, RedisJobStore
from vidforge.services.queue.memory import InProcessJobQueue
from vidforge.services.record_store import RecordStore


def create_job_queue(
    settings: Settings,
    orchestrator: PipelineOrchestrator,
    records: RecordStore,
) -> JobQueue:
    """
    Create queue backend selected by settings.queue_backend.

    Raises:
        ValueError: If backend name is unknown
    """
    backend = settings.queue_backend.lower()
    if backend == "memory":
        return InProcessJobQueue(orchestrator, records, settings.conflict_policy)
    if backend == "celery":
        from vidforge.services.queue.celery_app import celery_app

        return CeleryJobQueue(
            records,
            Redis.from_url(settings.redis_url),
            celery_app,
            settings.conflict_policy,
        )
    raise ValueError(f"Unknown queue backend: {settings.queue_backend}")


__all__ = [
    "CeleryJobQueue",
    "InProcessJobQueue",
    "JobQueue",
    "RedisJobStore",
    "create_job_queue",
    "validate_submission",
]
