"""
In-process job queue.

One asyncio task per job. A per-video lock serializes runs for the same
video: a second job waits (status "waiting") until the first finishes.
Jobs for different videos run concurrently.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import datetime

from vidforge.errors import ConflictError, NotFoundError, QueueClosedError
from vidforge.models.schemas import Job, JobStatus, ProcessingStage, QueueStats, VideoStatus
from vidforge.services.pipeline import CANCELLED_MESSAGE, PipelineOrchestrator
from vidforge.services.queue.base import validate_conflict_policy, validate_submission
from vidforge.services.record_store import RecordStore

logger = logging.getLogger(__name__)


class InProcessJobQueue:
    """
    JobQueue running jobs on the current event loop.

    Example:
        queue = InProcessJobQueue(orchestrator, records)
        job_id = await queue.submit("vid_1", "user_1", "extract_audio")
        ...
        await queue.shutdown()
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        records: RecordStore,
        conflict_policy: str = "queue",
    ):
        self.orchestrator = orchestrator
        self.records = records
        self.conflict_policy = validate_conflict_policy(conflict_policy)
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._video_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._closed = False

    # ═══════════════════════════════════════════════════════════════════════
    # Submission
    # ═══════════════════════════════════════════════════════════════════════

    def _pending_jobs(self, video_id: str) -> list[Job]:
        return [
            job
            for job in self._jobs.values()
            if job.video_id == video_id and not job.is_finished
        ]

    async def submit(self, video_id: str, user_id: str, stage: "str | ProcessingStage") -> str:
        if self._closed:
            raise QueueClosedError("Queue is shut down")

        requested = await validate_submission(self.records, video_id, user_id, stage)

        pending = self._pending_jobs(video_id)
        if pending and self.conflict_policy == "reject":
            raise ConflictError(video_id, f"Job {pending[0].id} is already {pending[0].status.value} for video {video_id}")

        job = Job(
            id=uuid.uuid4().hex,
            video_id=video_id,
            user_id=user_id,
            requested_stage=requested,
        )
        self._jobs[job.id] = job

        if not pending:
            await self.records.update(
                video_id,
                {"status": VideoStatus.PROCESSING.value, "processing.error": None},
            )

        self._tasks[job.id] = asyncio.create_task(self._run_job(job.id), name=f"job-{job.id}")
        logger.info(f"Job {job.id} queued: video={video_id}, stage={requested.value}, user={user_id}")
        return job.id

    # ═══════════════════════════════════════════════════════════════════════
    # Execution
    # ═══════════════════════════════════════════════════════════════════════

    def _update_job(self, job_id: str, **changes) -> Job:
        job = self._jobs[job_id].model_copy(update=changes)
        self._jobs[job_id] = job
        return job

    async def _run_job(self, job_id: str) -> None:
        job = self._jobs[job_id]
        lock = self._video_locks[job.video_id]
        started = False

        try:
            async with lock:
                started = True
                self._update_job(job_id, status=JobStatus.ACTIVE, processed_at=datetime.now())
                logger.info(f"Job {job_id} active: video={job.video_id}")

                outcome = await self.orchestrator.run(job.video_id, job.requested_stage, job_id=job_id)

            if outcome.success:
                self._update_job(job_id, status=JobStatus.COMPLETED, finished_at=datetime.now())
                logger.info(f"Job {job_id} completed in {outcome.duration_sec:.1f}s")
            else:
                self._update_job(
                    job_id,
                    status=JobStatus.FAILED,
                    finished_at=datetime.now(),
                    failure_reason=outcome.error,
                )
                logger.warning(f"Job {job_id} failed: {outcome.error}")

        except asyncio.CancelledError:
            await self._mark_cancelled(job_id, started)
            raise

        except Exception as e:
            logger.exception(f"Job {job_id} crashed")
            self._update_job(
                job_id,
                status=JobStatus.FAILED,
                finished_at=datetime.now(),
                failure_reason=str(e),
            )

        finally:
            self._tasks.pop(job_id, None)
            if not lock.locked() and not self._pending_jobs(job.video_id):
                self._video_locks.pop(job.video_id, None)

    async def _mark_cancelled(self, job_id: str, started: bool) -> None:
        job = self._update_job(
            job_id,
            status=JobStatus.FAILED,
            finished_at=datetime.now(),
            failure_reason=CANCELLED_MESSAGE,
        )
        # An active run was marked by the orchestrator. A waiting job only
        # marks the video when nothing else is pending for it.
        if not started and not self._pending_jobs(job.video_id):
            await self.records.update(
                job.video_id,
                {"status": VideoStatus.ERROR.value, "processing.error": CANCELLED_MESSAGE},
            )
        logger.info(f"Job {job_id} cancelled")

    # ═══════════════════════════════════════════════════════════════════════
    # Queries and control
    # ═══════════════════════════════════════════════════════════════════════

    async def status(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job.model_copy()

    async def stats(self) -> QueueStats:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return QueueStats(
            waiting=counts[JobStatus.WAITING],
            active=counts[JobStatus.ACTIVE],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
        )

    async def cancel(self, job_id: str) -> bool:
        job = await self.status(job_id)
        task = self._tasks.get(job_id)
        if job.is_finished or task is None:
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        # A task cancelled before its first step never enters _run_job.
        if not self._jobs[job_id].is_finished:
            self._tasks.pop(job_id, None)
            await self._mark_cancelled(job_id, started=False)
        return True

    async def shutdown(self) -> None:
        self._closed = True
        tasks = list(self._tasks.values())
        if tasks:
            logger.info(f"Queue shutdown: waiting for {len(tasks)} jobs")
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Queue shut down")
