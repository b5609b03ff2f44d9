"""
Job queue protocol and submission validation shared by backends.
"""

from typing import Protocol, runtime_checkable

from vidforge.errors import ValidationError, VideoNotFoundError
from vidforge.models.schemas import Job, ProcessingStage, QueueStats, parse_stage
from vidforge.services.record_store import RecordStore

CONFLICT_POLICIES = ("queue", "reject")


@runtime_checkable
class JobQueue(Protocol):
    """
    Accepts pipeline jobs and runs them.

    Example:
        job_id = await queue.submit("vid_1", "user_1", "generate_captions")
        job = await queue.status(job_id)
    """

    async def submit(self, video_id: str, user_id: str, stage: "str | ProcessingStage") -> str:
        """
        Queue a pipeline run starting at stage.

        Raises:
            ValidationError: Invalid stage, empty ids, or queue shut down
            NotFoundError: Unknown video
            ConflictError: Pending job exists and conflict_policy is "reject"
        """
        ...

    async def status(self, job_id: str) -> Job:
        ...

    async def stats(self) -> QueueStats:
        ...

    async def cancel(self, job_id: str) -> bool:
        """Cancel a waiting or active job. False if it already finished."""
        ...

    async def shutdown(self) -> None:
        """Stop accepting jobs and wait for running ones."""
        ...


async def validate_submission(
    records: RecordStore,
    video_id: str,
    user_id: str,
    stage: "str | ProcessingStage",
) -> ProcessingStage:
    """
    Validate a submission before a job is created.

    Returns:
        Parsed stage

    Raises:
        ValidationError: Empty ids or invalid stage
        VideoNotFoundError: Unknown video
    """
    if not video_id or not str(video_id).strip():
        raise ValidationError("video_id must not be empty")
    if not user_id or not str(user_id).strip():
        raise ValidationError("user_id must not be empty")

    requested = parse_stage(stage)
    if not await records.exists(video_id):
        raise VideoNotFoundError(video_id)
    return requested


def validate_conflict_policy(policy: str) -> str:
    policy = policy.lower()
    if policy not in CONFLICT_POLICIES:
        raise ValueError(f"Unknown conflict policy: {policy}")
    return policy
