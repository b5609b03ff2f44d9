"""
HTTP API routes for the video enhancement pipeline.

Provides endpoints for:
- Submitting pipeline jobs (full run or regeneration from a stage)
- Querying and cancelling jobs
- Video status and caption export
- Step-by-step documentation from a transcript
- Direct upload URLs for original files
- Queue statistics
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse

from vidforge.errors import ConflictError, NotFoundError, PipelineError, ValidationError
from vidforge.models.schemas import (
    Job,
    JobRequest,
    QueueStats,
    StatusView,
    UploadRequest,
    UploadTicket,
    VideoDocumentation,
)
from vidforge.services.container import get_container
from vidforge.services.queue import JobQueue
from vidforge.services.stages.artifacts import captions_key
from vidforge.utils.srt import to_srt

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pipeline"])

UPLOAD_PREFIX = "videos"
UPLOAD_URL_TTL = 3600


def to_http_error(error: PipelineError) -> HTTPException:
    """Map a pipeline error to an HTTP error (404, 409, 422, else 500)."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=422, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)


def _queue() -> JobQueue:
    queue = get_container().queue
    if queue is None:
        raise HTTPException(status_code=503, detail="Job queue is not configured")
    return queue


@router.post("/videos/{video_id}/jobs", response_model=Job, status_code=202)
async def submit_job(video_id: str, request: JobRequest) -> Job:
    """
    Submit a pipeline job for a video.

    The run starts at request.stage and continues through every later
    stage. Use WebSocket /ws/videos/{video_id} for live progress.

    Args:
        video_id: Video to process
        request: JobRequest with user_id and stage

    Returns:
        Job in its current state

    Raises:
        404: Video not found
        409: Job already pending and conflict policy is "reject"
        422: Invalid stage or ids
    """
    queue = _queue()
    try:
        job_id = await queue.submit(video_id, request.user_id, request.stage)
        job = await queue.status(job_id)
    except PipelineError as e:
        raise to_http_error(e) from e

    logger.info(f"Accepted job {job_id}: video={video_id}, stage={job.requested_stage.value}")
    return job


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str) -> Job:
    """
    Get job status.

    Raises:
        404: Job not found
    """
    try:
        return await _queue().status(job_id)
    except PipelineError as e:
        raise to_http_error(e) from e


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str) -> dict:
    """
    Cancel a waiting or active job.

    Returns:
        {"job_id": ..., "cancelled": bool}; False when the job had already finished

    Raises:
        404: Job not found
    """
    try:
        cancelled = await _queue().cancel(job_id)
    except PipelineError as e:
        raise to_http_error(e) from e
    return {"job_id": job_id, "cancelled": cancelled}


@router.get("/videos/{video_id}/status", response_model=StatusView)
async def get_video_status(video_id: str) -> StatusView:
    """
    Get pipeline status of a video.

    Raises:
        404: Video not found
    """
    try:
        video = await get_container().records.get(video_id)
    except PipelineError as e:
        raise to_http_error(e) from e
    return StatusView.from_record(video)


@router.get("/videos/{video_id}/captions.srt", response_class=PlainTextResponse)
async def get_captions_srt(video_id: str) -> PlainTextResponse:
    """
    Export captions as SubRip.

    Serves the stored captions artifact; falls back to rendering the
    record's cues when the artifact is missing.

    Raises:
        404: Video not found or no captions generated yet
    """
    container = get_container()
    try:
        video = await container.records.get(video_id)
    except PipelineError as e:
        raise to_http_error(e) from e

    try:
        content = (await container.storage.read(captions_key(video_id))).decode("utf-8")
    except NotFoundError:
        if not video.captions:
            raise HTTPException(status_code=404, detail=f"No captions for video: {video_id}") from None
        content = to_srt(video.captions)
    except PipelineError as e:
        raise to_http_error(e) from e

    return PlainTextResponse(
        content,
        media_type="application/x-subrip",
        headers={"Content-Disposition": f'attachment; filename="{video_id}.srt"'},
    )


@router.post("/videos/{video_id}/documentation", response_model=VideoDocumentation)
async def generate_documentation(video_id: str) -> VideoDocumentation:
    """
    Write a step-by-step guide from the video's transcript.

    Uses the enhanced script when there is one; steps are stamped with
    segment start times.

    Raises:
        404: Video not found or not transcribed yet
        500: Generative provider failure
    """
    container = get_container()
    try:
        video = await container.records.get(video_id)
        transcript = await container.records.get_transcript(video_id)
        if transcript is None:
            raise HTTPException(status_code=404, detail=f"No transcript for video: {video_id}")
        documentation = await container.generative.generate_documentation(
            transcript.script_text, video.title, transcript.segments
        )
    except PipelineError as e:
        raise to_http_error(e) from e

    logger.info(f"Documentation for {video_id}: {len(documentation.steps)} steps")
    return documentation


@router.post("/uploads", response_model=UploadTicket)
async def create_upload(request: UploadRequest) -> UploadTicket:
    """
    Reserve a storage key for an original file and return a URL to PUT it to.

    Raises:
        422: Invalid request
    """
    storage = get_container().storage
    key = storage.generate_key(UPLOAD_PREFIX, request.filename)
    try:
        url = await storage.upload_url(key, request.content_type, ttl=UPLOAD_URL_TTL)
    except PipelineError as e:
        raise to_http_error(e) from e
    return UploadTicket(key=key, upload_url=url, expires_in=UPLOAD_URL_TTL)


@router.put("/uploads/{key:path}", status_code=201)
async def receive_upload(key: str, request: Request) -> dict:
    """
    Store a request body under key (target of local upload URLs).

    Raises:
        422: Invalid key or a key outside the upload prefix
    """
    if not key.startswith(f"{UPLOAD_PREFIX}/"):
        raise HTTPException(status_code=422, detail=f"Uploads must go under {UPLOAD_PREFIX}/")
    content_type = request.headers.get("content-type", "application/octet-stream")
    try:
        result = await get_container().storage.put(await request.body(), key, content_type)
    except PipelineError as e:
        raise to_http_error(e) from e
    return {"key": result.key, "url": result.url, "size": result.size}


@router.get("/queue/stats", response_model=QueueStats)
async def get_queue_stats() -> QueueStats:
    """Job counts per status."""
    return await _queue().stats()
