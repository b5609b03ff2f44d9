"""
WebSocket handler for real-time progress updates.

Streams per-video progress events from the progress hub.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vidforge.models.schemas import StatusView
from vidforge.services.container import get_container

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

HEARTBEAT_INTERVAL = 30.0


@router.websocket("/ws/videos/{video_id}")
async def video_progress_websocket(websocket: WebSocket, video_id: str) -> None:
    """
    WebSocket endpoint for real-time pipeline progress of a video.

    The first message is the current status snapshot. After that:
        {"type": "progress", "stage": ..., "progress": ..., "video_id": ..., "timestamp": ...}
        {"type": "status", "status": "ready" | "error", "error": ...}
        {"type": "heartbeat"} after 30 seconds without events

    The connection stays open across runs; it closes when the client
    disconnects.

    Example client (Python):
        async with websockets.connect(f"ws://localhost:8000/ws/videos/{video_id}") as ws:
            async for message in ws:
                data = json.loads(message)
                print(data)

    Args:
        websocket: WebSocket connection
        video_id: Video to follow
    """
    container = get_container()

    if not await container.records.exists(video_id):
        await websocket.close(code=4004, reason=f"Video not found: {video_id}")
        return

    await websocket.accept()
    logger.info(f"WebSocket connected for video {video_id}")

    # Subscribe before the snapshot so no event falls between them
    queue = container.hub.subscribe(video_id)

    try:
        video = await container.records.get(video_id)
        snapshot = StatusView.from_record(video).model_dump(mode="json")
        await websocket.send_json({"type": "snapshot", "video_id": video_id, **snapshot})

        while True:
            try:
                message = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL)
                await websocket.send_json(message)
            except asyncio.TimeoutError:
                # Send heartbeat to keep connection alive
                try:
                    await websocket.send_json({"type": "heartbeat"})
                except Exception:
                    break

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for video {video_id}")
    except Exception as e:
        logger.error(f"WebSocket error for video {video_id}: {e}")
    finally:
        container.hub.unsubscribe(video_id, queue)
        logger.info(f"WebSocket closed for video {video_id}")
