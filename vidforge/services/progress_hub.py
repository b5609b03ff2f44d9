"""
Progress fan-out to live subscribers (WebSocket clients).

The record store is the source of truth for status; the hub only pushes
change notifications so clients do not have to poll.
"""

import asyncio
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


class ProgressHub:
    """
    Broadcasts progress events per video to subscribed queues.

    A slow subscriber never blocks the pipeline: when its queue is full,
    the oldest pending event is dropped.

    Example:
        queue = hub.subscribe(video_id)
        try:
            event = await queue.get()
        finally:
            hub.unsubscribe(video_id, queue)
    """

    def __init__(self):
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, video_id: str) -> asyncio.Queue:
        """
        Subscribe to progress events of a video.

        Args:
            video_id: Video identifier

        Returns:
            Queue that will receive event dicts
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers.setdefault(video_id, []).append(queue)
        logger.debug(f"Client subscribed to video {video_id}")
        return queue

    def unsubscribe(self, video_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(video_id)
        if not subscribers:
            return
        if queue in subscribers:
            subscribers.remove(queue)
            logger.debug(f"Client unsubscribed from video {video_id}")
        if not subscribers:
            del self._subscribers[video_id]

    def subscriber_count(self, video_id: str) -> int:
        return len(self._subscribers.get(video_id, []))

    async def publish(self, video_id: str, message: dict) -> None:
        """
        Broadcast an event to all subscribers of a video.

        Args:
            video_id: Video identifier
            message: Event payload; "video_id" and "timestamp" are added
        """
        event = {"video_id": video_id, "timestamp": datetime.now().isoformat(), **message}

        for queue in list(self._subscribers.get(video_id, [])):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)
