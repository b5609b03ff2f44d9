"""API routes for the video enhancement pipeline."""

from vidforge.api import routes, websocket

__all__ = ["routes", "websocket"]
