"""
FastAPI application for the video enhancement pipeline.

Provides HTTP API for job submission and status with WebSocket progress updates.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vidforge import __version__
from vidforge.api import routes, websocket
from vidforge.config import get_settings
from vidforge.logging_config import setup_logging
from vidforge.services.container import get_container, set_container

# Configure logging before anything else
settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the service container on startup, shuts the queue down and
    closes provider clients on exit.
    """
    logger.info("Starting vidforge API")
    logger.info(f"Log level: {settings.log_level}")

    container = get_container()
    logger.info(f"Storage: {container.settings.storage_backend}, queue: {container.settings.queue_backend}")
    logger.info(f"Temp directory: {container.settings.temp_dir}")

    yield

    logger.info("Shutting down vidforge API")
    await container.aclose()
    set_container(None)


app = FastAPI(
    title="vidforge API",
    description="Video enhancement pipeline: jobs, status and progress",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)
app.include_router(websocket.router)


@app.get("/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Basic health status with queue counts
    """
    container = get_container()
    result: dict = {"status": "ok"}
    if container.queue is not None:
        result["queue"] = (await container.queue.stats()).model_dump()
    return result


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vidforge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
