"""
Composition root: builds gateways, stores, orchestrator and queue from settings.

The API process holds one container (see get_container). Celery workers
build their own with build_pipeline, which leaves out the queue.
"""

import logging
from dataclasses import dataclass

from vidforge.config import Settings, get_settings, load_pipeline_config
from vidforge.services.generative import GenerativeGateway, create_generative_gateway
from vidforge.services.media_tool import FFmpegTool, MediaTool
from vidforge.services.pipeline import PipelineOrchestrator
from vidforge.services.progress_hub import ProgressHub
from vidforge.services.queue import JobQueue, create_job_queue
from vidforge.services.record_store import RecordStore, create_record_store
from vidforge.services.stages import StageServices
from vidforge.services.storage import StorageGateway, create_storage

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything the API and workers need, wired once."""

    settings: Settings
    pipeline_config: dict
    storage: StorageGateway
    media: MediaTool
    generative: GenerativeGateway
    records: RecordStore
    hub: ProgressHub
    orchestrator: PipelineOrchestrator
    queue: JobQueue | None = None

    @classmethod
    def from_parts(
        cls,
        settings: Settings,
        storage: StorageGateway,
        media: MediaTool,
        generative: GenerativeGateway,
        records: RecordStore,
        pipeline_config: dict | None = None,
        hub: ProgressHub | None = None,
        with_queue: bool = True,
    ) -> "ServiceContainer":
        """
        Wire orchestrator and queue around the given gateways.

        Args:
            settings: Application settings
            storage: Storage gateway
            media: Media tool gateway
            generative: Generative gateway
            records: Video record store
            pipeline_config: Pipeline tuning (loaded from settings if None)
            hub: Progress hub (new one if None)
            with_queue: Also build the job queue

        Returns:
            ServiceContainer
        """
        if pipeline_config is None:
            pipeline_config = load_pipeline_config(settings)
        hub = hub or ProgressHub()

        services = StageServices(
            storage=storage,
            media=media,
            generative=generative,
            records=records,
            settings=settings,
            pipeline_config=pipeline_config,
        )
        orchestrator = PipelineOrchestrator(services, hub)
        queue = create_job_queue(settings, orchestrator, records) if with_queue else None

        return cls(
            settings=settings,
            pipeline_config=pipeline_config,
            storage=storage,
            media=media,
            generative=generative,
            records=records,
            hub=hub,
            orchestrator=orchestrator,
            queue=queue,
        )

    async def aclose(self) -> None:
        """Shut the queue down (waiting for in-process jobs) and close clients."""
        if self.queue is not None:
            await self.queue.shutdown()
        await self.generative.close()


def build_container(settings: Settings | None = None, with_queue: bool = True) -> ServiceContainer:
    """
    Build a container from settings.

    Args:
        settings: Optional settings instance
        with_queue: Also build the job queue

    Returns:
        ServiceContainer
    """
    if settings is None:
        settings = get_settings()

    container = ServiceContainer.from_parts(
        settings=settings,
        storage=create_storage(settings),
        media=FFmpegTool.from_settings(settings),
        generative=create_generative_gateway(settings),
        records=create_record_store(settings),
        with_queue=with_queue,
    )

    if settings.queue_backend.lower() == "celery" and settings.record_store_backend.lower() == "memory":
        logger.warning("Celery queue with in-memory record store: workers will not see API records")

    logger.info(
        f"Services ready: storage={settings.storage_backend}, "
        f"records={settings.record_store_backend}, queue={settings.queue_backend if with_queue else '-'}"
    )
    return container


def build_pipeline(settings: Settings | None = None) -> ServiceContainer:
    """Build a container without a queue (worker processes)."""
    return build_container(settings, with_queue=False)


# ═══════════════════════════════════════════════════════════════════════════
# Process-wide instance
# ═══════════════════════════════════════════════════════════════════════════

_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the process container, building it from settings on first use."""
    global _container
    if _container is None:
        _container = build_container()
    return _container


def set_container(container: ServiceContainer | None) -> None:
    """Replace the process container (None resets it)."""
    global _container
    _container = container
