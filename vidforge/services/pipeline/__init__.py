"""
Pipeline module for video processing.

Components:
- orchestrator: stage machine, timeouts, failure marking
- progress_manager: monotonic per-stage progress reporting
- workspace: per-stage scratch directories

Example:
    from vidforge.services.pipeline import PipelineOrchestrator

    orchestrator = PipelineOrchestrator(services, hub)
    outcome = await orchestrator.run(video_id)
"""

from .progress_manager import ProgressCallback, ProgressReporter
from .workspace import stage_workspace
from .orchestrator import CANCELLED_MESSAGE, PipelineOrchestrator, PipelineOutcome

__all__ = [
    "CANCELLED_MESSAGE",
    "PipelineOrchestrator",
    "PipelineOutcome",
    "ProgressCallback",
    "ProgressReporter",
    "stage_workspace",
]
