"""
Per-stage scratch directories.
"""

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


@contextmanager
def stage_workspace(temp_dir: Path, video_id: str, stage: str) -> Iterator[Path]:
    """
    Create temp_dir/<video_id>/<stage> and remove it afterwards.

    Cleanup runs on success and on failure. Removal errors are logged
    and never mask the stage outcome.

    Example:
        with stage_workspace(settings.temp_dir, video.id, "render_video") as ws:
            output = ws / "rendered.mp4"
    """
    video_dir = Path(temp_dir) / video_id
    workspace = video_dir / stage
    if workspace.exists():
        shutil.rmtree(workspace, ignore_errors=True)
    workspace.mkdir(parents=True, exist_ok=True)

    try:
        yield workspace
    finally:
        try:
            shutil.rmtree(workspace)
            if video_dir.exists() and not any(video_dir.iterdir()):
                video_dir.rmdir()
        except OSError as e:
            logger.warning(f"Failed to clean workspace {workspace}: {e}")
