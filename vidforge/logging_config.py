"""
Logging setup for the API process and the Celery worker.

Environment:
- LOG_LEVEL: root level (default INFO)
- LOG_FORMAT: "structured" or "simple" (default structured)
- LOG_LEVEL_<AREA>: level for one area, e.g. LOG_LEVEL_QUEUE=DEBUG
"""

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vidforge.config import Settings


# Settings suffix -> logger namespace
AREA_LOGGERS = {
    "pipeline": "vidforge.services.pipeline",
    "queue": "vidforge.services.queue",
    "media": "vidforge.services.media_tool",
    "generative": "vidforge.services.generative",
    "storage": "vidforge.services.storage",
}

# Raised to WARNING, they log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "celery", "uvicorn.access")

SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def short_logger_name(name: str) -> str:
    """vidforge.services.queue.memory -> queue.memory, vidforge.api.routes -> api.routes"""
    for prefix in ("vidforge.services.", "vidforge."):
        if name.startswith(prefix):
            return name[len(prefix):]
    return name


class StructuredFormatter(logging.Formatter):
    """One line per record: timestamp | level | logger | message"""

    def format(self, record: logging.LogRecord) -> str:
        columns = (
            self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            f"{record.levelname:8}",
            f"{short_logger_name(record.name):20}",
            record.getMessage(),
        )
        line = " | ".join(columns)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _parse_level(value: str | None, default: int) -> int:
    if not value:
        return default
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def setup_logging(settings: "Settings") -> None:
    """
    Install a single stdout handler on the root logger and apply
    per-area levels. Safe to call again, earlier handlers are replaced.
    """
    root_level = _parse_level(settings.log_level, logging.INFO)
    formatter = StructuredFormatter() if settings.log_format == "structured" else logging.Formatter(SIMPLE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(root_level)

    for area, namespace in AREA_LOGGERS.items():
        override = getattr(settings, f"log_level_{area}", None)
        if override:
            logging.getLogger(namespace).setLevel(_parse_level(override, root_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
