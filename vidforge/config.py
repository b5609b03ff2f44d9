"""
Application configuration and settings.
"""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

RESOURCES_DIR = Path(__file__).resolve().parent / "resources"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    storage_backend: str = "local"  # "local" or "s3"
    storage_dir: Path = Path("./storage")
    public_base_url: str = "http://localhost:8000/files"
    upload_base_url: str = "http://localhost:8000/api/uploads"  # Local PUT target for direct uploads
    s3_bucket: str = "vidforge-storage"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    # Media tool
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    temp_dir: Path = Path("./storage/tmp")

    # Generative providers
    generative_mode: str = "auto"  # "auto", "provider" or "fallback"
    whisper_url: str | None = None
    whisper_language: str | None = None
    speech_url: str | None = None
    speech_api_key: str | None = None
    speech_model: str = "tts-1"
    anthropic_api_key: str | None = None
    script_model: str = "claude-sonnet-4-5"
    llm_timeout: int = 300
    voice_id: str = "alloy"

    # Queue
    queue_backend: str = "memory"  # "memory" or "celery"
    redis_url: str = "redis://localhost:6379/0"
    conflict_policy: str = "queue"  # "queue" or "reject"
    video_lock_timeout: int = 300  # Per-video worker lock TTL, renewed while a run holds it

    # Pipeline
    stage_timeout_seconds: float = 900.0
    thumbnail_count: int = 10
    mix_voiceover: bool = True
    config_dir: Path = RESOURCES_DIR
    prompts_dir: Path | None = None  # External prompts directory (overrides built-in)

    # Record store
    record_store_backend: str = "memory"  # "memory" or "json"
    record_store_dir: Path = Path("./storage/records")

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_pipeline: str | None = None
    log_level_queue: str | None = None
    log_level_media: str | None = None
    log_level_generative: str | None = None
    log_level_storage: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_pipeline_config(settings: Settings | None = None) -> dict:
    """
    Load pipeline tuning from config_dir/pipeline.yaml.

    Holds per-stage timeouts, progress checkpoints, caption style defaults
    and render options. A missing file yields an empty dict so callers fall
    back to their own defaults.

    Args:
        settings: Optional settings instance

    Returns:
        Pipeline configuration dictionary
    """
    if settings is None:
        settings = get_settings()

    config_path = settings.config_dir / "pipeline.yaml"
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_prompt(
    stage: str,
    component: str,
    settings: Settings | None = None,
) -> str:
    """
    Load a prompt template, external folder first.

    Lookup order (first found wins):
    1. prompts_dir/{stage}/{component}.md (external)
    2. config_dir/prompts/{stage}/{component}.md (built-in)

    Args:
        stage: Pipeline stage ("enhance_script", "summarize")
        component: Prompt component ("system", "user")
        settings: Optional settings instance

    Returns:
        Prompt template content

    Raises:
        FileNotFoundError: If no matching prompt file is found
    """
    if settings is None:
        settings = get_settings()

    candidates: list[Path] = []
    if settings.prompts_dir and settings.prompts_dir.exists():
        candidates.append(settings.prompts_dir / stage / f"{component}.md")
    candidates.append(settings.config_dir / "prompts" / stage / f"{component}.md")

    found = next((path for path in candidates if path.exists()), None)
    if found is None:
        searched = ", ".join(str(path) for path in candidates)
        raise FileNotFoundError(f"No {component} prompt for {stage} (searched: {searched})")
    return found.read_text(encoding="utf-8")
