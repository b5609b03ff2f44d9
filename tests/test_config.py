"""Tests for settings helpers and logging setup."""

import logging

import pytest

from vidforge.config import load_pipeline_config, load_prompt
from vidforge.logging_config import StructuredFormatter, setup_logging


def test_pipeline_config_defaults(pipeline_config):
    assert pipeline_config["stage_timeouts"]["render_video"] == 3600
    assert pipeline_config["progress_windows"]["extract_audio"] == [20, 80]
    assert pipeline_config["render"]["codec"] == "libx264"


def test_missing_pipeline_config_is_empty(settings, tmp_path):
    assert load_pipeline_config(settings.model_copy(update={"config_dir": tmp_path})) == {}


def test_prompt_external_override(settings, tmp_path):
    override = tmp_path / "prompts" / "summarize"
    override.mkdir(parents=True)
    (override / "system.md").write_text("Custom summary prompt")
    custom = settings.model_copy(update={"prompts_dir": tmp_path / "prompts"})

    assert load_prompt("summarize", "system", custom) == "Custom summary prompt"
    # Components absent from the override folder come from the built-in set
    assert "{transcript}" in load_prompt("summarize", "user", custom)


def test_prompt_not_found(settings):
    with pytest.raises(FileNotFoundError):
        load_prompt("translate", "system", settings)


def test_structured_formatter_shortens_names():
    record = logging.LogRecord(
        "vidforge.services.queue.memory", logging.INFO, __file__, 1, "Job queued", None, None
    )

    line = StructuredFormatter().format(record)

    assert "| INFO     | queue.memory" in line
    assert line.endswith("| Job queued")


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("vidforge.services.queue").setLevel(logging.NOTSET)


def test_setup_logging_module_levels(settings, restore_logging):
    setup_logging(settings.model_copy(update={"log_level": "WARNING", "log_level_queue": "DEBUG"}))

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("vidforge.services.queue").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
