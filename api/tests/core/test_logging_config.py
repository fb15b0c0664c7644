"""Unit tests for core.logger module.

- configure_logging() installs a single structlog-formatted root handler
- LOG_LEVEL and LOG_FORMAT are honoured
- stdlib ``extra`` fields reach the JSON output
"""

import json
import logging

import pytest
import structlog

from core.logger import configure_logging, get_logger


@pytest.fixture(autouse=True)
def _clean_root_logger():
    """Save and restore root logger state around each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    structlog.reset_defaults()


@pytest.mark.unit
class TestConfigureLogging:
    def test_installs_single_handler(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_respects_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        configure_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_level_defaults_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_json_output_includes_extra_fields(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()
        handler = logging.getLogger().handlers[0]

        record = logging.LogRecord(
            name="services.batch_service",
            level=logging.INFO,
            pathname="",
            lineno=0,
            msg="batch.started",
            args=(),
            exc_info=None,
        )
        record.template_id = "tpl_1"
        record.total = 3

        parsed = json.loads(handler.format(record))

        assert parsed["event"] == "batch.started"
        assert parsed["level"] == "info"
        assert parsed["logger"] == "services.batch_service"
        assert parsed["template_id"] == "tpl_1"
        assert parsed["total"] == 3

    def test_get_logger_returns_bound_logger(self):
        configure_logging()
        logger = get_logger("tests")
        assert hasattr(logger, "info")
        assert hasattr(logger, "bind")
