"""Tests for logging configuration."""

import json
import logging

import pytest

from talkbridge.config import Settings
from talkbridge.logging_config import JsonFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back after a test reconfigures it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_creates_context_log_files(self, tmp_path, restore_root_logger):
        config = Settings(log_dir=str(tmp_path), log_console_enabled=False)

        setup_logging(context="worker", config=config)
        logging.getLogger("talkbridge.test").error("something broke")

        assert "something broke" in (tmp_path / "worker.log").read_text()
        assert "something broke" in (tmp_path / "worker-error.log").read_text()

    def test_info_not_in_error_log(self, tmp_path, restore_root_logger):
        config = Settings(log_dir=str(tmp_path), log_console_enabled=False)

        setup_logging(context="api", config=config)
        logging.getLogger("talkbridge.test").info("just info")

        assert "just info" in (tmp_path / "api.log").read_text()
        assert "just info" not in (tmp_path / "api-error.log").read_text()

    def test_noisy_loggers_quieted(self, tmp_path, restore_root_logger):
        config = Settings(log_dir=str(tmp_path), log_file_enabled=False)

        setup_logging(context="cli", config=config)

        assert logging.getLogger("httpx").level == logging.WARNING


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_format(self):
        record = logging.LogRecord("talkbridge.x", logging.INFO, __file__, 1, "hello %s", ("bot",), None)

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "hello bot"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "talkbridge.x"
