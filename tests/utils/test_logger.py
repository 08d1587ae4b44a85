"""
Tests for logging setup
"""
import logging

import pytest
import structlog

from chiefai.utils.logger import bind_message_context, clear_message_context, configure_logging, setup_logger


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging("INFO")


class TestConfigureLogging:
    """Level and file handling"""

    def test_level_and_file(self, tmp_path):
        log_file = tmp_path / "logs" / "chiefai.log"

        configure_logging("DEBUG", str(log_file))

        assert logging.getLogger().level == logging.DEBUG
        assert log_file.parent.is_dir()
        assert any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)

    def test_structlog_lines_reach_log_file(self, tmp_path):
        log_file = tmp_path / "chiefai.log"
        configure_logging("INFO", str(log_file))

        setup_logger("chiefai.tests").info("[MeetingPipeline] hello from the pipeline")

        assert "hello from the pipeline" in log_file.read_text()

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("CHATTY")
        assert logging.getLogger().level == logging.INFO

    def test_message_context_round_trip(self):
        bind_message_context("msg-1", "user-1")
        assert structlog.contextvars.get_contextvars() == {"message_id": "msg-1", "user_id": "user-1"}

        clear_message_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_setup_logger_returns_logger(self):
        assert setup_logger(__name__) is not None
