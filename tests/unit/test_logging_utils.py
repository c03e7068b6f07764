"""
Unit tests for logging_utils module.
"""

import logging

import pytest

from intake_intelligence.orchestration.pipeline_orchestrator import PipelineOrchestrator
from intake_intelligence.utils.config_loader import SystemConfig
from intake_intelligence.utils.logging_utils import (
    ProcessingIdFilter,
    setup_logging,
    setup_logging_from_config,
)

pytestmark = pytest.mark.unit

RUN_FORMAT = "%(levelname)s [%(processing_id)s] %(message)s"


@pytest.fixture
def root_logger():
    """Root logger whose handlers and level are restored after the test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(**extra):
    record = logging.LogRecord("intake", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestProcessingIdFilter:
    """Tests for ProcessingIdFilter."""

    def test_missing_id_defaults(self):
        record = make_record()

        assert ProcessingIdFilter().filter(record) is True
        assert record.processing_id == "-"

    def test_existing_id_kept(self):
        record = make_record(processing_id="RUN-1")

        ProcessingIdFilter().filter(record)

        assert record.processing_id == "RUN-1"


class TestSetupLogging:
    """Tests for setup_logging and setup_logging_from_config."""

    def test_format_with_processing_id(self, root_logger, capsys):
        setup_logging("DEBUG", RUN_FORMAT)

        logging.getLogger("intake.test").info("stage done", extra={"processing_id": "RUN-7"})
        logging.getLogger("intake.test").info("no context")

        err = capsys.readouterr().err
        assert "INFO [RUN-7] stage done" in err
        assert "INFO [-] no context" in err
        assert root_logger.level == logging.DEBUG

    def test_from_config_section(self, root_logger, capsys):
        setup_logging_from_config({"level": "warning", "format": RUN_FORMAT})

        logging.getLogger("intake.test").info("hidden")
        logging.getLogger("intake.test").warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "WARNING [-] shown" in err

    def test_unknown_level_falls_back_to_info(self, root_logger):
        setup_logging_from_config({"level": "chatty"})
        assert root_logger.level == logging.INFO


class TestOrchestratorLoggingConfig:
    """Tests for the logging section applied by PipelineOrchestrator.from_config."""

    @pytest.fixture(autouse=True)
    def api_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    def test_logging_section_applied(self, root_logger):
        config = SystemConfig(logging={"level": "ERROR", "format": RUN_FORMAT})

        PipelineOrchestrator.from_config(config)

        assert root_logger.level == logging.ERROR
        assert any(
            isinstance(f, ProcessingIdFilter) for h in root_logger.handlers for f in h.filters
        )

    def test_logging_left_alone_when_disabled(self, root_logger):
        handlers = root_logger.handlers[:]

        PipelineOrchestrator.from_config(
            SystemConfig(logging={"level": "ERROR"}), configure_logging=False
        )

        assert root_logger.handlers == handlers
