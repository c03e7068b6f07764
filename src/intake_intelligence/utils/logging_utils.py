"""Logging setup for the intake intelligence system."""

import logging
import sys
from typing import Any, Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ProcessingIdFilter(logging.Filter):
    """Give every record a ``processing_id`` attribute.

    Pipeline events pass ``extra={"processing_id": ...}``; records from other
    code get ``"-"`` so formats may reference ``%(processing_id)s`` safely.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "processing_id"):
            record.processing_id = "-"
        return True


def setup_logging(log_level: str = "INFO", log_format: Optional[str] = None) -> None:
    """Configure console logging.

    Logs go to stderr with timestamp, logger name, level, and message.

    Args:
        log_level: Logging level as string (DEBUG, INFO, WARNING, ERROR).
            Defaults to "INFO".
        log_format: Optional format string. Defaults to DEFAULT_LOG_FORMAT.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(ProcessingIdFilter())
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format or DEFAULT_LOG_FORMAT,
        handlers=[handler],
        force=True,
    )


def setup_logging_from_config(logging_config: Dict[str, Any]) -> None:
    """Configure logging from the ``logging`` section of SystemConfig."""
    setup_logging(
        log_level=logging_config.get("level", "INFO"),
        log_format=logging_config.get("format"),
    )
