"""
Structured logging configuration for the playback engine.

Provides JSON-formatted logs with a trace_id (the repository name) so log
lines from several playback sessions can be told apart.

Environment Variables:
    PLAYBACK_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    PLAYBACK_LOG_FORMAT: Log format (json, text) - default: json

Usage:
    from playback.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, trace_id="my-repo")
    logger.info("Playback started")
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure root logger with structured logging.

    Arguments override PLAYBACK_LOG_LEVEL / PLAYBACK_LOG_FORMAT.
    """
    log_level = (level or os.getenv("PLAYBACK_LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("PLAYBACK_LOG_FORMAT", "json")).lower()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    resolved = level_map.get(log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for --json command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(TraceIDFilter())

    if fmt == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [trace_id=%(trace_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger with optional trace_id for correlation.

    Example:
        logger = get_logger(__name__, trace_id="my-repo")
        logger.info("Delivered commit")
        # {"timestamp": "...", "level": "INFO", "message": "Delivered commit", "trace_id": "my-repo"}
    """
    logger = logging.getLogger(name)
    return logging.LoggerAdapter(logger, {"trace_id": trace_id or "N/A"})


class TraceIDFilter(logging.Filter):
    """Ensures every record has a trace_id field."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = "N/A"  # type: ignore
        return True
