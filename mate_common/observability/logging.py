"""
Structured JSON logging with OpenTelemetry trace context injection.

Provides a single `setup_logging()` call that configures the root logger
with JSON output and automatic trace/span ID injection into every log line.

Records logged through the admin system-log sink carry ``service`` and
``metadata`` extras; the formatter lifts them into top-level JSON keys so
the process log and the ``system_logs`` table read the same way.

Usage::

    from mate_common.observability.logging import setup_logging, get_logger

    setup_logging()                       # call once at process startup
    logger = get_logger("admin-api")      # get a named logger
    logger.info("hello")                  # {"timestamp": ..., "level": "INFO", ...}

    logger.warning("slow probe", extra={"service": "database", "metadata": {"ms": 2400}})
"""

import logging
import os

from opentelemetry.instrumentation.logging import LoggingInstrumentor
from pythonjsonlogger.json import JsonFormatter


_FORMAT_STRING = "%(timestamp)s %(level)s %(name)s %(message)s"
_setup_done = False


class JsonTraceFormatter(JsonFormatter):
    """JSON formatter that adds standard fields to every log record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = record.created
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["message"] = record.getMessage()

        service = getattr(record, "service", None)
        if service is not None:
            log_record["service"] = service
        metadata = getattr(record, "metadata", None)
        if metadata:
            log_record["metadata"] = metadata
        else:
            # extras are merged by the base class
            log_record.pop("metadata", None)


def _level_from_env(default: int) -> int:
    name = os.environ.get("LOG_LEVEL")
    if not name:
        return default
    resolved = logging.getLevelName(name.upper())
    # getLevelName returns "Level X" for unknown names
    return resolved if isinstance(resolved, int) else default


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure the root logger with structured JSON output and trace context.

    Safe to call multiple times; subsequent calls are no-ops.

    The ``LOG_LEVEL`` environment variable (e.g. ``DEBUG``), when set to a
    known level name, overrides *level*.

    Args:
        level: The root log level (default ``logging.INFO``).
    """
    global _setup_done
    if _setup_done:
        return
    _setup_done = True

    # Instrument stdlib logging so OTel injects trace/span IDs
    LoggingInstrumentor().instrument(set_logging_format=False)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonTraceFormatter(_FORMAT_STRING))

    root = logging.getLogger()
    root.setLevel(_level_from_env(level))
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger (thin wrapper for discoverability)."""
    return logging.getLogger(name)
