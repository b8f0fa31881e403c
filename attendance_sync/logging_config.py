import logging
import logging.config
import os
import sys
import uuid
from datetime import datetime
from typing import Optional

import structlog

ROOT_LOGGER = "attendance_sync"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Run-scoped fields (operation_id, trigger) are merged in from contextvars
_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
    structlog.processors.JSONRenderer(ensure_ascii=False),
]


def _handlers(log_level, log_file, json_console):
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "json" if json_console else "plain",
            "stream": sys.stdout,
        }
    }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        # The device may run for months between restarts; keep the file bounded
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }
    return handlers


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None, json_console: bool = False):
    """
    Configure structured logging for the sync agent.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional rotating JSON log file. If None, logs to stdout only.
        json_console: Emit raw JSON on stdout instead of the plain line format
    """
    structlog.configure(
        processors=_PROCESSORS,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = _handlers(log_level, log_file, json_console)
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer(ensure_ascii=False),
            },
        },
        "handlers": handlers,
        "loggers": {
            ROOT_LOGGER: {
                "level": log_level,
                "handlers": list(handlers),
                "propagate": False,
            },
            # Library noise (urllib3 retries, apscheduler ticks) only at WARNING
            "": {
                "level": "WARNING",
                "handlers": list(handlers),
            },
        },
    })

    logger = structlog.get_logger(ROOT_LOGGER)
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class SyncContext:
    """
    Wraps one sync run.

    Binds `operation_id` and `trigger` into the logging context so every line
    emitted during the run carries them, and logs a single start/finish pair
    with the run's duration and counts.
    """

    def __init__(self, trigger: str, operation_id: Optional[str] = None):
        self.trigger = trigger
        self.operation_id = operation_id or uuid.uuid4().hex[:8]
        self.logger = get_logger(f"{ROOT_LOGGER}.sync")
        self.results = None
        self.start_time = None
        self.duration_seconds = None

    def __enter__(self):
        self.start_time = datetime.utcnow()
        structlog.contextvars.bind_contextvars(operation_id=self.operation_id, trigger=self.trigger)
        self.logger.info("Sync run started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_seconds = (datetime.utcnow() - self.start_time).total_seconds()
        try:
            if exc_type is None:
                counts = self.results or {}
                self.logger.info(
                    "Sync run completed",
                    duration_seconds=self.duration_seconds,
                    success=counts.get("success"),
                    failed=counts.get("failed"),
                )
            else:
                self.logger.error(
                    "Sync run failed",
                    duration_seconds=self.duration_seconds,
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                )
        finally:
            structlog.contextvars.unbind_contextvars("operation_id", "trigger")
        return False
