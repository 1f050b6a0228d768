"""
Centralized logging configuration for the execution engine.

Provides JSON-structured logging output to stderr for all modules.
Call setup_logging() once at process startup (API app and ARQ worker).
"""

import json
import logging
import logging.config
from datetime import datetime, timezone

# Attributes passed through ``extra=`` that are copied into the JSON line
CONTEXT_FIELDS = ("execution_id", "step", "task_id", "agent")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON for structured log ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": JSONFormatter,
        },
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stderr",
        },
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"],
    },
    "loggers": {
        "agent_engine": {"level": "INFO"},
        "arq": {"level": "INFO"},
        "uvicorn": {"level": "WARNING"},
        "uvicorn.access": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
        "anthropic": {"level": "WARNING"},
    },
}


def setup_logging() -> None:
    """
    Apply the centralized logging configuration.

    Must be called before any ``logging.getLogger()`` calls from
    application modules so that the JSON formatter is active from the start.
    """
    logging.config.dictConfig(LOGGING_CONFIG)
