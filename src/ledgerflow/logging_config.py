"""Logging configuration.

Console output by default, JSON lines when ``LEDGERFLOW_LOG_FORMAT=json``.
Logs go to stderr so command output on stdout stays clean.

Environment variables:
- LEDGERFLOW_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: WARNING)
- LEDGERFLOW_LOG_FORMAT: "console" or "json" (default: console)
"""

import json
import logging
import logging.config
import os
from datetime import datetime, UTC
from typing import Optional

DEFAULT_LEVEL = "WARNING"

# Attributes every LogRecord has; anything else came in through ``extra``
_STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
}


class JsonFormatter(logging.Formatter):
    """Format records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)
        if extras:
            entry["extra"] = extras
        return json.dumps(entry, default=str)


def get_logging_config(level: str = DEFAULT_LEVEL, fmt: str = "console") -> dict:
    """Build a ``logging.config.dictConfig`` dictionary.

    Args:
        level: Level name for the ledgerflow loggers
        fmt: "console" or "json"

    Returns:
        dictConfig dictionary
    """
    if fmt == "json":
        formatter = {"()": "ledgerflow.logging_config.JsonFormatter"}
    else:
        formatter = {"format": "[{asctime}] {levelname} {name} {message}", "style": "{"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "ledgerflow": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Apply the logging configuration, reading unset values from the environment.

    Raises:
        ValueError: If the level name or format is unknown
    """
    level = (level or os.environ.get("LEDGERFLOW_LOG_LEVEL") or DEFAULT_LEVEL).upper()
    fmt = (fmt or os.environ.get("LEDGERFLOW_LOG_FORMAT") or "console").lower()
    if level not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown log level '{level}'")
    if fmt not in ("console", "json"):
        raise ValueError(f"Unknown log format '{fmt}'; use 'console' or 'json'")
    logging.config.dictConfig(get_logging_config(level, fmt))
