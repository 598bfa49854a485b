# valora/logging_conf.py
from __future__ import annotations

import json
import logging
import os
from logging.config import dictConfig
from typing import Any

# Attributes every LogRecord has; anything else came in through `extra=`.
# uvicorn adds color_message, an ANSI copy of the message.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "color_message",
}


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs to stdout."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # Include standard extras if present
        for extra_key in ("module", "funcName"):
            val = getattr(record, extra_key, None)
            if val:
                payload[extra_key] = val
        for key, val in vars(record).items():
            if key not in _RESERVED and key not in payload:
                payload[key] = val
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(log_level: str | None = None) -> None:
    """Configure JSON logging for valora + uvicorn, suppress duplicate access logs."""
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    dict_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JsonFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        # Root logger uses JSON
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": log_level, "handlers": ["console"], "propagate": False},
            # Suppress default uvicorn access logs (the timing middleware logs each request)
            "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "fastapi": {"level": log_level, "handlers": ["console"], "propagate": False},
            "starlette": {"level": log_level, "handlers": ["console"], "propagate": False},
            # httpx logs every request at INFO; the fetcher already logs attempts
            "httpx": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "valora": {"level": log_level, "handlers": ["console"], "propagate": False},
            "request": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
    }

    dictConfig(dict_config)
