"""Logging setup for the API process and the sync core.

Everything goes to stdout. Levels and formats come from environment
variables, read at import time of ``chatsync.main`` before Settings exist.

Structured context travels in ``extra=``: the gateway tags writes with
``operation``/``chat_id``, synchronizers tag live-query errors with ``uid`` or
``subscription``. The JSON formatter keeps only the keys listed below.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
import sys
from datetime import UTC, datetime
from typing import Any

CONTEXT_KEYS = (
    # request
    "method",
    "path",
    "query",
    "status_code",
    "duration_ms",
    "client_ip",
    "error_type",
    # sync core
    "uid",
    "chat_id",
    "message_id",
    "invitation_id",
    "operation",
    "subscription",
    "count",
)

TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def env_bool(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line with the known context keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (key, record.__dict__[key]) for key in CONTEXT_KEYS if key in record.__dict__
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(
    level: str = "INFO",
    *,
    json_output: bool = False,
    uvicorn_access: bool = False,
    library_level: str = "WARNING",
) -> dict[str, Any]:
    """dictConfig for the console handler and the noisy third-party loggers.

    ``library_level`` applies to httpx and the Google client libraries, whose
    Firestore watch streams log every reconnect at INFO.
    """
    quiet = {"level": library_level, "propagate": True}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {"format": TEXT_FORMAT},
            "json": {"()": "chatsync.core.logging.JsonFormatter"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if json_output else "text",
                "stream": sys.stdout,
            }
        },
        "root": {"handlers": ["console"], "level": level},
        "loggers": {
            "uvicorn": {"level": level, "propagate": True},
            "uvicorn.error": {"level": level, "propagate": True},
            "uvicorn.access": {
                "level": "INFO" if uvicorn_access else "WARNING",
                "propagate": True,
            },
            "httpx": dict(quiet),
            "google": dict(quiet),
            "firebase_admin": dict(quiet),
        },
    }


def configure_logging() -> None:
    """Apply logging config from the environment.

    Env vars:
    - LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    - LOG_JSON: true/false (default: false)
    - LOG_REQUESTS: true/false (default: true)
    - LOG_UVICORN_ACCESS: true/false, defaults to the opposite of LOG_REQUESTS
    - LIBRARY_LOG_LEVEL: httpx, google and firebase_admin (default: WARNING)
    """
    log_requests = env_bool("LOG_REQUESTS", default=True)
    logging.config.dictConfig(
        build_logging_config(
            os.getenv("LOG_LEVEL", "INFO").upper(),
            json_output=env_bool("LOG_JSON", default=False),
            uvicorn_access=env_bool("LOG_UVICORN_ACCESS", default=not log_requests),
            library_level=os.getenv("LIBRARY_LOG_LEVEL", "WARNING").upper(),
        )
    )
