"""Structured JSON logging for the gateway."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from gateway.config import settings

# Context keys whose values never reach the log stream
SENSITIVE_KEYS = frozenset(
    {"api_key", "authorization", "key", "key_hash", "secret", "token", "x-api-key"}
)
REDACTED = "[REDACTED]"

_TOKEN_PATTERN = re.compile(r"\bsk_[0-9a-f]{32}_[A-Za-z0-9_\-]+")


def redact(value: Any) -> Any:
    """Mask sensitive keys and embedded API tokens in a log value."""
    if isinstance(value, dict):
        return {
            k: REDACTED if str(k).lower() in SENSITIVE_KEYS else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    if isinstance(value, str):
        return _TOKEN_PATTERN.sub(REDACTED, value)
    return value


class JSONFormatter(logging.Formatter):
    """
    Render each record as one JSON object per line.

    Fields: timestamp (UTC, ISO 8601), level, logger, service, environment,
    message, correlation_id when the request middleware set one, the merged
    `context` dict passed through `extra`, and the exception text. DEBUG
    records also carry file, line and function.
    """

    def __init__(self, service: str | None = None, environment: str | None = None):
        super().__init__()
        self.service = service or settings.api_title
        self.environment = environment or settings.environment

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service,
            "environment": self.environment,
            "message": redact(record.getMessage()),
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_data.update(redact(context))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.levelno == logging.DEBUG:
            log_data["file"] = record.pathname
            log_data["line"] = record.lineno
            log_data["function"] = record.funcName

        return json.dumps(log_data, default=str)


def configure_logging() -> None:
    """
    Route all logging to stdout as JSON.

    Replaces any handlers already on the root logger, applies LOG_LEVEL, and
    keeps the AWS SDK loggers at WARNING or above.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for noisy in ("botocore", "aiobotocore", "aioboto3", "httpx"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))

    root_logger.info(
        "Logging configured",
        extra={"context": {"log_level": settings.log_level}},
    )


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for `name` (typically __name__)."""
    return logging.getLogger(name)
