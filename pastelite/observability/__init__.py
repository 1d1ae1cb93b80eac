from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from flask import Flask, g, has_request_context, request


CORRELATION_HEADER = "X-Correlation-ID"

# Structured attributes copied from log records into the JSON payload.
LOG_FIELDS = (
    "event",
    "correlation_id",
    "http_method",
    "http_path",
    "paste_id",
    "view_count",
    "status_from",
    "status_to",
    "error_type",
)


def get_correlation_id() -> str | None:
    """Return the current request's correlation_id, if any."""
    if not has_request_context():
        return None
    return g.get("correlation_id")


def log_fields(event: str, **fields: Any) -> dict[str, Any]:
    """
    Build the ``extra`` mapping for a structured log call.

    ``None`` values are dropped; UUIDs are rendered as strings. The current
    correlation id is attached when a request is active.
    """

    extra: dict[str, Any] = {"event": event, "correlation_id": get_correlation_id()}
    for key, value in fields.items():
        if value is None:
            continue
        extra[key] = str(value) if isinstance(value, uuid.UUID) else value
    return extra


class _RequestContextFilter(logging.Filter):
    """Attach HTTP method, path and correlation id to records inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if has_request_context():
            if getattr(record, "correlation_id", None) is None:
                record.correlation_id = g.get("correlation_id")
            record.http_method = request.method
            record.http_path = request.path
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, carrying the fields in ``LOG_FIELDS``."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key))
            for key in LOG_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install a single stderr handler on the root logger."""

    handler = logging.StreamHandler()
    if fmt == "text":
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    else:
        handler.setFormatter(JsonFormatter())
    handler.addFilter(_RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(level.upper())
    # Replace existing handlers to avoid duplicate logs.
    root.handlers = [handler]


def init_observability(app: Flask) -> None:
    """
    Initialize observability for the Flask app.

    - Configures structured logging (skipped under TESTING, where pytest
      owns the root logger).
    - Assigns every request a correlation id, echoed back in the response.
    """

    if not app.config.get("TESTING", False):
        _configure_logging(
            app.config.get("LOG_LEVEL", "INFO"),
            app.config.get("LOG_FORMAT", "json"),
        )

    @app.before_request
    def _set_correlation_id() -> None:  # type: ignore[unused-variable]
        g.correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())

    @app.after_request
    def _propagate_correlation_id(response):  # type: ignore[unused-variable]
        cid = get_correlation_id()
        if cid:
            response.headers[CORRELATION_HEADER] = cid
        return response
