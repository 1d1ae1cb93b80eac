from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from flask import current_app, request

from pastelite.observability import log_fields
from pastelite.services.paste_service import PasteService


logger = logging.getLogger(__name__)

TEST_NOW_HEADER = "X-Test-Now-Ms"


def get_paste_service() -> PasteService:
    """Return the service built for the current app by ``create_app``."""
    return current_app.extensions["pastelite"]["paste_service"]


def request_now() -> Optional[datetime]:
    """
    Return the time override carried by ``X-Test-Now-Ms``, if honored.

    The header is only read when ``TEST_MODE`` is enabled; otherwise, and
    for unparseable values, ``None`` is returned and the service clock
    applies.
    """

    raw = request.headers.get(TEST_NOW_HEADER)
    if raw is None or not current_app.config.get("TEST_MODE", False):
        return None
    try:
        millis = int(raw)
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        logger.warning(
            "Ignoring malformed test time header",
            extra=log_fields("test_now_header_invalid"),
        )
        return None
