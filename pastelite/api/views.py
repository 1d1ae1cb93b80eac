from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Blueprint, render_template
from werkzeug.exceptions import HTTPException

from pastelite.api.context import get_paste_service, request_now
from pastelite.observability import log_fields
from pastelite.services.paste_service import PasteNotFoundError


logger = logging.getLogger(__name__)

views_bp = Blueprint("views", __name__)

_TEXT_HEADERS = {"Content-Type": "text/plain; charset=utf-8"}


@views_bp.route("/p/<paste_id>", methods=["GET"])
def view_paste(paste_id: str):
    """Render a paste as HTML, consuming one view. Content is autoescaped."""

    try:
        result = get_paste_service().retrieve_paste(paste_id, now=request_now())
    except PasteNotFoundError:
        return "Paste not found", HTTPStatus.NOT_FOUND, _TEXT_HEADERS

    html = render_template(
        "paste.html",
        content=result.content,
        remaining_views=result.remaining_views,
        expires_at=result.expires_at,
    )
    return html, HTTPStatus.OK, {"Content-Type": "text/html; charset=utf-8"}


@views_bp.errorhandler(Exception)
def handle_unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return exc
    logger.exception(
        "Unhandled error while rendering paste",
        extra=log_fields("paste_view_error", error_type=type(exc).__name__),
    )
    return "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR, _TEXT_HEADERS
