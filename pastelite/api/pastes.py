from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Blueprint, current_app, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from pastelite.api.context import get_paste_service, request_now
from pastelite.api.schemas import (
    HealthResponse,
    PasteCreateRequest,
    PasteCreatedResponse,
    PasteViewResponse,
)
from pastelite.observability import log_fields
from pastelite.repositories.exceptions import RepositoryError
from pastelite.services.paste_service import (
    FIELD_MESSAGES,
    InvalidPasteParameters,
    PasteNotFoundError,
)


logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

NOT_FOUND_BODY = {"error": "Paste not found"}
INTERNAL_ERROR_BODY = {"error": "Internal server error"}


def _share_url(paste_id: str) -> str:
    base = current_app.config.get("PUBLIC_BASE_URL") or request.host_url
    return f"{base.rstrip('/')}/p/{paste_id}"


@api_bp.route("/healthz", methods=["GET"])
def healthz() -> tuple[dict, int]:
    """Health check: verifies the store answers, nothing else."""

    try:
        get_paste_service().check_store()
    except RepositoryError:
        logger.exception(
            "Health check failed",
            extra=log_fields("health_check_failed"),
        )
        return HealthResponse(ok=False).model_dump(), HTTPStatus.INTERNAL_SERVER_ERROR
    return HealthResponse().model_dump(), HTTPStatus.OK


@api_bp.route("/pastes", methods=["POST"])
def create_paste() -> tuple[dict, int]:
    """
    Create a new paste.

    Shape is checked by Pydantic with strict types; business rules by the
    service layer. Both report the same per-field messages.
    """
    try:
        payload = PasteCreateRequest.model_validate(request.get_json(silent=True))
    except ValidationError as exc:
        errors = exc.errors()
        loc = errors[0]["loc"] if errors else ()
        field_name = loc[0] if loc and loc[0] in FIELD_MESSAGES else "content"
        return {"error": FIELD_MESSAGES[field_name]}, HTTPStatus.BAD_REQUEST

    try:
        created = get_paste_service().create_paste(
            payload.content,
            ttl_seconds=payload.ttl_seconds,
            max_views=payload.max_views,
            now=request_now(),
        )
    except InvalidPasteParameters as exc:
        return {"error": exc.message}, HTTPStatus.BAD_REQUEST

    paste_id = str(created.id)
    body = PasteCreatedResponse(id=paste_id, url=_share_url(paste_id))
    return body.model_dump(), HTTPStatus.CREATED


@api_bp.route("/pastes/<paste_id>", methods=["GET"])
def get_paste(paste_id: str) -> tuple[dict, int]:
    """Return paste content as JSON, consuming one view."""

    try:
        result = get_paste_service().retrieve_paste(paste_id, now=request_now())
    except PasteNotFoundError:
        return NOT_FOUND_BODY, HTTPStatus.NOT_FOUND

    body = PasteViewResponse(**result.to_dict())
    return body.model_dump(mode="json"), HTTPStatus.OK


@api_bp.errorhandler(Exception)
def handle_unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return exc
    logger.exception(
        "Unhandled error while serving paste API request",
        extra=log_fields("paste_api_error", error_type=type(exc).__name__),
    )
    return INTERNAL_ERROR_BODY, HTTPStatus.INTERNAL_SERVER_ERROR
