from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from pastelite.domain.models import PasteSnapshot
from pastelite.domain.policy import (
    InvalidPasteStateTransition,
    PasteState,
    derive_state,
    ensure_utc,
    remaining_views,
    utcnow,
    validate_transition,
)
from pastelite.observability import log_fields
from pastelite.repositories.base import PasteRepository
from pastelite.repositories.exceptions import PasteRecordNotFound


logger = logging.getLogger(__name__)


CONTENT_MESSAGE = "content is required and must be a non-empty string"
TTL_MESSAGE = "ttl_seconds must be an integer >= 1"
MAX_VIEWS_MESSAGE = "max_views must be an integer >= 1"

FIELD_MESSAGES = {
    "content": CONTENT_MESSAGE,
    "ttl_seconds": TTL_MESSAGE,
    "max_views": MAX_VIEWS_MESSAGE,
}


class PasteError(Exception):
    """Base class for paste-related errors."""


class InvalidPasteParameters(PasteError):
    """Raised when creating a paste with invalid parameters."""

    def __init__(self, field: str, message: Optional[str] = None) -> None:
        self.field = field
        self.message = message or FIELD_MESSAGES.get(field, f"{field} is invalid")
        super().__init__(self.message)


class PasteNotFoundError(PasteError):
    """
    Raised when a paste cannot be served.

    Covers unknown ids, malformed ids, expired pastes and pastes whose view
    limit is used up; callers cannot tell these apart.
    """


@dataclass(frozen=True)
class CreatedPaste:
    id: uuid.UUID
    created_at: datetime
    expires_at: Optional[datetime]


@dataclass(frozen=True)
class RetrievalResult:
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "remaining_views": self.remaining_views,
            "expires_at": self.expires_at,
        }


# Upper bound for ttl_seconds and max_views: the range of a 32-bit signed
# INTEGER column, which every supported database can store.
MAX_LIMIT = 2**31 - 1


def _is_bounded_positive_int(value: Any) -> bool:
    # bool is an int subclass; True is not a view count.
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 1 <= value <= MAX_LIMIT
    )


def parse_paste_id(raw: Any) -> uuid.UUID:
    """Parse a paste id, reporting any malformed input as not found."""
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        raise PasteNotFoundError("Paste not found.") from None


@dataclass
class PasteService:
    """
    Application service coordinating paste-related use cases.

    The repository is injected once and shared across requests. ``clock``
    supplies "now" whenever a caller does not pass an explicit time.
    """

    repository: PasteRepository
    clock: Callable[[], datetime] = field(default=utcnow)

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now if now is not None else self.clock())

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------
    def create_paste(
        self,
        content: Any,
        ttl_seconds: Any = None,
        max_views: Any = None,
        *,
        now: Optional[datetime] = None,
    ) -> CreatedPaste:
        """
        Create a new paste enforcing business rules:

        - ``content`` must be a string that is non-empty after trimming
        - ``ttl_seconds`` (if provided) must be an integer in 1..MAX_LIMIT and
          ``created_at + ttl_seconds`` must be a representable datetime
        - ``max_views`` (if provided) must be an integer in 1..MAX_LIMIT

        ``expires_at`` is derived here, once, from the creation time.
        """
        if not isinstance(content, str) or not content.strip():
            self._reject("content")
        if ttl_seconds is not None and not _is_bounded_positive_int(ttl_seconds):
            self._reject("ttl_seconds")
        if max_views is not None and not _is_bounded_positive_int(max_views):
            self._reject("max_views")

        created_at = self._now(now)
        expires_at = None
        if ttl_seconds is not None:
            try:
                expires_at = created_at + timedelta(seconds=ttl_seconds)
            except OverflowError:
                self._reject("ttl_seconds")

        paste_id = self.repository.insert(
            PasteSnapshot(
                id=uuid.uuid4(),
                content=content,
                created_at=created_at,
                expires_at=expires_at,
                max_views=max_views,
                view_count=0,
                ttl_seconds=ttl_seconds,
            )
        )
        logger.info(
            "Paste created",
            extra=log_fields("paste_created", paste_id=paste_id),
        )
        return CreatedPaste(id=paste_id, created_at=created_at, expires_at=expires_at)

    def _reject(self, field_name: str) -> None:
        logger.warning(
            "Invalid %s when creating paste",
            field_name,
            extra=log_fields("paste_create_invalid_parameters"),
        )
        raise InvalidPasteParameters(field_name)

    # -------------------------------------------------------------------------
    # Retrieval / viewing
    # -------------------------------------------------------------------------
    def retrieve_paste(
        self,
        paste_id: Any,
        *,
        now: Optional[datetime] = None,
    ) -> RetrievalResult:
        """
        Retrieve a paste for viewing, consuming one view.

        Rules:
        - malformed, unknown, expired or exhausted ids → PasteNotFoundError
        - otherwise the view is counted and the content delivered, including
          the view that reaches ``max_views``; the next one is refused
        """
        uid = parse_paste_id(paste_id)
        now_utc = self._now(now)

        try:
            snapshot = self.repository.consume_view(uid, now_utc)
        except PasteRecordNotFound:
            logger.info(
                "Paste not available",
                extra=log_fields("paste_not_found", paste_id=uid),
            )
            raise PasteNotFoundError("Paste not found.") from None

        self._record_transition(snapshot, now_utc)

        return RetrievalResult(
            content=snapshot.content,
            remaining_views=remaining_views(snapshot),
            expires_at=snapshot.expires_at,
        )

    def _record_transition(self, snapshot: PasteSnapshot, now: datetime) -> None:
        """Log the state change caused by the view just consumed, if any."""
        before = derive_state(
            dataclasses.replace(snapshot, view_count=snapshot.view_count - 1), now
        )
        after = derive_state(snapshot, now)
        # consume_view only ever counts views of ACTIVE pastes.
        if before is not PasteState.ACTIVE:
            raise InvalidPasteStateTransition(
                f"Paste {snapshot.id} served a view while {before.value}."
            )
        validate_transition(before, after)
        if before is after:
            return
        logger.info(
            "Paste state changed by view",
            extra=log_fields(
                f"paste_{after.value.lower()}",
                paste_id=snapshot.id,
                view_count=snapshot.view_count,
                status_from=before.value,
                status_to=after.value,
            ),
        )

    # -------------------------------------------------------------------------
    # Operational helpers
    # -------------------------------------------------------------------------
    def paste_exists(self, paste_id: Any) -> bool:
        """Existence check that never consumes a view."""
        try:
            uid = parse_paste_id(paste_id)
            self.repository.get(uid)
        except (PasteNotFoundError, PasteRecordNotFound):
            return False
        return True

    def check_store(self) -> None:
        self.repository.ping()
