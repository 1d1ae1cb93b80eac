"""
Lifecycle rules for pastes.

Everything here is a pure function of a paste snapshot and a reference time.
Availability is always recomputed from ``expires_at``, ``max_views`` and
``view_count``; it is never stored.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol


class PasteLike(Protocol):
    expires_at: Optional[datetime]
    max_views: Optional[int]
    view_count: int


class PasteState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXHAUSTED = "EXHAUSTED"
    EXPIRED = "EXPIRED"


class InvalidPasteStateTransition(Exception):
    """Raised when an invalid state transition is requested for a Paste."""


# Both unavailable states are terminal.
_ALLOWED_TRANSITIONS: set[tuple[PasteState, PasteState]] = {
    (PasteState.ACTIVE, PasteState.EXHAUSTED),
    (PasteState.ACTIVE, PasteState.EXPIRED),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (as read back from SQLite)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_expired(paste: PasteLike, now: Optional[datetime] = None) -> bool:
    """
    True iff the paste has an expiry and ``now`` is strictly past it.

    A read at exactly ``expires_at`` is still valid.
    """

    if paste.expires_at is None:
        return False
    if now is None:
        now = utcnow()
    return ensure_utc(now) > ensure_utc(paste.expires_at)


def has_exceeded_views(paste: PasteLike) -> bool:
    if paste.max_views is None:
        return False
    return paste.view_count >= paste.max_views


def is_unavailable(paste: PasteLike, now: Optional[datetime] = None) -> bool:
    return is_expired(paste, now) or has_exceeded_views(paste)


def remaining_views(paste: PasteLike) -> Optional[int]:
    """Views left after the recorded ones; ``None`` means unlimited."""
    if paste.max_views is None:
        return None
    return max(0, paste.max_views - paste.view_count)


def derive_state(paste: PasteLike, now: Optional[datetime] = None) -> PasteState:
    if is_expired(paste, now):
        return PasteState.EXPIRED
    if has_exceeded_views(paste):
        return PasteState.EXHAUSTED
    return PasteState.ACTIVE


def _coerce_state(value: PasteState | str) -> PasteState:
    """Normalize incoming state values to ``PasteState``."""
    if isinstance(value, PasteState):
        return value
    try:
        return PasteState(value)
    except ValueError as exc:
        valid: Iterable[str] = (s.value for s in PasteState)
        raise InvalidPasteStateTransition(
            f"Unknown paste state {value!r}. Valid states: {', '.join(valid)}"
        ) from exc


def validate_transition(
    current_state: PasteState | str,
    next_state: PasteState | str,
) -> None:
    """
    Validate a transition between two Paste states.

    - Allowed transitions: ACTIVE → EXHAUSTED, ACTIVE → EXPIRED.
    - Anything leaving EXHAUSTED or EXPIRED raises
      ``InvalidPasteStateTransition``.
    - A "no-op" transition (``current_state == next_state``) is always allowed.
    """

    current = _coerce_state(current_state)
    target = _coerce_state(next_state)

    if current is target:
        return

    if (current, target) not in _ALLOWED_TRANSITIONS:
        raise InvalidPasteStateTransition(
            f"Cannot transition Paste from {current.value} to {target.value}."
        )
