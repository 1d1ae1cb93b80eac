from __future__ import annotations

import abc
import uuid
from datetime import datetime

from pastelite.domain.models import PasteSnapshot
from pastelite.repositories.exceptions import InvalidRecordError


_REQUIRED_FIELDS = ("id", "content", "created_at")


def check_required_fields(paste: PasteSnapshot) -> None:
    """Raise ``InvalidRecordError`` if a snapshot lacks a required field."""
    missing = [name for name in _REQUIRED_FIELDS if getattr(paste, name, None) is None]
    if missing:
        raise InvalidRecordError(
            f"Paste record is missing required fields: {', '.join(missing)}."
        )


class PasteRepository(abc.ABC):
    """
    Storage contract for pastes.

    ``consume_view`` is the only operation allowed to change ``view_count``
    and must do so atomically per paste id.
    """

    @abc.abstractmethod
    def insert(self, paste: PasteSnapshot) -> uuid.UUID:
        """Persist a new paste and return its id."""

    @abc.abstractmethod
    def get(self, paste_id: uuid.UUID) -> PasteSnapshot:
        """Return the stored paste without side effects."""

    @abc.abstractmethod
    def consume_view(self, paste_id: uuid.UUID, now: datetime) -> PasteSnapshot:
        """
        Account for one view of an available paste.

        Returns the post-increment snapshot. Raises ``PasteRecordNotFound``
        when the paste is absent or already unavailable at ``now``; in that
        case nothing is incremented.
        """

    @abc.abstractmethod
    def ping(self) -> None:
        """Raise ``StoreUnavailableError`` if the store cannot be reached."""
