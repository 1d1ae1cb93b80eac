from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from datetime import datetime

from pastelite.domain.models import PasteSnapshot
from pastelite.domain.policy import is_unavailable
from pastelite.observability import log_fields
from pastelite.repositories.base import PasteRepository, check_required_fields
from pastelite.repositories.exceptions import InvalidRecordError, PasteRecordNotFound


logger = logging.getLogger(__name__)


class InMemoryPasteRepository(PasteRepository):
    """
    Process-local paste store.

    Each paste has its own lock; ``consume_view`` checks availability and
    increments the counter while holding it. Only suitable for a single
    process (tests, local development).
    """

    def __init__(self) -> None:
        self._records: dict[uuid.UUID, PasteSnapshot] = {}
        self._locks: dict[uuid.UUID, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def insert(self, paste: PasteSnapshot) -> uuid.UUID:
        check_required_fields(paste)
        with self._registry_lock:
            if paste.id in self._records:
                raise InvalidRecordError(f"Paste with id {paste.id} already exists.")
            self._records[paste.id] = paste
            self._locks[paste.id] = threading.Lock()
        return paste.id

    def get(self, paste_id: uuid.UUID) -> PasteSnapshot:
        try:
            return self._records[paste_id]
        except KeyError:
            raise PasteRecordNotFound(f"Paste with id {paste_id} not found.") from None

    def consume_view(self, paste_id: uuid.UUID, now: datetime) -> PasteSnapshot:
        lock = self._locks.get(paste_id)
        if lock is None:
            raise PasteRecordNotFound(f"Paste with id {paste_id} not found.")

        with lock:
            current = self._records[paste_id]
            if is_unavailable(current, now):
                raise PasteRecordNotFound(f"Paste with id {paste_id} not available.")
            updated = dataclasses.replace(current, view_count=current.view_count + 1)
            self._records[paste_id] = updated

        logger.info(
            "Paste view consumed",
            extra=log_fields(
                "paste_view_consumed",
                paste_id=paste_id,
                view_count=updated.view_count,
            ),
        )
        return updated

    def ping(self) -> None:
        return None
