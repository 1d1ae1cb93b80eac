from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Select, Update, or_, select, text, update
from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from pastelite.domain.models import Paste, PasteSnapshot
from pastelite.domain.policy import ensure_utc
from pastelite.observability import log_fields
from pastelite.repositories.base import PasteRepository, check_required_fields
from pastelite.repositories.exceptions import (
    InvalidRecordError,
    PasteRecordNotFound,
    StoreUnavailableError,
)


logger = logging.getLogger(__name__)

_UNREACHABLE = (OperationalError, InterfaceError, PoolTimeoutError)


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(value).astimezone(timezone.utc)


def _row_to_snapshot(row) -> PasteSnapshot:
    return PasteSnapshot(
        id=row.id,
        content=row.content,
        created_at=ensure_utc(row.created_at),
        expires_at=ensure_utc(row.expires_at),
        max_views=row.max_views,
        view_count=int(row.view_count),
        ttl_seconds=row.ttl_seconds,
    )


class SqlAlchemyPasteRepository(PasteRepository):
    """
    Repository for pastes backed by a SQLAlchemy session factory.

    Every operation runs in its own session: commit on success, roll back on
    error, close in all cases. Connectivity failures surface as
    ``StoreUnavailableError``.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except (IntegrityError, DataError) as exc:
            # Constraint violations and values the column type cannot hold.
            session.rollback()
            raise InvalidRecordError(str(exc.orig)) from exc
        except OverflowError as exc:
            # sqlite3 rejects out-of-range ints before reaching the database.
            session.rollback()
            raise InvalidRecordError(str(exc)) from exc
        except _UNREACHABLE as exc:
            session.rollback()
            logger.error(
                "Paste store unreachable",
                extra=log_fields(
                    "paste_store_unavailable", error_type=type(exc).__name__
                ),
            )
            raise StoreUnavailableError("Paste store is unavailable.") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def insert(self, paste: PasteSnapshot) -> uuid.UUID:
        """
        Create and persist a new Paste.

        ``expires_at`` is stored exactly as computed by the caller.
        """

        check_required_fields(paste)
        with self._session_scope() as session:
            record = Paste(
                id=paste.id,
                content=paste.content,
                ttl_seconds=paste.ttl_seconds,
                max_views=paste.max_views,
                view_count=paste.view_count,
                created_at=_to_utc(paste.created_at),
                expires_at=_to_utc(paste.expires_at),
            )
            session.add(record)
            # Flush so constraint violations are raised inside the scope.
            session.flush()
        return paste.id

    def get(self, paste_id: uuid.UUID) -> PasteSnapshot:
        """Return a paste by its id or raise ``PasteRecordNotFound``."""

        with self._session_scope() as session:
            stmt: Select[tuple[Paste]] = select(Paste).where(Paste.id == paste_id)
            record = session.execute(stmt).scalar_one_or_none()
            if record is None:
                raise PasteRecordNotFound(f"Paste with id {paste_id} not found.")
            return _row_to_snapshot(record)

    def consume_view(self, paste_id: uuid.UUID, now: datetime) -> PasteSnapshot:
        """
        Atomically increment the view count of an available Paste.

        Availability is part of the UPDATE's WHERE clause, so the check and
        the increment happen in a single statement: concurrent callers are
        serialized by the row lock and each sees a distinct counter value.
        A dead paste is never incremented.
        """

        now_utc = _to_utc(now)
        stmt: Update = (
            update(Paste)
            .where(
                Paste.id == paste_id,
                or_(Paste.expires_at.is_(None), Paste.expires_at >= now_utc),
                or_(Paste.max_views.is_(None), Paste.view_count < Paste.max_views),
            )
            .values(view_count=Paste.view_count + 1)
            .returning(
                Paste.id,
                Paste.content,
                Paste.created_at,
                Paste.expires_at,
                Paste.max_views,
                Paste.view_count,
                Paste.ttl_seconds,
            )
            .execution_options(synchronize_session=False)
        )

        with self._session_scope() as session:
            row = session.execute(stmt).one_or_none()

        if row is None:
            raise PasteRecordNotFound(f"Paste with id {paste_id} not available.")

        snapshot = _row_to_snapshot(row)
        logger.info(
            "Paste view consumed",
            extra=log_fields(
                "paste_view_consumed",
                paste_id=paste_id,
                view_count=snapshot.view_count,
            ),
        )
        return snapshot

    def ping(self) -> None:
        with self._session_scope() as session:
            session.execute(text("SELECT 1"))
