from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from pastelite.db import Base


@dataclass(frozen=True)
class PasteSnapshot:
    """
    Immutable view of a paste's recorded state at one point in time.

    Repositories accept and return snapshots; ORM entities never leave the
    storage layer.
    """

    id: uuid.UUID
    content: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    view_count: int = 0
    ttl_seconds: Optional[int] = None


class Paste(Base):
    """Paste entity persisted via SQLAlchemy."""

    __tablename__ = "pastes"
    __table_args__ = (
        CheckConstraint(
            "max_views IS NULL OR max_views >= 1",
            name="ck_pastes_max_views_min_1",
        ),
        CheckConstraint(
            "ttl_seconds IS NULL OR ttl_seconds >= 1",
            name="ck_pastes_ttl_seconds_min_1",
        ),
        CheckConstraint(
            "view_count >= 0",
            name="ck_pastes_view_count_non_negative",
        ),
        Index("ix_pastes_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    ttl_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_views: Mapped[int | None] = mapped_column(Integer, nullable=True)
    view_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @validates("content", "expires_at")
    def _validate_write_once(self, key: str, value):
        """
        Enforce that ``content`` and ``expires_at`` are immutable after
        initial creation.

        The value can be set on new instances, but any subsequent attempt to
        change it will raise an error.
        """

        current = self.__dict__.get(key)
        if current is not None and current != value:
            raise ValueError(f"Paste {key} is immutable and cannot be modified.")
        return value
