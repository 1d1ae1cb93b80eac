from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from sqlalchemy.orm import sessionmaker

from pastelite.db import Base, build_engine
from pastelite.domain import models as _models  # noqa: F401
from pastelite.repositories.memory_repository import InMemoryPasteRepository
from pastelite.repositories.paste_repository import SqlAlchemyPasteRepository
from pastelite.services.paste_service import PasteService


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock injected into the service."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def engine() -> Generator:
    """
    Create a fresh in-memory SQLite engine for each test function.

    A single shared connection backs every session, so data committed in one
    session is visible to the next.
    """

    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def file_engine(tmp_path) -> Generator:
    """File-backed SQLite engine; each thread gets its own connection."""

    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'pastes.db'}", connect_timeout=30)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def sql_repo(session_factory) -> SqlAlchemyPasteRepository:
    return SqlAlchemyPasteRepository(session_factory=session_factory)


@pytest.fixture(params=["sqlalchemy", "memory"])
def repository(request, session_factory):
    """Every repository implementation must honor the same contract."""

    if request.param == "memory":
        return InMemoryPasteRepository()
    return SqlAlchemyPasteRepository(session_factory=session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def paste_service(repository, clock) -> PasteService:
    return PasteService(repository=repository, clock=clock)
