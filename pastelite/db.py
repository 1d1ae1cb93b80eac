from __future__ import annotations

from typing import Any

from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def build_engine(
    database_uri: str,
    *,
    echo: bool = False,
    future: bool = True,
    connect_timeout: int | None = None,
    pool_timeout: int | None = None,
    statement_timeout_ms: int | None = None,
) -> Engine:
    """
    Create a SQLAlchemy engine with bounded connect and statement timeouts.

    In-memory SQLite databases are pinned to a single shared connection so
    that every session (and every thread) sees the same data.
    """

    url = make_url(database_uri)
    kwargs: dict[str, Any] = {"future": future, "echo": echo}
    connect_args: dict[str, Any] = {}

    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if connect_timeout:
            connect_args["timeout"] = connect_timeout
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        if pool_timeout:
            kwargs["pool_timeout"] = pool_timeout
        kwargs["pool_pre_ping"] = True
        if url.get_backend_name() == "postgresql":
            if connect_timeout:
                connect_args["connect_timeout"] = connect_timeout
            if statement_timeout_ms:
                connect_args["options"] = f"-c statement_timeout={statement_timeout_ms}"

    if connect_args:
        kwargs["connect_args"] = connect_args
    return create_engine(url, **kwargs)


def init_db(app: Flask) -> sessionmaker:
    """
    Initialize the SQLAlchemy engine and session factory for the Flask app.

    Reads the database URL from ``app.config['SQLALCHEMY_DATABASE_URI']``.
    The engine lives in ``app.extensions["pastelite"]`` and is disposed of by
    whoever owns the app; there is no module-level engine.
    """

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if not database_uri:
        raise RuntimeError(
            "SQLALCHEMY_DATABASE_URI is not configured on the Flask app."
        )

    engine = build_engine(
        database_uri,
        echo=app.config.get("SQLALCHEMY_ECHO", False),
        future=app.config.get("SQLALCHEMY_FUTURE", True),
        connect_timeout=app.config.get("DB_CONNECT_TIMEOUT"),
        pool_timeout=app.config.get("DB_POOL_TIMEOUT"),
        statement_timeout_ms=app.config.get("DB_STATEMENT_TIMEOUT_MS"),
    )

    if app.config.get("AUTO_CREATE_SCHEMA", False):
        # Models must be imported so that Base.metadata knows the tables.
        from pastelite.domain import models as _models  # noqa: F401

        Base.metadata.create_all(engine)

    session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )

    state = app.extensions.setdefault("pastelite", {})
    state["engine"] = engine
    state["session_factory"] = session_factory
    return session_factory
