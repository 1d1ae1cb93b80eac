from __future__ import annotations

import os
from typing import Any, Mapping

from flask import Flask
from flask_cors import CORS

from .config import get_config
from .db import init_db
from .observability import init_observability
from .repositories.base import PasteRepository
from .repositories.memory_repository import InMemoryPasteRepository
from .repositories.paste_repository import SqlAlchemyPasteRepository
from .services.paste_service import PasteService


def _build_repository(app: Flask) -> PasteRepository:
    backend = app.config.get("STORE_BACKEND", "sqlalchemy")
    if backend == "memory":
        return InMemoryPasteRepository()
    if backend == "sqlalchemy":
        return SqlAlchemyPasteRepository(session_factory=init_db(app))
    raise RuntimeError(f"Unknown STORE_BACKEND {backend!r}.")


def create_app(
    env_name: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Flask:
    """
    Application factory for the Flask backend.

    The configuration is selected based on the provided ``env_name`` or,
    if not given, the ``APP_ENV`` environment variable (falling back to
    ``development``). ``overrides`` are applied on top of it.

    The repository and service are built once here and kept in
    ``app.extensions["pastelite"]`` for the lifetime of the app.
    """
    if env_name is None:
        env_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app_config = get_config(env_name)
    app.config.from_object(app_config)
    if overrides:
        app.config.update(overrides)

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Initialize infrastructure layers
    init_observability(app)
    repository = _build_repository(app)
    state = app.extensions.setdefault("pastelite", {})
    state["repository"] = repository
    state["paste_service"] = PasteService(repository=repository)

    # Register blueprints
    from .api.pastes import api_bp
    from .api.views import views_bp

    app.register_blueprint(api_bp)
    app.register_blueprint(views_bp)

    return app
