# backend/stockcore/__init__.py
from __future__ import annotations

from pathlib import Path

from flask import Flask

from .config import Config
from .extensions import db, migrate

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    return app
