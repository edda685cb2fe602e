# backend/stockcore/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the process unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # production: postgresql+psycopg://...
        "sqlite:///stockcore.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("STOCKCORE_LOG_LEVEL", "INFO")
