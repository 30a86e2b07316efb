# backend/lotledger/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file next to the instance folder unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///lotledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Whole-operation retries for optimistic concurrency conflicts
    CONFIRM_RETRY_ATTEMPTS = int(os.environ.get("CONFIRM_RETRY_ATTEMPTS", "3"))
    CONFIRM_RETRY_BACKOFF = float(os.environ.get("CONFIRM_RETRY_BACKOFF", "0.1"))
