# backend/locksmith/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/locksmith.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///locksmith.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Single source for the low-stock boundary. Items created without an
    # explicit threshold get this value, and classification falls back to it.
    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "3"))

    # Make assigned to vendor rows whose name carries no brand token
    CSV_DEFAULT_MAKE = os.environ.get("CSV_DEFAULT_MAKE", "Universal")

    # Per-subscription buffer; overflow disconnects the subscriber (it resyncs)
    CHANGE_FEED_QUEUE_SIZE = int(os.environ.get("CHANGE_FEED_QUEUE_SIZE", "1000"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("LOG_JSON", True)

    # Browser origins allowed to call the JSON API (local dev frontends)
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
