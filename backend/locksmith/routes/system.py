# backend/locksmith/routes/system.py
"""
Health endpoint: the store answers a count and the change feed is installed.
200 when both pass, 503 otherwise.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryItem
from locksmith.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def check_store() -> dict:
    started = time.perf_counter()
    try:
        count = db.session.query(InventoryItem).count()
    except SQLAlchemyError:
        current_app.logger.exception("store health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}
    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": {"inventory_items": count}}


def check_change_feed() -> dict:
    feed = current_app.extensions.get("change_feed")
    if feed is None:
        return {"status": "unhealthy", "error": "Change feed not installed"}
    return {"status": "healthy", "details": {"subscribers": feed.subscriber_count()}}


@system_bp.get("/health")
def health():
    started = time.perf_counter()
    checks = {"database": check_store(), "change_feed": check_change_feed()}
    healthy = all(c["status"] == "healthy" for c in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(started),
        "checks": checks,
    }
    return body, 200 if healthy else 503
