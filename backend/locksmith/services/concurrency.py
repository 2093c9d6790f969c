# Overview: Row locking and retry helpers for inventory writes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE = (OperationalError, StaleDataError)


def lock_for_update(query):
    """SELECT ... FOR UPDATE on engines that support it; a no-op on SQLite."""
    return query.with_for_update()


def run_with_retry(op, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``op`` as one unit of work, retrying lock timeouts and version_id
    conflicts with exponential backoff.

    Any other exception (domain errors included) rolls the session back and
    propagates on the first attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            return op()
        except RETRYABLE as exc:
            db.session.rollback()
            logger.warning(
                "retrying after concurrency failure",
                extra={"attempt": attempt, "attempts": attempts, "error": type(exc).__name__},
            )
            if attempt == attempts:
                raise
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise
