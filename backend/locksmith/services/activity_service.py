# Overview: Append-only activity trail for inventory actions.

from __future__ import annotations

from typing import Any, Optional
from datetime import datetime

from ..extensions import db
from ..models import ActivityLog
"""
Activity Log Invariants

- Append-only; rows are never updated or deleted.
- Entries are added inside the caller's DB transaction (flush, no commit),
  so an action and its activity row commit or roll back together.
"""

ACTION_TYPES = {"create", "update", "delete", "adjust", "usage", "import"}


def append_activity(
    *,
    action_type: str,
    description: str,
    entity_type: str = "inventory",
    entity_id: int | None = None,
    entity_name: str | None = None,
    metadata: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> ActivityLog:
    if action_type not in ACTION_TYPES:
        raise ValueError(f"unknown action_type: {action_type}")

    entry = ActivityLog(
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        description=description,
        metadata_json=metadata,
    )
    if occurred_at is not None:
        entry.occurred_at = occurred_at
    db.session.add(entry)
    db.session.flush()
    return entry


def list_activity(*, entity_type: str | None = None, entity_id: int | None = None, limit: int = 100) -> list[dict]:
    query = db.session.query(ActivityLog)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(ActivityLog.entity_id == entity_id)
    rows = (
        query.order_by(ActivityLog.occurred_at.desc(), ActivityLog.id.desc())
        .limit(max(1, min(500, int(limit or 100))))
        .all()
    )
    return [r.to_dict() for r in rows]
