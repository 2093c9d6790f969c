from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# Storage convention: naive datetimes are UTC. Only API output carries "Z".


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', second precision; naive input is taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def run_stamp(dt: Optional[datetime] = None) -> str:
    """Compact sortable stamp (YYYYMMDDHHMMSS) used to tag one import run."""
    return (dt or utcnow()).strftime("%Y%m%d%H%M%S")
