from __future__ import annotations

from ..extensions import db
from locksmith.time_utils import to_utc_z, utcnow


class ActivityLog(db.Model):
    """
    Append-only record of inventory actions.

    - Written inside the same DB transaction as the action it records.
    - No updates/deletes.
    - occurred_at is business time.
    """
    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("ix_activity_log_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    action_type = db.Column(db.String(32), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    entity_name = db.Column(db.String(255), nullable=True)
    description = db.Column(db.String(500), nullable=False)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} {self.action_type} {self.entity_type}:{self.entity_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "description": self.description,
            "metadata": self.metadata_json,
            "occurred_at": to_utc_z(self.occurred_at),
        }
