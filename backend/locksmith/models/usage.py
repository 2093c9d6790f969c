from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from locksmith.time_utils import to_utc_z, utcnow


class InventoryUsage(db.Model):
    """
    Immutable consumption event against an inventory item (and optionally a job).

    COST SNAPSHOT:
    unit_cost_cents_at_use / total_cost_cents_at_use are copied from the item
    at the moment of use and never recomputed. Later price edits on the item
    do not change historical job costing.

    job_id is an opaque reference owned by the job domain (no FK).
    """
    __tablename__ = "inventory_usage"
    __table_args__ = (
        db.CheckConstraint("quantity_used > 0", name="ck_inventory_usage_qty_positive"),
        db.Index("ix_inventory_usage_job", "job_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    inventory_id = db.Column(
        db.Integer,
        db.ForeignKey("inventory.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    job_id = db.Column(db.String(64), nullable=True)

    quantity_used = db.Column(db.Integer, nullable=False)
    unit_cost_cents_at_use = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents_at_use = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized so the ledger line stays readable after the item is deleted
    sku_at_use = db.Column(db.String(128), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryUsage id={self.id} inventory_id={self.inventory_id} "
            f"job_id={self.job_id!r} quantity_used={self.quantity_used}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "job_id": self.job_id,
            "quantity_used": self.quantity_used,
            "unit_cost_cents_at_use": self.unit_cost_cents_at_use,
            "total_cost_cents_at_use": self.total_cost_cents_at_use,
            "sku_at_use": self.sku_at_use,
            "notes": self.notes,
            "used_at": to_utc_z(self.used_at),
        }


@event.listens_for(InventoryUsage, "before_update")
def prevent_usage_update(mapper, connection, target):
    """Usage rows are written once; any UPDATE flush is refused.

    Detaching rows from a deleted item is a bulk UPDATE issued by
    inventory_service.delete_item; bulk statements bypass the flush and
    never reach this listener.
    """
    raise ImmutableRecordError(
        f"usage event {target.id} is immutable",
        entity_type="inventory_usage",
        entity_id=target.id,
    )
