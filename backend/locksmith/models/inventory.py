from __future__ import annotations

from ..extensions import db
from locksmith.time_utils import to_utc_z, utcnow


class InventoryItem(db.Model):
    """
    One stock record.

    SKU DESIGN DECISION:
    InventoryItem.sku is the display label and vendor code. It is unique at
    the store level (uq_inventory_sku) so a duplicate surfaces as an
    IntegrityError, which the service layer turns into ConflictError.

    QUANTITY:
    - quantity is never negative (check constraint + service validation)
    - total_cost_value_cents is derived (cost_cents * quantity) and is
      recomputed by the service whenever either side changes
    - only the Status Engine decides the next quantity
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_inventory_sku"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonneg"),
        db.CheckConstraint("cost_cents IS NULL OR cost_cents >= 0", name="ck_inventory_cost_nonneg"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_inventory_threshold_nonneg"),
        db.Index("ix_inventory_make", "make"),
        db.Index("ix_inventory_supplier", "supplier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    category = db.Column(db.String(120), nullable=True)
    make = db.Column(db.String(120), nullable=True)
    module = db.Column(db.String(120), nullable=True)
    supplier = db.Column(db.String(120), nullable=True)
    fcc_id = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents (frontend may only format for display)
    cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_value_cents = db.Column(db.Integer, nullable=True)

    low_stock_threshold = db.Column(db.Integer, nullable=False)

    year_from = db.Column(db.Integer, nullable=True)
    year_to = db.Column(db.Integer, nullable=True)

    usage_count = db.Column(db.Integer, nullable=False, default=0)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    # Python-side defaults: the values are known right after flush, so change
    # capture can snapshot the row without reloading it
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} sku={self.sku!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "description": self.description,
            "category": self.category,
            "make": self.make,
            "module": self.module,
            "supplier": self.supplier,
            "fcc_id": self.fcc_id,
            "quantity": self.quantity,
            "cost_cents": self.cost_cents,
            "total_cost_value_cents": self.total_cost_value_cents,
            "low_stock_threshold": self.low_stock_threshold,
            "year_from": self.year_from,
            "year_to": self.year_to,
            "usage_count": self.usage_count,
            "last_used_at": to_utc_z(self.last_used_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_record(self):
        from ..services.inventory_filters import StockRecord
        return StockRecord.from_row(self.to_dict())
