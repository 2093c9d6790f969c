# Overview: Usage ledger; records consumption against jobs with cost snapshots.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, InventoryUsage
from ..errors import InsufficientStockError, InvalidQuantityError, NotFoundError, StaleQuantityError
from locksmith.time_utils import utcnow
from .activity_service import append_activity
from .concurrency import lock_for_update, run_with_retry
from .stock_status import adjust_quantity, validate_expected_quantity
"""
Usage Ledger Invariants (authoritative)

- One InventoryUsage row per consumption action; rows are immutable.
- quantity_used must be a positive integer (InvalidQuantityError otherwise)
  and may not exceed the item's quantity at the time of recording
  (InsufficientStockError). Neither case is clamped.
- unit_cost_cents_at_use = item.cost_cents or 0, snapshotted at use;
  total_cost_cents_at_use = unit * quantity_used. Never recomputed.
- The ledger insert and the item decrement commit in one DB transaction.
  A failure after the insert rolls back both; there is no state where stock
  moved without a ledger row or the reverse.
"""

logger = logging.getLogger(__name__)


def _validate_quantity_used(quantity_used) -> int:
    if isinstance(quantity_used, bool) or not isinstance(quantity_used, int):
        raise InvalidQuantityError("quantity_used must be an integer", quantity_used=quantity_used)
    if quantity_used <= 0:
        raise InvalidQuantityError("quantity_used must be > 0", quantity_used=quantity_used)
    return quantity_used


def record_usage(
    item_id: int,
    quantity_used: int,
    *,
    job_id: str | None = None,
    notes: str | None = None,
    expected_quantity: int | None = None,
) -> InventoryUsage:
    """
    Consume stock against an optional job.

    Raises:
        InvalidQuantityError: quantity_used <= 0 or not an integer
        InsufficientStockError: quantity_used > item.quantity
        StaleQuantityError: expected_quantity given and the stored value differs
        NotFoundError: no such item
    """
    quantity_used = _validate_quantity_used(quantity_used)
    expected_quantity = validate_expected_quantity(expected_quantity)
    job_ref = str(job_id).strip() if job_id is not None and str(job_id).strip() else None

    def _op():
        item = lock_for_update(
            db.session.query(InventoryItem).filter(InventoryItem.id == item_id)
        ).first()
        if item is None:
            raise NotFoundError("inventory item not found", item_id=item_id)

        if expected_quantity is not None and item.quantity != expected_quantity:
            raise StaleQuantityError(item.id, expected_quantity, item.quantity)

        if quantity_used > item.quantity:
            raise InsufficientStockError(item.id, quantity_used, item.quantity)

        unit_cost = item.cost_cents or 0
        now = utcnow()

        usage = InventoryUsage(
            inventory_id=item.id,
            job_id=job_ref,
            quantity_used=quantity_used,
            unit_cost_cents_at_use=unit_cost,
            total_cost_cents_at_use=unit_cost * quantity_used,
            sku_at_use=item.sku,
            notes=notes,
            used_at=now,
        )
        db.session.add(usage)

        level = adjust_quantity(item, item.quantity - quantity_used)
        item.quantity = level.quantity
        item.total_cost_value_cents = level.total_cost_value_cents
        item.usage_count = (item.usage_count or 0) + 1
        item.last_used_at = now
        db.session.flush()

        append_activity(
            action_type="usage",
            entity_id=item.id,
            entity_name=item.sku,
            description=f'{quantity_used} x "{item.sku}" used' + (f" on job {job_ref}" if job_ref else ""),
            metadata={"usage_id": usage.id, "job_id": job_ref, "quantity_used": quantity_used},
            occurred_at=now,
        )

        db.session.commit()
        logger.info(
            "inventory usage recorded",
            extra={
                "item_id": item.id,
                "usage_id": usage.id,
                "job_id": job_ref,
                "quantity_used": quantity_used,
                "remaining": item.quantity,
            },
        )
        return usage

    return run_with_retry(_op)


def list_usage(*, item_id: int | None = None, job_id: str | None = None) -> list[InventoryUsage]:
    query = db.session.query(InventoryUsage)
    if item_id is not None:
        query = query.filter(InventoryUsage.inventory_id == item_id)
    if job_id is not None:
        query = query.filter(InventoryUsage.job_id == str(job_id))
    return query.order_by(InventoryUsage.used_at.asc(), InventoryUsage.id.asc()).all()


def job_material_cost(job_id: str) -> dict:
    """Aggregated material cost for one job, read from the snapshots."""
    job_ref = str(job_id)
    total = (
        db.session.query(func.coalesce(func.sum(InventoryUsage.total_cost_cents_at_use), 0))
        .filter(InventoryUsage.job_id == job_ref)
        .scalar()
    )
    lines = list_usage(job_id=job_ref)
    return {
        "job_id": job_ref,
        "material_cost_cents": int(total or 0),
        "line_count": len(lines),
        "lines": [u.to_dict() for u in lines],
    }
