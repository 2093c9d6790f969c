# Overview: Service-layer operations for inventory items; encapsulates business logic and database work.

# backend/locksmith/services/inventory_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryItem, InventoryUsage
from ..errors import ConflictError, NotFoundError, StaleQuantityError, ValidationError
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_inventory_item
from .activity_service import append_activity
from .concurrency import lock_for_update, run_with_retry
from .stock_status import adjust_quantity, apply_delta, default_threshold, validate_expected_quantity
"""
Inventory Item Invariants (authoritative)

Store semantics:
- The database is the system of record. Local caches only ever change through
  the change feed (see reconciliation_service).
- quantity is never persisted negative; every quantity change goes through
  stock_status.adjust_quantity(), which rejects negative targets.
- total_cost_value_cents is recomputed whenever cost_cents or quantity change.

Concurrency:
- Plain set_quantity() is last-write-wins: two clients setting the same item
  race and the later commit stands.
- Passing expected_quantity turns it into a conditional write; a different
  prior quantity raises StaleQuantityError instead of overwriting.
- version_id conflicts at flush are retried by run_with_retry(); the retry
  re-reads the row, so the expected_quantity check sees the winner's value.

Audit:
- Every mutation appends an ActivityLog row in the same DB transaction.
"""

logger = logging.getLogger(__name__)

ITEM_MUTABLE_FIELDS = frozenset({
    "sku",
    "description",
    "category",
    "make",
    "module",
    "supplier",
    "fcc_id",
    "quantity",
    "cost_cents",
    "low_stock_threshold",
    "year_from",
    "year_to",
})

ITEM_POLICY = ModelValidationPolicy(
    writable_fields=ITEM_MUTABLE_FIELDS,
    required_on_create=frozenset({"sku"}),
)


def apply_item_patch(item: InventoryItem, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_MUTABLE_FIELDS or k == "quantity":
            continue
        setattr(item, k, v)


def _apply_level(item: InventoryItem, new_quantity: int) -> None:
    level = adjust_quantity(item, new_quantity)
    item.quantity = level.quantity
    item.total_cost_value_cents = level.total_cost_value_cents


def _is_sku_conflict(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "sku" in message and ("unique" in message or "duplicate" in message)


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(InventoryItem.id).filter(InventoryItem.sku == sku)
    if exclude_id is not None:
        query = query.filter(InventoryItem.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("SKU already exists.", sku=sku)


def _flush_item(item: InventoryItem) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        if _is_sku_conflict(exc):
            raise ConflictError("SKU already exists.", sku=item.sku) from exc
        raise


def _load_item(item_id: int, *, lock: bool = False) -> InventoryItem:
    query = db.session.query(InventoryItem).filter(InventoryItem.id == item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("inventory item not found", item_id=item_id)
    return item


def get_item(item_id: int) -> InventoryItem:
    return _load_item(item_id)


def list_items(
    *,
    category: str | None = None,
    make: str | None = None,
    supplier: str | None = None,
    min_quantity: int | None = None,
    max_quantity: int | None = None,
) -> list[InventoryItem]:
    """Store-side filtered read, ordered by sku then id."""
    query = db.session.query(InventoryItem)
    if category is not None:
        query = query.filter(InventoryItem.category == category)
    if make is not None:
        query = query.filter(InventoryItem.make == make)
    if supplier is not None:
        query = query.filter(InventoryItem.supplier == supplier)
    if min_quantity is not None:
        query = query.filter(InventoryItem.quantity >= min_quantity)
    if max_quantity is not None:
        query = query.filter(InventoryItem.quantity <= max_quantity)
    return query.order_by(InventoryItem.sku.asc(), InventoryItem.id.asc()).all()


def load_snapshot() -> list[dict]:
    """Full read used by the reconciler on connect and on resync."""
    return [item.to_dict() for item in list_items()]


def _create_item_inner(payload: dict, *, source: str = "manual_entry") -> InventoryItem:
    """Core create logic without retry or commit.

    Called by both the public create_item() and commit_staged().
    """
    patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_inventory_item(patch)
    _ensure_sku_available(patch["sku"])

    item = InventoryItem(usage_count=0)
    apply_item_patch(item, patch)
    if item.low_stock_threshold is None:
        item.low_stock_threshold = default_threshold()
    _apply_level(item, patch.get("quantity") or 0)

    db.session.add(item)
    _flush_item(item)  # ensure item.id exists before activity append

    append_activity(
        action_type="create",
        entity_id=item.id,
        entity_name=item.sku,
        description=f'Inventory item "{item.sku}" was added',
        metadata={"source": source, "quantity": item.quantity},
    )
    return item


def create_item(payload: dict, *, source: str = "manual_entry") -> InventoryItem:
    """
    Create an inventory item from an unvalidated payload.

    Raises:
        ValidationError: payload fails column or business rules
        ConflictError: sku already exists
    """
    def _op():
        item = _create_item_inner(payload, source=source)
        db.session.commit()
        logger.info("inventory item created", extra={"item_id": item.id, "sku": item.sku, "source": source})
        return item

    return run_with_retry(_op)


def update_item(item_id: int, payload: dict) -> InventoryItem:
    patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_POLICY, partial=True)

    def _op():
        item = _load_item(item_id, lock=True)
        enforce_rules_inventory_item(patch, current=item)

        if "sku" in patch and patch["sku"] != item.sku:
            _ensure_sku_available(patch["sku"], exclude_id=item.id)

        apply_item_patch(item, patch)
        _apply_level(item, patch["quantity"] if "quantity" in patch else item.quantity)
        _flush_item(item)

        append_activity(
            action_type="update",
            entity_id=item.id,
            entity_name=item.sku,
            description=f'Inventory item "{item.sku}" was updated',
            metadata={"fields": sorted(patch.keys())},
        )
        db.session.commit()
        logger.info("inventory item updated", extra={"item_id": item.id, "fields": sorted(patch.keys())})
        return item

    return run_with_retry(_op)


def delete_item(item_id: int) -> bool:
    """
    Hard-delete an item. Irreversible.

    Usage rows keep their cost snapshot and sku_at_use; their inventory_id
    is cleared. Returns False if the item does not exist.
    """
    def _op():
        item = db.session.query(InventoryItem).filter(InventoryItem.id == item_id).first()
        if item is None:
            return False

        sku = item.sku
        # Bulk UPDATE: bypasses the immutability guard and is not published on the feed
        db.session.execute(
            update(InventoryUsage)
            .where(InventoryUsage.inventory_id == item.id)
            .values(inventory_id=None)
            .execution_options(synchronize_session=False)
        )
        db.session.delete(item)
        append_activity(
            action_type="delete",
            entity_id=item_id,
            entity_name=sku,
            description=f'Inventory item "{sku}" was removed',
        )
        db.session.commit()
        logger.info("inventory item deleted", extra={"item_id": item_id, "sku": sku})
        return True

    return run_with_retry(_op)


def _set_quantity_inner(
    item: InventoryItem,
    new_quantity: int,
    *,
    expected_quantity: int | None,
    note: str | None,
) -> InventoryItem:
    if expected_quantity is not None and item.quantity != expected_quantity:
        raise StaleQuantityError(item.id, expected_quantity, item.quantity)

    previous = item.quantity
    _apply_level(item, new_quantity)
    db.session.flush()

    append_activity(
        action_type="adjust",
        entity_id=item.id,
        entity_name=item.sku,
        description=f'Quantity of "{item.sku}" changed from {previous} to {item.quantity}',
        metadata={"from": previous, "to": item.quantity, "note": note},
    )
    return item


def set_quantity(
    item_id: int,
    new_quantity: int,
    *,
    expected_quantity: int | None = None,
    note: str | None = None,
) -> InventoryItem:
    """
    Persist a new absolute quantity.

    Raises:
        ValidationError: new_quantity is negative or not an integer
        StaleQuantityError: expected_quantity given and the stored value differs
        NotFoundError: no such item
    """
    # Reject before touching the store
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        raise ValidationError("quantity must be an integer")
    if new_quantity < 0:
        raise ValidationError("quantity cannot be negative", item_id=item_id, requested=new_quantity)
    expected_quantity = validate_expected_quantity(expected_quantity)

    def _op():
        item = _load_item(item_id, lock=True)
        _set_quantity_inner(item, new_quantity, expected_quantity=expected_quantity, note=note)
        db.session.commit()
        logger.info("inventory quantity set", extra={"item_id": item.id, "quantity": item.quantity})
        return item

    return run_with_retry(_op)


def adjust_by(
    item_id: int,
    delta: int,
    *,
    expected_quantity: int | None = None,
    note: str | None = None,
) -> InventoryItem:
    """Relative change (+1 / -1 buttons). A result below zero is rejected, not clamped."""
    expected_quantity = validate_expected_quantity(expected_quantity)

    def _op():
        item = _load_item(item_id, lock=True)
        level = apply_delta(item, delta)
        _set_quantity_inner(item, level.quantity, expected_quantity=expected_quantity, note=note)
        db.session.commit()
        return item

    return run_with_retry(_op)


@dataclass
class CommitResult:
    created: list[dict] = field(default_factory=list)
    conflicts: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "conflicts": self.conflicts,
            "errors": self.errors,
            "counts": {
                "created": len(self.created),
                "conflicts": len(self.conflicts),
                "errors": len(self.errors),
            },
        }


def commit_staged(staged: Iterable[Any], *, source: str = "csv_import") -> CommitResult:
    """
    Persist staged CSV rows through the ordinary create path.

    Each row runs in its own savepoint: a conflict or validation failure on
    one row is reported and does not abort the rest of the batch.
    """
    result = CommitResult()

    for entry in staged:
        nested = db.session.begin_nested()
        try:
            item = _create_item_inner(entry.to_item_patch(), source=source)
            nested.commit()
            result.created.append({"row_number": entry.row_number, "item": item.to_dict()})
        except ConflictError as exc:
            nested.rollback()
            result.conflicts.append({"row_number": entry.row_number, "sku": entry.sku, "error": exc.message})
        except ValidationError as exc:
            nested.rollback()
            result.errors.append({"row_number": entry.row_number, "error": exc.message})
        except Exception:
            nested.rollback()
            db.session.rollback()
            raise

    append_activity(
        action_type="import",
        entity_type="inventory",
        description=f"Imported {len(result.created)} inventory item(s) from CSV",
        metadata={
            "source": source,
            "created": len(result.created),
            "conflicts": len(result.conflicts),
            "errors": len(result.errors),
        },
    )
    db.session.commit()
    logger.info(
        "staged inventory committed",
        extra={"created": len(result.created), "conflicts": len(result.conflicts), "errors": len(result.errors)},
    )
    return result
