# Overview: Derived stock status and the validated quantity transition.

"""
Stock Status Invariants (authoritative)

Classification is a pure function of (quantity, low_stock_threshold):
- OUT       iff quantity == 0
- LOW       iff 0 < quantity <= threshold
- IN_STOCK  iff quantity > threshold

Quantity transitions:
- adjust_quantity() is the only sanctioned way to compute a new quantity.
- A negative target is rejected with ValidationError; it is never clamped.
- The returned StockLevel carries the recomputed total_cost_value_cents.
- Nothing here touches the database; callers persist the result.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from flask import current_app, has_app_context

from ..errors import ValidationError

FALLBACK_LOW_STOCK_THRESHOLD = 3


class StockStatus(str, enum.Enum):
    OUT = "out"
    LOW = "low"
    IN_STOCK = "in_stock"


@dataclass(frozen=True)
class StockLevel:
    quantity: int
    total_cost_value_cents: int | None
    status: StockStatus

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "total_cost_value_cents": self.total_cost_value_cents,
            "status": self.status.value,
        }


def default_threshold() -> int:
    if has_app_context():
        return int(current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", FALLBACK_LOW_STOCK_THRESHOLD))
    return FALLBACK_LOW_STOCK_THRESHOLD


def classify(quantity: int, threshold: int | None = None) -> StockStatus:
    if threshold is None:
        threshold = default_threshold()
    if quantity <= 0:
        return StockStatus.OUT
    if quantity <= threshold:
        return StockStatus.LOW
    return StockStatus.IN_STOCK


def classify_item(item: Any) -> StockStatus:
    """Works for models, StockRecord snapshots and plain dicts."""
    if isinstance(item, dict):
        return classify(int(item.get("quantity") or 0), item.get("low_stock_threshold"))
    return classify(int(item.quantity or 0), getattr(item, "low_stock_threshold", None))


def total_cost_value(cost_cents: int | None, quantity: int) -> int | None:
    if cost_cents is None:
        return None
    return cost_cents * quantity


def _require_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


def validate_expected_quantity(value: Any) -> int | None:
    """Guard for conditional writes: None (unconditional) or a whole number >= 0."""
    if value is None:
        return None
    value = _require_int(value, "expected_quantity")
    if value < 0:
        raise ValidationError("expected_quantity cannot be negative", expected_quantity=value)
    return value


def adjust_quantity(item: Any, new_quantity: int) -> StockLevel:
    new_quantity = _require_int(new_quantity, "quantity")
    if new_quantity < 0:
        raise ValidationError(
            "quantity cannot be negative",
            item_id=getattr(item, "id", None),
            requested=new_quantity,
        )
    return StockLevel(
        quantity=new_quantity,
        total_cost_value_cents=total_cost_value(getattr(item, "cost_cents", None), new_quantity),
        status=classify(new_quantity, getattr(item, "low_stock_threshold", None)),
    )


def apply_delta(item: Any, delta: int) -> StockLevel:
    """Delta form of adjust_quantity (the +/- buttons)."""
    delta = _require_int(delta, "delta")
    return adjust_quantity(item, int(item.quantity or 0) + delta)
