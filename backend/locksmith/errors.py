# Overview: Typed error kinds shared by the inventory services and routes.

"""
Inventory error taxonomy.

Callers catch by type, never by message. Every error carries a machine
readable ``code`` and the HTTP status the routes answer with.

    InventoryError
    +-- ValidationError          rejected before any write
    |   +-- InvalidQuantityError
    +-- ConflictError            unique constraint / concurrent edit
    |   +-- StaleQuantityError
    +-- InsufficientStockError
    +-- NotFoundError
    +-- ImmutableRecordError
    +-- TransportError           store unreachable / feed disconnected
"""
from __future__ import annotations

from typing import Any


class InventoryError(Exception):
    code = "INVENTORY_ERROR"
    http_status = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(InventoryError, ValueError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    http_status = 400


class InvalidQuantityError(ValidationError):
    """Usage quantity is zero, negative or not an integer."""
    code = "INVALID_QUANTITY"


class ConflictError(InventoryError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    code = "CONFLICT"
    http_status = 409


class StaleQuantityError(ConflictError):
    """Conditional quantity write found a different prior quantity."""
    code = "STALE_QUANTITY"

    def __init__(self, item_id: int, expected: int, actual: int):
        super().__init__(
            f"quantity for item {item_id} changed (expected {expected}, found {actual})",
            item_id=item_id,
            expected=expected,
            actual=actual,
        )
        self.item_id = item_id
        self.expected = expected
        self.actual = actual


class InsufficientStockError(InventoryError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, item_id: int, requested: int, available: int):
        super().__init__(
            f"cannot use {requested} of item {item_id}: only {available} in stock",
            item_id=item_id,
            requested=requested,
            available=available,
        )
        self.item_id = item_id
        self.requested = requested
        self.available = available


class NotFoundError(InventoryError):
    code = "NOT_FOUND"
    http_status = 404


class ImmutableRecordError(InventoryError):
    """Raised by ORM listeners when an append-only row is modified."""
    code = "IMMUTABLE_RECORD"
    http_status = 409


class TransportError(InventoryError):
    """Store unreachable or change feed disconnected."""
    code = "TRANSPORT_ERROR"
    http_status = 503
