# Overview: Payload validation for inventory writes, driven by column metadata plus shop rules.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Integer, String, Text

from .errors import ValidationError


# Maximum unit cost: $99,999.99 (9,999,999 cents)
MAX_COST_CENTS = 9_999_999

# Plausible vehicle model years for key/remote fitment
MIN_VEHICLE_YEAR = 1900
MAX_VEHICLE_YEAR = 2100

_INT_RE = re.compile(r"-?\d+")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    writable_fields: what a caller may set on the model
    required_on_create: keys that must be present when partial=False
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def _to_int(key: str, value: Any) -> int:
    """Whole numbers only. "12" is accepted; 1.5, "1e3" and True are not."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        if _INT_RE.fullmatch(text):
            return int(text)
        raise ValidationError(f"{key} must be a plain integer")
    raise ValidationError(f"{key} must be an integer")


def _to_text(col, value: Any) -> str | None:
    text = str(value).strip()
    if not text:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        return None
    limit = getattr(col.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{col.key} exceeds max length {limit}")
    return text


def validate_payload(*, model, payload: Any, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean an incoming JSON object into a patch for ``model``.

    Unknown or non-writable keys are rejected rather than ignored, so a typo
    in a client never silently drops a field. partial=True validates only the
    keys present (PATCH semantics).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]

        if raw is None:
            if not col.nullable and col.default is None:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        elif isinstance(col.type, Integer):
            patch[key] = _to_int(key, raw)
        elif isinstance(col.type, (String, Text)):
            patch[key] = _to_text(col, raw)
        else:
            patch[key] = raw

    return patch


def enforce_rules_inventory_item(patch: dict, *, current: Any = None) -> None:
    """
    Shop rules on top of column metadata. ``current`` is the stored item on
    update; the year range is checked against the merged state.
    """
    if "quantity" in patch:
        if patch["quantity"] is None:
            raise ValidationError("quantity cannot be null")
        if patch["quantity"] < 0:
            raise ValidationError("quantity must be >= 0")

    cost = patch.get("cost_cents")
    if cost is not None:
        if cost < 0:
            raise ValidationError("cost_cents must be >= 0")
        if cost > MAX_COST_CENTS:
            raise ValidationError(f"cost_cents cannot exceed {MAX_COST_CENTS} (${MAX_COST_CENTS / 100:,.2f})")

    threshold = patch.get("low_stock_threshold")
    if threshold is not None and threshold < 0:
        raise ValidationError("low_stock_threshold must be >= 0")

    for key in ("year_from", "year_to"):
        year = patch.get(key)
        if year is not None and not (MIN_VEHICLE_YEAR <= year <= MAX_VEHICLE_YEAR):
            raise ValidationError(f"{key} must be between {MIN_VEHICLE_YEAR} and {MAX_VEHICLE_YEAR}")

    year_from = patch["year_from"] if "year_from" in patch else getattr(current, "year_from", None)
    year_to = patch["year_to"] if "year_to" in patch else getattr(current, "year_to", None)
    if year_from is not None and year_to is not None and year_from > year_to:
        raise ValidationError("year_from must be <= year_to")
