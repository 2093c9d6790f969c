# Overview: Faceted search, filter and sort over the cached inventory collection.

"""
Filter/Sort Pipeline

- Pure and synchronous: apply_filters() never mutates its input and keeps no
  state between calls, so it is safe to run on every keystroke.
- Each facet is an independent AND predicate; the "all" sentinel never
  excludes anything. Free-text search is an OR across fields.
- Stock status filtering calls stock_status.classify(), the same function
  that drives the status badges.
- Sorting uses a closed SortField enum with one key function per field.
  Missing values sort last in both directions; ties fall back to id
  ascending, so equal input always renders in the same order.
- facet_values() is computed from the unfiltered collection on demand.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from typing import Any, Callable, Iterable, Mapping

from ..errors import ValidationError
from .stock_status import StockStatus, classify, total_cost_value

ALL = "all"


@dataclass(frozen=True)
class StockRecord:
    """Immutable snapshot of one inventory row as seen by the local cache."""
    id: int
    sku: str
    quantity: int = 0
    low_stock_threshold: int | None = None
    description: str | None = None
    category: str | None = None
    make: str | None = None
    module: str | None = None
    supplier: str | None = None
    fcc_id: str | None = None
    cost_cents: int | None = None
    total_cost_value_cents: int | None = None
    year_from: int | None = None
    year_to: int | None = None
    usage_count: int = 0
    last_used_at: str | None = None
    updated_at: str | None = None
    version_id: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StockRecord":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known}
        if data.get("id") is None:
            raise ValidationError("row has no id")
        data["quantity"] = int(data.get("quantity") or 0)
        data["usage_count"] = int(data.get("usage_count") or 0)
        data.setdefault("sku", "")
        if data.get("total_cost_value_cents") is None:
            data["total_cost_value_cents"] = total_cost_value(data.get("cost_cents"), data["quantity"])
        return cls(**data)

    @property
    def status(self) -> StockStatus:
        return classify(self.quantity, self.low_stock_threshold)

    def to_dict(self) -> dict:
        payload = {f.name: getattr(self, f.name) for f in fields(self)}
        payload["status"] = self.status.value
        return payload


class PriceRange(str, enum.Enum):
    ALL = ALL
    NONE = "none"
    UNDER_10 = "under_10"
    TEN_TO_50 = "10_to_50"
    OVER_50 = "over_50"


class StockFilter(str, enum.Enum):
    ALL = ALL
    OUT = StockStatus.OUT.value
    LOW = StockStatus.LOW.value
    IN_STOCK = StockStatus.IN_STOCK.value


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


def _text_key(value: str | None) -> str | None:
    return value.casefold() if value else None


class SortField(str, enum.Enum):
    SKU = "sku"
    QUANTITY = "quantity"
    COST = "cost"
    TOTAL_VALUE = "total_value"
    MAKE = "make"
    SUPPLIER = "supplier"
    CATEGORY = "category"
    UPDATED = "updated"

    @property
    def key(self) -> Callable[[StockRecord], Any]:
        return _SORT_KEYS[self]


_SORT_KEYS: dict[SortField, Callable[[StockRecord], Any]] = {
    SortField.SKU: lambda r: _text_key(r.sku),
    SortField.QUANTITY: lambda r: r.quantity,
    SortField.COST: lambda r: r.cost_cents,
    SortField.TOTAL_VALUE: lambda r: r.total_cost_value_cents,
    SortField.MAKE: lambda r: _text_key(r.make),
    SortField.SUPPLIER: lambda r: _text_key(r.supplier),
    SortField.CATEGORY: lambda r: _text_key(r.category),
    SortField.UPDATED: lambda r: r.updated_at,
}

# Price buckets in cents: lower bound inclusive, upper exclusive
PRICE_BOUNDS = {
    PriceRange.UNDER_10: (0, 1000),
    PriceRange.TEN_TO_50: (1000, 5000),
    PriceRange.OVER_50: (5000, None),
}

SEARCH_FIELDS = ("sku", "fcc_id", "supplier", "make", "description")


def price_bucket(cost_cents: int | None) -> PriceRange:
    if cost_cents is None:
        return PriceRange.NONE
    for bucket, (low, high) in PRICE_BOUNDS.items():
        if cost_cents >= low and (high is None or cost_cents < high):
            return bucket
    return PriceRange.NONE


def _enum_value(enum_cls, raw: Any, field_name: str):
    if raw is None or raw == "":
        return None
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}")


def _facet_value(raw: Any) -> str:
    text = str(raw).strip() if raw is not None else ""
    return text or ALL


@dataclass(frozen=True)
class FilterState:
    search: str = ""
    category: str = ALL
    make: str = ALL
    supplier: str = ALL
    price_range: PriceRange = PriceRange.ALL
    stock_status: StockFilter = StockFilter.ALL
    fcc_id: str = ""
    sort_field: SortField = SortField.SKU
    sort_direction: SortDirection = SortDirection.ASC

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "FilterState":
        """Build from query-string style args; unknown enum values raise ValidationError."""
        return cls(
            search=str(args.get("search") or "").strip(),
            category=_facet_value(args.get("category")),
            make=_facet_value(args.get("make")),
            supplier=_facet_value(args.get("supplier")),
            price_range=_enum_value(PriceRange, args.get("price_range"), "price_range") or PriceRange.ALL,
            stock_status=_enum_value(StockFilter, args.get("stock_status"), "stock_status") or StockFilter.ALL,
            fcc_id=str(args.get("fcc_id") or "").strip(),
            sort_field=_enum_value(SortField, args.get("sort"), "sort") or SortField.SKU,
            sort_direction=_enum_value(SortDirection, args.get("direction"), "direction") or SortDirection.ASC,
        )

    def to_dict(self) -> dict:
        return {
            "search": self.search,
            "category": self.category,
            "make": self.make,
            "supplier": self.supplier,
            "price_range": self.price_range.value,
            "stock_status": self.stock_status.value,
            "fcc_id": self.fcc_id,
            "sort": self.sort_field.value,
            "direction": self.sort_direction.value,
        }


def matches_search(record: StockRecord, search: str) -> bool:
    needle = search.strip().casefold()
    if not needle:
        return True
    for name in SEARCH_FIELDS:
        value = getattr(record, name)
        if value and needle in value.casefold():
            return True
    return False


def matches_facets(record: StockRecord, state: FilterState) -> bool:
    if state.category != ALL and record.category != state.category:
        return False
    if state.make != ALL and record.make != state.make:
        return False
    if state.supplier != ALL and record.supplier != state.supplier:
        return False
    if state.price_range != PriceRange.ALL and price_bucket(record.cost_cents) != state.price_range:
        return False
    if state.stock_status != StockFilter.ALL and record.status.value != state.stock_status.value:
        return False
    if state.fcc_id:
        if not record.fcc_id or state.fcc_id.casefold() not in record.fcc_id.casefold():
            return False
    return True


def sort_records(
    records: Iterable[StockRecord],
    field: SortField = SortField.SKU,
    direction: SortDirection = SortDirection.ASC,
) -> list[StockRecord]:
    base = sorted(records, key=lambda r: r.id)
    key = field.key
    present = [r for r in base if key(r) is not None]
    missing = [r for r in base if key(r) is None]
    # list.sort is stable with reverse=True too, so id order survives ties
    present.sort(key=key, reverse=direction == SortDirection.DESC)
    return present + missing


def apply_filters(records: Iterable[StockRecord], state: FilterState) -> list[StockRecord]:
    selected = [r for r in records if matches_search(r, state.search) and matches_facets(r, state)]
    return sort_records(selected, state.sort_field, state.sort_direction)


@dataclass(frozen=True)
class Facets:
    categories: tuple[str, ...]
    makes: tuple[str, ...]
    suppliers: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "categories": list(self.categories),
            "makes": list(self.makes),
            "suppliers": list(self.suppliers),
        }


def _distinct(values: Iterable[str | None]) -> tuple[str, ...]:
    return tuple(sorted({v for v in values if v and v.strip()}, key=str.casefold))


def facet_values(records: Iterable[StockRecord]) -> Facets:
    records = list(records)
    return Facets(
        categories=_distinct(r.category for r in records),
        makes=_distinct(r.make for r in records),
        suppliers=_distinct(r.supplier for r in records),
    )


def stock_summary(records: Iterable[StockRecord]) -> dict:
    counts = {status.value: 0 for status in StockStatus}
    total_value = 0
    total_units = 0
    for record in records:
        counts[record.status.value] += 1
        total_units += record.quantity
        total_value += record.total_cost_value_cents or 0
    return {
        "counts": counts,
        "item_count": sum(counts.values()),
        "total_units": total_units,
        "total_value_cents": total_value,
        "needs_reorder": counts[StockStatus.LOW.value] + counts[StockStatus.OUT.value],
    }
