# Overview: Normalizes pasted vendor CSV listings into staged inventory rows.

"""
Vendor CSV normalizer.

Input is delimiter-separated text with a header row. Columns are positional
and fixed (the header text is not interpreted):

    Item Name, Item Type, Quantity, FCC ID, Module,
    Unit Cost, Total Cost, Supplier, SKU, Price

Only the free-text Item Name carries structure. From it we pull, each one
optional and independent of the others:

    "2013-2020 Ford/Lincoln 5-Button Smart Key"
     ^^^^^^^^^ ^^^^^^^^^^^^ ^^^^^^^^
     years     make         buttons

parse() is pure: no database, no clock unless run_stamp is omitted. Passing
the same text and run_stamp always yields the same staged rows. Nothing is
persisted here; inventory_service.commit_staged() does that through the
ordinary create path.
"""
from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from locksmith.time_utils import run_stamp as make_run_stamp

CSV_COLUMNS = (
    "item_name",
    "item_type",
    "quantity",
    "fcc_id",
    "module",
    "unit_cost",
    "total_cost",
    "supplier",
    "sku",
    "price",
)

DEFAULT_MAKE = "Universal"

# hyphen-minus, hyphen, non-breaking hyphen, figure dash, en dash, em dash
DASHES = "-‐‑‒–—"

YEAR_RANGE_RE = re.compile(rf"\b(\d{{4}})\s*[{DASHES}]\s*(\d{{4}})\b")
BUTTONS_RE = re.compile(rf"\b(\d+)\s*[{DASHES}]\s*Button\b", re.IGNORECASE)
# Capitalized brand token, optionally slash-joined: "Ford", "Ford/Lincoln", "GM"
MAKE_RE = re.compile(r"^([A-Z][A-Za-z]*(?:/[A-Z][A-Za-z]*)*)\b")

# Words that start with a capital letter but describe the key, not the vehicle
NON_MAKE_WORDS = frozenset(
    {
        "Smart",
        "Flip",
        "Remote",
        "Key",
        "Keyless",
        "Fobik",
        "Proximity",
        "Prox",
        "Transponder",
        "Wired",
        "Blade",
        "Shell",
        "Head",
        "Universal",
    }
)


@dataclass(frozen=True)
class NameParts:
    make: str | None
    year_from: int | None
    year_to: int | None
    buttons: str | None


@dataclass
class StagedItem:
    row_number: int
    raw_name: str
    description: str
    category: str | None
    make: str
    year_from: int | None
    year_to: int | None
    buttons: str | None
    quantity: int
    cost_cents: int
    supplier: str | None
    sku: str
    sku_synthesized: bool
    fcc_id: str | None = None
    module: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def year_range(self) -> str | None:
        if self.year_from is None or self.year_to is None:
            return None
        return f"{self.year_from}-{self.year_to}"

    @property
    def cost(self) -> Decimal:
        return (Decimal(self.cost_cents) / 100).quantize(Decimal("0.01"))

    def to_item_patch(self) -> dict[str, Any]:
        """Payload accepted by inventory_service.create_item()."""
        return {
            "sku": self.sku,
            "description": self.description,
            "category": self.category,
            "make": self.make,
            "supplier": self.supplier,
            "fcc_id": self.fcc_id,
            "module": self.module,
            "quantity": self.quantity,
            "cost_cents": self.cost_cents,
            "year_from": self.year_from,
            "year_to": self.year_to,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_number": self.row_number,
            "raw_name": self.raw_name,
            "description": self.description,
            "category": self.category,
            "make": self.make,
            "year_from": self.year_from,
            "year_to": self.year_to,
            "buttons": self.buttons,
            "quantity": self.quantity,
            "cost_cents": self.cost_cents,
            "supplier": self.supplier,
            "sku": self.sku,
            "sku_synthesized": self.sku_synthesized,
            "fcc_id": self.fcc_id,
            "module": self.module,
            "warnings": list(self.warnings),
        }


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_quantity(value: Any) -> int | None:
    """Whole units; "3", "3.0" and " 3 " are all 3. None when unparseable."""
    text = _to_text(value)
    if text is None:
        return 0
    try:
        number = Decimal(text.replace(",", ""))
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value() or number < 0:
        return None
    return int(number)


def _to_cents(value: Any) -> int | None:
    text = _to_text(value)
    if text is None:
        return 0
    text = text.replace("$", "").replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_item_name(name: str) -> NameParts:
    """Extract year range, make and button count from a vendor item name."""
    year_from = year_to = None
    rest = name

    years = YEAR_RANGE_RE.search(name)
    if years:
        start, end = int(years.group(1)), int(years.group(2))
        if start <= end:
            year_from, year_to = start, end
        rest = (name[: years.start()] + " " + name[years.end():]).strip()

    buttons = None
    button_match = BUTTONS_RE.search(name)
    if button_match:
        buttons = f"{int(button_match.group(1))}-Button"

    make = None
    make_match = MAKE_RE.match(rest)
    if make_match:
        token = make_match.group(1)
        if token.split("/")[0] not in NON_MAKE_WORDS:
            make = token

    return NameParts(make=make, year_from=year_from, year_to=year_to, buttons=buttons)


def compose_description(
    make: str | None,
    year_range: str | None,
    buttons: str | None,
    category: str | None,
    fallback: str,
) -> str:
    segments = [s.strip() for s in (make, year_range, buttons, category) if s and s.strip()]
    composed = " ".join(segments)
    return composed or fallback


def synthesize_sku(stamp: str, row_number: int) -> str:
    return f"IMP-{stamp}-{row_number:04d}"


def _split_rows(raw_text: str) -> list[list[str]]:
    reader = csv.reader(io.StringIO(raw_text.replace("\r\n", "\n").replace("\r", "\n")))
    return [row for row in reader]


def parse(
    raw_text: str,
    *,
    run_stamp: str | None = None,
    default_make: str = DEFAULT_MAKE,
) -> list[StagedItem]:
    """
    Turn pasted vendor text into staged rows for review.

    row_number is the 1-based data row (header excluded, blank lines
    skipped). A malformed quantity or cost falls back to 0 and is noted in
    the row's warnings; it never aborts the import.
    """
    if not raw_text or not raw_text.strip():
        return []

    stamp = run_stamp or make_run_stamp()
    rows = _split_rows(raw_text)
    staged: list[StagedItem] = []

    non_empty = [r for r in rows if any(cell.strip() for cell in r)]
    data_rows = non_empty[1:]  # first non-empty line is the header
    for row_number, cells in enumerate(data_rows, start=1):
        values = dict(zip(CSV_COLUMNS, cells + [""] * (len(CSV_COLUMNS) - len(cells))))
        warnings: list[str] = []

        raw_name = _to_text(values["item_name"]) or ""
        category = _to_text(values["item_type"])

        parts = parse_item_name(raw_name)
        make = parts.make or default_make
        year_range = f"{parts.year_from}-{parts.year_to}" if parts.year_from is not None else None

        quantity = _to_quantity(values["quantity"])
        if quantity is None:
            warnings.append(f"quantity {values['quantity']!r} is not a whole number; using 0")
            quantity = 0

        cost_cents = _to_cents(values["unit_cost"])
        if cost_cents is None:
            warnings.append(f"unit cost {values['unit_cost']!r} is not a valid amount; using 0")
            cost_cents = 0

        sku = _to_text(values["sku"])
        sku_synthesized = sku is None
        if sku is None:
            sku = synthesize_sku(stamp, row_number)

        staged.append(
            StagedItem(
                row_number=row_number,
                raw_name=raw_name,
                description=compose_description(make, year_range, parts.buttons, category, raw_name),
                category=category,
                make=make,
                year_from=parts.year_from,
                year_to=parts.year_to,
                buttons=parts.buttons,
                quantity=quantity,
                cost_cents=cost_cents,
                supplier=_to_text(values["supplier"]),
                sku=sku,
                sku_synthesized=sku_synthesized,
                fcc_id=_to_text(values["fcc_id"]),
                module=_to_text(values["module"]),
                warnings=warnings,
            )
        )

    return staged


def xlsx_to_csv_text(stream) -> str:
    """Flatten the active worksheet of an .xlsx upload into CSV text for parse()."""
    from openpyxl import load_workbook

    wb = load_workbook(stream, data_only=True, read_only=True)
    sheet = wb.active
    out = io.StringIO()
    writer = csv.writer(out)
    for row in sheet.iter_rows(values_only=True):
        writer.writerow(["" if v is None else v for v in row])
    wb.close()
    return out.getvalue()
