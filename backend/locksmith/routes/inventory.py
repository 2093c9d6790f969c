# Overview: Flask API routes for inventory; parses input and returns JSON responses.

# backend/locksmith/routes/inventory.py
"""
Inventory routes.

Reads (list, facets, summary) are served from the reconciled cache; every
other route goes straight to the service layer and answers once the write
has committed.

Error mapping is centralized in handle_inventory_error():
- ValidationError / InvalidQuantityError -> 400
- NotFoundError -> 404
- ConflictError / StaleQuantityError / InsufficientStockError -> 409
- TransportError -> 503
"""
import io
import logging

from flask import Blueprint, current_app, request

from ..errors import InventoryError, NotFoundError, ValidationError
from ..services import activity_service, csv_normalizer, inventory_service, usage_service
from ..services.inventory_engine import get_inventory_engine
from ..services.inventory_filters import FilterState
from ..services.stock_status import classify_item
from locksmith.time_utils import run_stamp as make_run_stamp

logger = logging.getLogger(__name__)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.errorhandler(InventoryError)
def handle_inventory_error(exc: InventoryError):
    if exc.http_status >= 500:
        logger.warning("inventory request failed", extra={"code": exc.code, "error": exc.message})
    return exc.to_dict(), exc.http_status


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _item_response(item) -> dict:
    data = item.to_dict()
    data["status"] = classify_item(item).value
    return data


@inventory_bp.get("")
def list_inventory_route():
    """
    Filtered, sorted view plus facets and stock summary.

    Query params: search, category, make, supplier, price_range,
    stock_status, fcc_id, sort, direction.
    """
    state = FilterState.from_args(request.args)
    engine = get_inventory_engine()
    items = engine.view(state)
    return {
        "items": [r.to_dict() for r in items],
        "count": len(items),
        "filters": state.to_dict(),
        "facets": engine.facets().to_dict(),
        "summary": engine.summary(),
    }


@inventory_bp.get("/<int:item_id>")
def get_inventory_route(item_id: int):
    item = inventory_service.get_item(item_id)
    return {"item": _item_response(item)}


@inventory_bp.post("")
def create_inventory_route():
    item = inventory_service.create_item(_json_body())
    return {"item": _item_response(item)}, 201


@inventory_bp.route("/<int:item_id>", methods=["PUT", "PATCH"])
def update_inventory_route(item_id: int):
    item = inventory_service.update_item(item_id, _json_body())
    return {"item": _item_response(item)}


@inventory_bp.delete("/<int:item_id>")
def delete_inventory_route(item_id: int):
    if not inventory_service.delete_item(item_id):
        raise NotFoundError("inventory item not found", item_id=item_id)
    return {"deleted": True, "id": item_id}


@inventory_bp.post("/<int:item_id>/adjust")
def adjust_inventory_route(item_id: int):
    """
    Body: {"quantity": N} for an absolute value or {"delta": +/-N}.
    Optional expected_quantity makes the write conditional (409 on mismatch).
    """
    payload = _json_body()
    has_quantity = "quantity" in payload
    has_delta = "delta" in payload
    if has_quantity == has_delta:
        raise ValidationError("provide exactly one of quantity or delta")

    expected = payload.get("expected_quantity")
    note = payload.get("note")
    if has_quantity:
        item = inventory_service.set_quantity(item_id, payload["quantity"], expected_quantity=expected, note=note)
    else:
        item = inventory_service.adjust_by(item_id, payload["delta"], expected_quantity=expected, note=note)
    return {"item": _item_response(item)}


@inventory_bp.post("/<int:item_id>/usage")
def record_usage_route(item_id: int):
    payload = _json_body()
    if "quantity_used" not in payload:
        raise ValidationError("Missing required fields: quantity_used")

    usage = usage_service.record_usage(
        item_id,
        payload["quantity_used"],
        job_id=payload.get("job_id"),
        notes=payload.get("notes"),
        expected_quantity=payload.get("expected_quantity"),
    )
    item = inventory_service.get_item(item_id)
    return {"usage": usage.to_dict(), "item": _item_response(item)}, 201


@inventory_bp.get("/usage")
def list_usage_route():
    item_id = request.args.get("item_id", type=int)
    job_id = request.args.get("job_id")
    rows = usage_service.list_usage(item_id=item_id, job_id=job_id)
    return {"usage": [u.to_dict() for u in rows], "count": len(rows)}


@inventory_bp.get("/jobs/<job_id>/material-cost")
def job_material_cost_route(job_id: str):
    return usage_service.job_material_cost(job_id)


def _import_text() -> tuple[str, str | None]:
    """CSV text from an uploaded .csv/.xlsx file or a JSON {"text": ...} body."""
    if "file" in request.files:
        file = request.files["file"]
        filename = file.filename or ""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext == "csv":
            try:
                return file.stream.read().decode("utf-8-sig"), request.form.get("run_stamp")
            except UnicodeDecodeError:
                raise ValidationError("CSV file must be UTF-8 encoded")
        if ext == "xlsx":
            return csv_normalizer.xlsx_to_csv_text(io.BytesIO(file.stream.read())), request.form.get("run_stamp")
        raise ValidationError("Unsupported file type; upload .csv or .xlsx")

    payload = _json_body()
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text is required")
    return text, payload.get("run_stamp")


@inventory_bp.post("/import/parse")
def parse_import_route():
    """
    Stage vendor rows for review. Nothing is written.

    The response carries the run_stamp; sending the same text and run_stamp
    to /import/commit reproduces exactly the rows reviewed here.
    """
    text, stamp = _import_text()
    stamp = stamp or make_run_stamp()
    staged = csv_normalizer.parse(
        text,
        run_stamp=stamp,
        default_make=current_app.config.get("CSV_DEFAULT_MAKE", csv_normalizer.DEFAULT_MAKE),
    )
    return {
        "run_stamp": stamp,
        "rows": [s.to_dict() for s in staged],
        "count": len(staged),
        "warnings": sum(len(s.warnings) for s in staged),
    }


@inventory_bp.post("/import/commit")
def commit_import_route():
    """
    Body: {"text": ..., "run_stamp": ..., "skip_rows": [row_number, ...]}.
    Returns per-row created / conflicts / errors.
    """
    payload = _json_body()
    text = payload.get("text")
    stamp = payload.get("run_stamp")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text is required")
    if not stamp:
        raise ValidationError("run_stamp is required; use the value returned by /import/parse")

    skip = payload.get("skip_rows") or []
    if not isinstance(skip, list):
        raise ValidationError("skip_rows must be a list of row numbers")
    skip_rows = {int(n) for n in skip if str(n).isdigit()}

    staged = csv_normalizer.parse(
        text,
        run_stamp=str(stamp),
        default_make=current_app.config.get("CSV_DEFAULT_MAKE", csv_normalizer.DEFAULT_MAKE),
    )
    result = inventory_service.commit_staged([s for s in staged if s.row_number not in skip_rows])
    status = 201 if result.created else 200
    return result.to_dict(), status


@inventory_bp.get("/activity")
def list_activity_route():
    rows = activity_service.list_activity(
        entity_type=request.args.get("entity_type") or "inventory",
        entity_id=request.args.get("item_id", type=int),
        limit=request.args.get("limit", default=100, type=int),
    )
    return {"activity": rows, "count": len(rows)}
