# backend/stockledger/routes/stock.py
"""
Stock ledger routes.

Time semantics:
- movement_date and as_of are business dates (YYYY-MM-DD) in the tenant's timezone.
- as_of filtering is inclusive: movement_date <= as_of.
"""
from flask import Blueprint, Response, current_app, g, jsonify, request, stream_with_context

from ..decorators import require_context
from ..extensions import db
from ..models import StockMovement
from ..services import export_service, movement_service, stock_service
from ..services.concurrency import StorageError
from ..services.export_service import ExportError
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    parse_date_param,
    parse_int_param,
    validate_payload,
)


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "item_id",
        "counter_id",
        "session_id",
        "movement_type",
        "quantity",
        "movement_date",
        "notes",
    },
    required_on_create={"item_id", "movement_type", "quantity"},
)


def _csv_response(body, filename: str) -> Response:
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@stock_bp.post("/movements")
@require_context
def record_movement_route():
    """
    Append one movement. Corrections are new movements; nothing is edited.

    Returns:
        201: movement recorded
        400: invalid payload, foreign item/counter/session, bad quantity
        503: storage failure (safe to retry)
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockMovement,
            payload=payload,
            policy=MOVEMENT_POLICY,
            partial=False,
        )
        movement_id = movement_service.record_movement(
            tenant_id=g.tenant_id,
            actor_id=g.user_id,
            item_id=patch["item_id"],
            movement_type=patch["movement_type"],
            quantity=patch["quantity"],
            counter_id=patch.get("counter_id"),
            session_id=patch.get("session_id"),
            movement_date=patch.get("movement_date"),
            notes=patch.get("notes"),
        )
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except StorageError:
        current_app.logger.exception("Failed to record movement")
        return jsonify({"error": "Storage unavailable, retry"}), 503

    movement = db.session.get(StockMovement, movement_id)
    current = stock_service.get_current_stock(g.tenant_id, movement.item_id)
    return jsonify({"movement": movement.to_dict(), "current_stock": current}), 201


@stock_bp.get("/movements")
@require_context
def list_movements_route():
    try:
        movements = movement_service.list_movements(
            tenant_id=g.tenant_id,
            item_id=parse_int_param(request.args.get("item_id"), "item_id"),
            counter_id=parse_int_param(request.args.get("counter_id"), "counter_id"),
            movement_date=parse_date_param(request.args.get("date"), "date"),
            movement_type=request.args.get("type") or None,
            limit=parse_int_param(request.args.get("limit"), "limit") or 200,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)})


@stock_bp.get("/current")
@require_context
def current_stock_route():
    rows = stock_service.list_current_stock(g.tenant_id)
    return jsonify({"items": rows, "count": len(rows)})


@stock_bp.get("/items/<int:item_id>")
@require_context
def item_stock_route(item_id: int):
    try:
        counter_id = parse_int_param(request.args.get("counter_id"), "counter_id")
        as_of = parse_date_param(request.args.get("as_of"), "as_of")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        current = stock_service.get_current_stock(g.tenant_id, item_id, counter_id=counter_id, as_of=as_of)
    except ValidationError:
        return jsonify({"error": "Item not found"}), 404

    levels = stock_service.get_stock_levels(g.tenant_id, by_counter=True, as_of=as_of, item_id=item_id)
    by_counter = [
        {"counter_id": cid, "current_stock": qty}
        for (_, cid), qty in sorted(levels.items(), key=lambda kv: (kv[0][1] is None, kv[0][1] or 0))
    ]
    return jsonify({
        "item_id": item_id,
        "counter_id": counter_id,
        "as_of": as_of.isoformat() if as_of else None,
        "current_stock": current,
        "by_counter": by_counter,
    })


@stock_bp.get("/reorder")
@require_context
def below_reorder_route():
    rows = [
        {"item": item.to_dict(), "current_stock": qty}
        for item, qty in stock_service.items_below_reorder(g.tenant_id)
    ]
    return jsonify({"items": rows, "count": len(rows)})


@stock_bp.get("/reorder.csv")
@require_context
def below_reorder_csv_route():
    body = export_service.export_below_reorder_csv(g.tenant_id)
    return _csv_response(stream_with_context(body), export_service.below_reorder_filename())


@stock_bp.get("/sales-template.csv")
@require_context
def sales_template_route():
    try:
        body = export_service.sales_template_csv(g.tenant_id)
    except ExportError as e:
        return jsonify({"error": str(e)}), 422
    return _csv_response(body, export_service.sales_template_filename())
