# backend/stockledger/routes/variance.py
"""
Daily variance (expected vs counted stock).

Query parameters: date (default: tenant business date), item_id,
counter_id, by_counter.
"""
from flask import Blueprint, Response, g, jsonify, request

from ..decorators import require_context
from ..services import export_service, variance_service
from ..services.movement_service import tenant_today
from ..validation import ValidationError, parse_bool_param, parse_date_param, parse_int_param


variance_bp = Blueprint("variance", __name__, url_prefix="/api")


def _report_date():
    return parse_date_param(request.args.get("date"), "date") or tenant_today(g.tenant_id)


@variance_bp.get("/variance")
@require_context
def variance_route():
    try:
        summary = variance_service.variance_summary(
            g.tenant_id,
            _report_date(),
            item_id=parse_int_param(request.args.get("item_id"), "item_id"),
            counter_id=parse_int_param(request.args.get("counter_id"), "counter_id"),
            by_counter=parse_bool_param(request.args.get("by_counter")),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(summary)


@variance_bp.get("/variance.csv")
@require_context
def variance_csv_route():
    try:
        day = _report_date()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    body = export_service.variance_report_csv(g.tenant_id, day)
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={export_service.variance_report_filename(day)}"},
    )
