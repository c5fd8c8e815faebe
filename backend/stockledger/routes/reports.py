# backend/stockledger/routes/reports.py
"""
Dashboard figures. All money values are integer cents.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_context
from ..services import reporting_service
from ..validation import ValidationError, parse_date_param, parse_int_param


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-value")
@require_context
def stock_value_route():
    try:
        day = parse_date_param(request.args.get("date"), "date")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(reporting_service.stock_value_overview(g.tenant_id, on_date=day))


@reports_bp.get("/profit-by-product")
@require_context
def profit_by_product_route():
    try:
        rows = reporting_service.profit_by_product(
            g.tenant_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=parse_int_param(request.args.get("limit"), "limit") or 5,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": rows, "count": len(rows)})
