# Overview: Flask API routes for stock imports; parses uploads and returns the import result.

"""
Import Routes

POST /api/imports/<import_type> with either
- multipart/form-data: file (.csv / .json / .xlsx), optional strict_counter
- JSON: {"rows": [...], "strict_counter": true}

Supported kinds: sales, restock, physical_count, counter_sales,
counter_restock, reorder_restock.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context
from ..services import import_service
from ..services.concurrency import StorageError
from ..services.daily_session_service import DailySessionError
from ..services.import_files import read_rows
from ..services.import_schemas import import_types
from ..services.import_service import StockImportError
from ..validation import ValidationError, parse_bool_param


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _import_options(source) -> dict:
    options = {}
    if source.get("strict_counter") is not None:
        options["strict_counter"] = parse_bool_param(source.get("strict_counter"))
    return options


@imports_bp.get("/types")
@require_context
def list_import_types_route():
    return jsonify({"import_types": import_types()})


@imports_bp.post("/<import_type>")
@require_context
def import_route(import_type: str):
    """
    Returns:
        201: batch committed (recorded / skipped rows reported)
        400: bad file, bad header, unknown product, quantity mismatch
        409: physical count without an open session
        503: storage failure (nothing was committed)
    """
    try:
        if "file" in request.files:
            file = request.files["file"]
            rows = read_rows(file.stream, file.filename)
            options = _import_options(request.form)
        else:
            data = request.get_json(silent=True) or {}
            rows = data.get("rows")
            if not isinstance(rows, list):
                return jsonify({"error": "file or rows is required"}), 400
            options = _import_options(data)

        result = import_service.commit(rows, g.tenant_id, g.user_id, import_type, **options)
        return jsonify(result.to_dict()), 201
    except (ValidationError, StockImportError) as e:
        return jsonify({"error": str(e)}), 400
    except DailySessionError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Import %s failed for tenant %s", import_type, g.tenant_id)
        return jsonify({"error": "Storage unavailable, nothing was imported"}), 503
