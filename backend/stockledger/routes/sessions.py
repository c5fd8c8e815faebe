# backend/stockledger/routes/sessions.py
"""
Daily session gate routes.

The optional "date" (YYYY-MM-DD) in the JSON body or query string stands
in for the tenant's business date; without it "today" is used.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context
from ..services import daily_session_service
from ..services.concurrency import StorageError
from ..services.daily_session_service import DailySessionError
from ..validation import ValidationError, parse_date_param


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _requested_date():
    payload = request.get_json(silent=True) or {}
    return parse_date_param(payload.get("date") or request.args.get("date"), "date")


@sessions_bp.get("/today")
@require_context
def day_status_route():
    try:
        status = daily_session_service.get_day_status(g.tenant_id, _requested_date())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(status.to_dict())


@sessions_bp.post("/open")
@require_context
def open_day_route():
    """
    Returns:
        201: session opened (closing counts of the previous day carried forward)
        409: already open, already closed, or an earlier day is still open
        503: storage failure
    """
    try:
        session = daily_session_service.open_day(g.tenant_id, g.user_id, _requested_date())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DailySessionError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to open day for tenant %s", g.tenant_id)
        return jsonify({"error": "Storage unavailable, retry"}), 503
    return jsonify({"session": session.to_dict()}), 201


@sessions_bp.post("/close")
@require_context
def close_day_route():
    try:
        session = daily_session_service.close_day(g.tenant_id, g.user_id, _requested_date())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DailySessionError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to close day for tenant %s", g.tenant_id)
        return jsonify({"error": "Storage unavailable, retry"}), 503
    return jsonify({"session": session.to_dict() if session else None})


@sessions_bp.post("/close-previous")
@require_context
def close_previous_day_route():
    try:
        session = daily_session_service.close_previous_day(g.tenant_id, g.user_id, _requested_date())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DailySessionError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to close previous day for tenant %s", g.tenant_id)
        return jsonify({"error": "Storage unavailable, retry"}), 503
    return jsonify({"session": session.to_dict() if session else None})
