# backend/stockledger/routes/catalog.py
"""
Item and counter master data.

MULTI-TENANT: tenant comes from the request context; ids in the URL that
belong to another tenant answer 404.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_context
from ..extensions import db
from ..services import catalog_service
from ..validation import ConflictError, ValidationError, parse_bool_param


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/items")
@require_context
def list_items_route():
    include_inactive = parse_bool_param(request.args.get("include_inactive"))
    items = catalog_service.list_items(
        g.tenant_id,
        include_inactive=include_inactive,
        search=request.args.get("q"),
    )
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})


@catalog_bp.post("/items")
@require_context
def create_item_route():
    payload = request.get_json(silent=True)
    try:
        item = catalog_service.create_item(tenant_id=g.tenant_id, payload=payload, actor_id=g.user_id)
        return jsonify(item.to_dict()), 201
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409


@catalog_bp.get("/items/<int:item_id>")
@require_context
def get_item_route(item_id: int):
    try:
        item = catalog_service.get_item_for_tenant(g.tenant_id, item_id)
    except ValidationError:
        return jsonify({"error": "Item not found"}), 404
    return jsonify(item.to_dict())


@catalog_bp.patch("/items/<int:item_id>")
@require_context
def update_item_route(item_id: int):
    payload = request.get_json(silent=True)
    try:
        catalog_service.get_item_for_tenant(g.tenant_id, item_id)
    except ValidationError:
        return jsonify({"error": "Item not found"}), 404

    try:
        item = catalog_service.update_item(
            tenant_id=g.tenant_id, item_id=item_id, payload=payload, actor_id=g.user_id
        )
        return jsonify(item.to_dict())
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409


@catalog_bp.delete("/items/<int:item_id>")
@require_context
def deactivate_item_route(item_id: int):
    """Soft delete: the item stays referenced by its movements."""
    try:
        item = catalog_service.deactivate_item(tenant_id=g.tenant_id, item_id=item_id, actor_id=g.user_id)
    except ValidationError:
        return jsonify({"error": "Item not found"}), 404
    return jsonify(item.to_dict())


@catalog_bp.get("/counters")
@require_context
def list_counters_route():
    include_inactive = parse_bool_param(request.args.get("include_inactive"))
    counters = catalog_service.list_counters(g.tenant_id, include_inactive=include_inactive)
    return jsonify({"counters": [c.to_dict() for c in counters], "count": len(counters)})


@catalog_bp.post("/counters")
@require_context
def create_counter_route():
    payload = request.get_json(silent=True) or {}
    try:
        counter = catalog_service.create_counter(tenant_id=g.tenant_id, name=payload.get("name"))
        return jsonify(counter.to_dict()), 201
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
