# Overview: Service-layer operations for derived stock levels; grouped aggregation over the movement ledger.

from __future__ import annotations

from datetime import date

from sqlalchemy import case, func

from ..extensions import db
from ..models import Item, StockMovement, MOVEMENT_RESTOCK, MOVEMENT_SALE
from .movement_service import signed_quantity_expr, ensure_item_in_tenant
"""
Current stock = SUM(signed quantity) over the tenant's movements:
opening_stock and restock add, sale subtracts, closing_stock is ignored.

Every read aggregates in the database with one grouped query; nothing is
cached or stored. as_of filters are inclusive: movement_date <= as_of.
"""


STATUS_OUT_OF_STOCK = "Out of Stock"
STATUS_BELOW_REORDER = "Below Reorder"
STATUS_AT_REORDER = "At Reorder Level"
STATUS_SUFFICIENT = "Sufficient"


def stock_status(current: int, reorder_level: int) -> str:
    if current <= 0:
        return STATUS_OUT_OF_STOCK
    if current < reorder_level:
        return STATUS_BELOW_REORDER
    if current == reorder_level:
        return STATUS_AT_REORDER
    return STATUS_SUFFICIENT


def get_current_stock(
    tenant_id: int,
    item_id: int,
    counter_id: int | None = None,
    as_of: date | None = None,
) -> int:
    """Stock for one item, optionally at one counter."""
    ensure_item_in_tenant(tenant_id, item_id)

    q = db.session.query(
        func.coalesce(func.sum(signed_quantity_expr()), 0)
    ).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.item_id == item_id,
    )
    if counter_id is not None:
        q = q.filter(StockMovement.counter_id == counter_id)
    if as_of is not None:
        q = q.filter(StockMovement.movement_date <= as_of)

    return int(q.scalar() or 0)


def get_stock_levels(
    tenant_id: int,
    *,
    by_counter: bool = False,
    as_of: date | None = None,
    item_id: int | None = None,
) -> dict:
    """
    Stock for every item with movements (or just item_id), in one grouped query.

    Returns {item_id: qty}, or {(item_id, counter_id): qty} when by_counter
    is set (counter_id None holds movements recorded without a counter).
    """
    columns = [StockMovement.item_id]
    if by_counter:
        columns.append(StockMovement.counter_id)

    q = db.session.query(
        *columns,
        func.coalesce(func.sum(signed_quantity_expr()), 0).label("stock"),
    ).filter(StockMovement.tenant_id == tenant_id)
    if as_of is not None:
        q = q.filter(StockMovement.movement_date <= as_of)
    if item_id is not None:
        q = q.filter(StockMovement.item_id == item_id)

    rows = q.group_by(*columns).all()
    if by_counter:
        return {(row.item_id, row.counter_id): int(row.stock or 0) for row in rows}
    return {row.item_id: int(row.stock or 0) for row in rows}


def list_current_stock(tenant_id: int, *, include_inactive: bool = False) -> list[dict]:
    """
    Current stock table: received, sold, current and status per item.

    Items with no movements are listed with zeros.
    """
    received = func.coalesce(func.sum(
        case((StockMovement.movement_type == MOVEMENT_RESTOCK, StockMovement.quantity), else_=0)
    ), 0)
    sold = func.coalesce(func.sum(
        case((StockMovement.movement_type == MOVEMENT_SALE, StockMovement.quantity), else_=0)
    ), 0)
    current = func.coalesce(func.sum(signed_quantity_expr()), 0)

    q = db.session.query(
        Item,
        received.label("total_received"),
        sold.label("total_sold"),
        current.label("current_stock"),
    ).outerjoin(
        StockMovement,
        (StockMovement.item_id == Item.id) & (StockMovement.tenant_id == Item.tenant_id),
    ).filter(Item.tenant_id == tenant_id)
    if not include_inactive:
        q = q.filter(Item.is_active.is_(True))

    rows = q.group_by(Item.id).order_by(Item.name.asc(), Item.id.asc()).all()

    result = []
    for item, total_received, total_sold, current_stock in rows:
        current_stock = int(current_stock or 0)
        result.append({
            "item_id": item.id,
            "code": item.code,
            "name": item.name,
            "unit": item.unit,
            "reorder_level": item.reorder_level,
            "total_received": int(total_received or 0),
            "total_sold": int(total_sold or 0),
            "current_stock": current_stock,
            "status": stock_status(current_stock, item.reorder_level),
        })
    return result


def items_below_reorder(tenant_id: int) -> list[tuple[Item, int]]:
    """Active items whose total stock is strictly below their reorder level."""
    levels = get_stock_levels(tenant_id)
    items = db.session.query(Item).filter(
        Item.tenant_id == tenant_id,
        Item.is_active.is_(True),
    ).order_by(Item.name.asc(), Item.id.asc()).all()
    return [
        (item, levels.get(item.id, 0))
        for item in items
        if levels.get(item.id, 0) < item.reorder_level
    ]
