# Overview: Service-layer operations for dashboard reporting; stock value and profit figures from the movement ledger.

from __future__ import annotations

from datetime import date

from sqlalchemy import case, func

from ..extensions import db
from ..models import Item, StockMovement, MOVEMENT_RESTOCK, MOVEMENT_SALE
from ..validation import ValidationError
from stockledger.time_utils import parse_business_date
from .movement_service import get_tenant, tenant_today
from .variance_service import tenant_variance_value


class ReportError(ValidationError):
    """Raised when report parameters are unusable."""


def _parse_range(start, end) -> tuple[date | None, date | None]:
    try:
        start_day = parse_business_date(start)
        end_day = parse_business_date(end)
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates")
    if start_day and end_day and start_day > end_day:
        raise ReportError("start must be on or before end")
    return start_day, end_day


def stock_value_overview(tenant_id: int, *, on_date: date | None = None) -> dict:
    """
    Headline stock figures in cents.

    current_stock_value is stock-in value minus cost of sales, floored at
    zero; it values stock at cost without looking at counts.
    """
    get_tenant(tenant_id)
    day = on_date or tenant_today(tenant_id)

    restock_qty = case((StockMovement.movement_type == MOVEMENT_RESTOCK, StockMovement.quantity), else_=0)
    sale_qty = case((StockMovement.movement_type == MOVEMENT_SALE, StockMovement.quantity), else_=0)

    totals = db.session.query(
        func.coalesce(func.sum(restock_qty * Item.cost_price_cents), 0).label("stock_in"),
        func.coalesce(func.sum(sale_qty * Item.selling_price_cents), 0).label("sales"),
        func.coalesce(func.sum(sale_qty * Item.cost_price_cents), 0).label("cost_of_sales"),
    ).select_from(StockMovement).join(
        Item, Item.id == StockMovement.item_id
    ).filter(
        StockMovement.tenant_id == tenant_id
    ).one()

    stock_in = int(totals.stock_in or 0)
    sales = int(totals.sales or 0)
    cost_of_sales = int(totals.cost_of_sales or 0)
    gross_profit = sales - cost_of_sales
    margin = round(gross_profit / sales * 100, 1) if sales > 0 else 0.0

    return {
        "stock_in_value_cents": stock_in,
        "sales_value_cents": sales,
        "cost_of_sales_cents": cost_of_sales,
        "current_stock_value_cents": max(stock_in - cost_of_sales, 0),
        "gross_profit_cents": gross_profit,
        "profit_margin_percent": margin,
        "variance_value_cents": tenant_variance_value(tenant_id, day),
        "variance_date": day.isoformat(),
    }


def profit_by_product(
    tenant_id: int,
    *,
    start=None,
    end=None,
    limit: int = 5,
) -> list[dict]:
    """Top items by (selling - cost) * sold over sale movements in [start, end]."""
    get_tenant(tenant_id)
    start_day, end_day = _parse_range(start, end)
    limit = max(1, min(100, int(limit or 5)))

    sold = func.sum(StockMovement.quantity)
    profit = func.sum(StockMovement.quantity * (Item.selling_price_cents - Item.cost_price_cents))

    q = db.session.query(
        Item.id.label("item_id"),
        Item.name.label("name"),
        sold.label("sold"),
        profit.label("profit"),
    ).select_from(StockMovement).join(
        Item, Item.id == StockMovement.item_id
    ).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.movement_type == MOVEMENT_SALE,
    )
    if start_day:
        q = q.filter(StockMovement.movement_date >= start_day)
    if end_day:
        q = q.filter(StockMovement.movement_date <= end_day)

    rows = q.group_by(Item.id, Item.name).order_by(profit.desc(), Item.name.asc()).limit(limit).all()
    return [
        {
            "item_id": row.item_id,
            "name": row.name,
            "sold": int(row.sold or 0),
            "profit_cents": int(row.profit or 0),
        }
        for row in rows
    ]
