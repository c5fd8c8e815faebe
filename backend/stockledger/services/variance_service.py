"""
Daily stock variance.

WHY: Comparing what the ledger says should be on the shelf with what was
physically counted is how shrinkage, theft and capture errors surface.

For one tenant and one business date, per item (optionally per counter):

    expected = opening + restock - sold     (movements dated that day)
    variance = expected - closing           (closing = physical count)
    variance_value_cents = variance * item.cost_price_cents

Sign: positive variance is a shortage (expected > counted).

NOT COUNTED vs ZERO VARIANCE:
An item with no closing_stock movement on the date is reported with
counted=False and contributes zero variance. A counted item whose count
matches expectations is counted=True with variance 0. The two are never
conflated; a missing count is not read as "everything is missing".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import case, func

from ..extensions import db
from ..models import (
    Item,
    StockMovement,
    MOVEMENT_CLOSING,
    MOVEMENT_OPENING,
    MOVEMENT_RESTOCK,
    MOVEMENT_SALE,
)
from .movement_service import get_tenant


@dataclass(frozen=True)
class VarianceLine:
    item_id: int
    item_name: str
    item_code: str | None
    counter_id: int | None
    opening: int
    restock: int
    sold: int
    closing: int
    counted: bool
    cost_price_cents: int
    selling_price_cents: int

    @property
    def expected(self) -> int:
        return self.opening + self.restock - self.sold

    @property
    def variance(self) -> int:
        if not self.counted:
            return 0
        return self.expected - self.closing

    @property
    def variance_value_cents(self) -> int:
        return self.variance * self.cost_price_cents

    @property
    def profit_cents(self) -> int:
        return self.sold * (self.selling_price_cents - self.cost_price_cents)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "item_code": self.item_code,
            "counter_id": self.counter_id,
            "opening": self.opening,
            "restock": self.restock,
            "sold": self.sold,
            "closing": self.closing,
            "counted": self.counted,
            "expected": self.expected,
            "variance": self.variance,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "variance_value_cents": self.variance_value_cents,
            "profit_cents": self.profit_cents,
        }


def _sum_of(movement_type: str):
    return func.coalesce(func.sum(
        case((StockMovement.movement_type == movement_type, StockMovement.quantity), else_=0)
    ), 0)


def daily_variance(
    tenant_id: int,
    on_date: date,
    *,
    item_id: int | None = None,
    counter_id: int | None = None,
    by_counter: bool = False,
) -> list[VarianceLine]:
    """
    Variance lines for every item with movements on the date.

    One grouped query with conditional sums; ordered by item name then
    counter. counter_id restricts to one counter (implies by_counter).
    """
    get_tenant(tenant_id)
    if counter_id is not None:
        by_counter = True

    closing_rows = func.coalesce(func.sum(
        case((StockMovement.movement_type == MOVEMENT_CLOSING, 1), else_=0)
    ), 0)

    group_cols = [Item.id, Item.name, Item.code, Item.cost_price_cents, Item.selling_price_cents]
    if by_counter:
        group_cols.append(StockMovement.counter_id)

    q = db.session.query(
        *group_cols,
        _sum_of(MOVEMENT_OPENING).label("opening"),
        _sum_of(MOVEMENT_RESTOCK).label("restock"),
        _sum_of(MOVEMENT_SALE).label("sold"),
        _sum_of(MOVEMENT_CLOSING).label("closing"),
        closing_rows.label("closing_rows"),
    ).select_from(StockMovement).join(
        Item, Item.id == StockMovement.item_id
    ).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.movement_date == on_date,
    )
    if item_id is not None:
        q = q.filter(StockMovement.item_id == item_id)
    if counter_id is not None:
        q = q.filter(StockMovement.counter_id == counter_id)

    order = [Item.name.asc(), Item.id.asc()]
    if by_counter:
        order.append(StockMovement.counter_id.asc())
    rows = q.group_by(*group_cols).order_by(*order).all()

    return [
        VarianceLine(
            item_id=row.id,
            item_name=row.name,
            item_code=row.code,
            counter_id=row.counter_id if by_counter else None,
            opening=int(row.opening or 0),
            restock=int(row.restock or 0),
            sold=int(row.sold or 0),
            closing=int(row.closing or 0),
            counted=int(row.closing_rows or 0) > 0,
            cost_price_cents=int(row.cost_price_cents or 0),
            selling_price_cents=int(row.selling_price_cents or 0),
        )
        for row in rows
    ]


def tenant_variance_value(tenant_id: int, on_date: date) -> int:
    """Sum of per-item variance value (cents) for the day; uncounted items add nothing."""
    return sum(line.variance_value_cents for line in daily_variance(tenant_id, on_date))


def variance_summary(
    tenant_id: int,
    on_date: date,
    *,
    item_id: int | None = None,
    counter_id: int | None = None,
    by_counter: bool = False,
) -> dict:
    lines = daily_variance(
        tenant_id, on_date, item_id=item_id, counter_id=counter_id, by_counter=by_counter
    )
    counted = [line for line in lines if line.counted]
    return {
        "date": on_date.isoformat(),
        "lines": [line.to_dict() for line in lines],
        "totals": {
            "items": len(lines),
            "counted_items": len(counted),
            "not_counted_items": len(lines) - len(counted),
            "opening": sum(line.opening for line in lines),
            "restock": sum(line.restock for line in lines),
            "sold": sum(line.sold for line in lines),
            "closing": sum(line.closing for line in lines),
            "expected": sum(line.expected for line in lines),
            "variance": sum(line.variance for line in lines),
            "variance_value_cents": sum(line.variance_value_cents for line in lines),
            "profit_cents": sum(line.profit_cents for line in lines),
        },
    }
