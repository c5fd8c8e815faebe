# Overview: Service-layer CSV exports; reorder sheet, sales template and the daily stock report.

"""
All exports are deterministic: counters ordered by name, items by name
then id. Exporting twice with no new movements produces identical text.

The reorder sheet round-trips: its ADD_<counter> columns are read back by
the reorder_restock import, and the sales template by counter_sales.
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Iterable, Iterator

from ..extensions import db
from ..models import Counter, Item
from stockledger.time_utils import utcnow
from .movement_service import get_tenant
from .stock_service import get_stock_levels, items_below_reorder
from .variance_service import daily_variance


class ExportError(Exception):
    """Raised when an export cannot be produced (422)."""


def _active_counters(tenant_id: int) -> list[Counter]:
    return db.session.query(Counter).filter(
        Counter.tenant_id == tenant_id,
        Counter.is_active.is_(True),
    ).order_by(Counter.name.asc(), Counter.id.asc()).all()


def iter_csv(rows: Iterable[list]) -> Iterator[str]:
    """Yield one CSV-encoded line per row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows:
        writer.writerow(row)
        yield buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)


def _money(cents: int) -> str:
    return f"{cents / 100:.2f}"


# -----------------------------------------------------------------------------
# Below reorder level
# -----------------------------------------------------------------------------

def export_below_reorder_rows(tenant_id: int) -> list[list]:
    """
    Header row followed by one row per active item below its reorder level.

    current_total counts every movement of the item, including those
    recorded without a counter; current_<counter> only that counter's.
    """
    get_tenant(tenant_id)
    counters = _active_counters(tenant_id)
    per_counter = get_stock_levels(tenant_id, by_counter=True)

    header = ["product", "sku", "reorder_level", "current_total"]
    header += [f"current_{c.name}" for c in counters]
    header += [f"ADD_{c.name}" for c in counters]

    rows: list[list] = [header]
    for item, total in items_below_reorder(tenant_id):
        row = [item.name, item.code or "", item.reorder_level, total]
        row += [per_counter.get((item.id, c.id), 0) for c in counters]
        row += [0 for _ in counters]
        rows.append(row)
    return rows


def export_below_reorder_csv(tenant_id: int) -> Iterator[str]:
    return iter_csv(export_below_reorder_rows(tenant_id))


def below_reorder_filename(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"below_reorder_level_{now.strftime('%Y-%m-%d_%H-%M')}.csv"


# -----------------------------------------------------------------------------
# Sales template
# -----------------------------------------------------------------------------

def sales_template_rows(tenant_id: int) -> list[list]:
    get_tenant(tenant_id)
    counters = _active_counters(tenant_id)
    if not counters:
        raise ExportError("No counters found. Create at least one counter before exporting the sales template.")

    items = db.session.query(Item).filter(
        Item.tenant_id == tenant_id,
        Item.is_active.is_(True),
    ).order_by(Item.name.asc(), Item.id.asc()).all()

    rows: list[list] = [["product", "sku"] + [c.name for c in counters]]
    for item in items:
        rows.append([item.name, item.code or ""] + [0 for _ in counters])
    return rows


def sales_template_csv(tenant_id: int) -> str:
    return "".join(iter_csv(sales_template_rows(tenant_id)))


def sales_template_filename(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"sales_template_{now.strftime('%Y%m%d_%H%M%S')}.csv"


# -----------------------------------------------------------------------------
# Daily stock report
# -----------------------------------------------------------------------------

VARIANCE_REPORT_HEADER = [
    "Item", "Opening", "Restock", "Sold", "Closing",
    "Expected", "Variance", "Cost", "Selling", "Profit",
]


def variance_report_rows(tenant_id: int, on_date: date) -> list[list]:
    lines = daily_variance(tenant_id, on_date)
    rows: list[list] = [list(VARIANCE_REPORT_HEADER)]
    for line in lines:
        rows.append([
            line.item_name,
            line.opening,
            line.restock,
            line.sold,
            line.closing if line.counted else "",
            line.expected,
            line.variance,
            _money(line.cost_price_cents),
            _money(line.selling_price_cents),
            _money(line.profit_cents),
        ])
    rows.append([
        "TOTAL",
        sum(l.opening for l in lines),
        sum(l.restock for l in lines),
        sum(l.sold for l in lines),
        sum(l.closing for l in lines),
        sum(l.expected for l in lines),
        sum(l.variance for l in lines),
        "",
        "",
        _money(sum(l.profit_cents for l in lines)),
    ])
    return rows


def variance_report_csv(tenant_id: int, on_date: date) -> str:
    return "".join(iter_csv(variance_report_rows(tenant_id, on_date)))


def variance_report_filename(on_date: date) -> str:
    return f"stock_report_{on_date.isoformat()}.csv"
