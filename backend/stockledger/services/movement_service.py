# Overview: Service-layer operations for the stock movement ledger; the single write path for movements.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import case

from ..extensions import db
from ..models import (
    Counter,
    DailySession,
    Item,
    StockMovement,
    Tenant,
    MOVEMENT_CLOSING,
    MOVEMENT_SALE,
    MOVEMENT_TYPES,
    STOCK_IN_TYPES,
)
from ..validation import ValidationError, parse_strict_int
from stockledger.time_utils import business_date, parse_business_date
from .concurrency import run_in_transaction
"""
Stock Ledger Invariants (authoritative)

- Stock is ledger-derived from StockMovement rows; never stored as a mutable quantity.
- Movements are append-only: no updates, no deletes. Corrections are new rows.
- quantity is stored positive; movement_type carries the sign:
    opening_stock, restock  -> +quantity
    sale                    -> -quantity
    closing_stock           -> 0 (physical count snapshot, read by the variance report)
- opening_stock / restock / sale need quantity > 0; closing_stock accepts 0.
- Every movement belongs to one tenant, and its item, counter and session
  must belong to the same tenant.
"""


def signed_quantity(movement_type: str, quantity: int) -> int:
    """Contribution of one movement to the running stock balance."""
    if movement_type in STOCK_IN_TYPES:
        return quantity
    if movement_type == MOVEMENT_SALE:
        return -quantity
    return 0


def signed_quantity_expr():
    """SQL twin of signed_quantity() for grouped aggregation."""
    return case(
        (StockMovement.movement_type.in_(STOCK_IN_TYPES), StockMovement.quantity),
        (StockMovement.movement_type == MOVEMENT_SALE, -StockMovement.quantity),
        else_=0,
    )


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise ValidationError(f"Tenant {tenant_id} not found")
    return tenant


def tenant_today(tenant_id: int) -> date:
    """Business date for the tenant, honoring its timezone."""
    return business_date(get_tenant(tenant_id).timezone)


def ensure_item_in_tenant(tenant_id: int, item_id: int) -> Item:
    item = db.session.get(Item, item_id) if item_id is not None else None
    if item is None:
        raise ValidationError("item not found")
    if item.tenant_id != tenant_id:
        raise ValidationError("item does not belong to tenant")
    return item


def _ensure_counter_in_tenant(tenant_id: int, counter_id: int) -> Counter:
    counter = db.session.get(Counter, counter_id)
    if counter is None or counter.tenant_id != tenant_id:
        raise ValidationError("counter does not belong to tenant")
    return counter


def _ensure_session_in_tenant(tenant_id: int, session_id: int) -> DailySession:
    session = db.session.get(DailySession, session_id)
    if session is None or session.tenant_id != tenant_id:
        raise ValidationError("session does not belong to tenant")
    return session


def _validate_quantity(movement_type: str, quantity) -> int:
    qty = parse_strict_int(quantity, "quantity")
    if movement_type == MOVEMENT_CLOSING:
        if qty < 0:
            raise ValidationError("closing_stock quantity cannot be negative")
    elif qty <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}")
    return qty


def record_movement(
    *,
    tenant_id: int,
    item_id: int,
    movement_type: str,
    quantity,
    actor_id: int | None,
    counter_id: int | None = None,
    session_id: int | None = None,
    movement_date=None,
    notes: str | None = None,
    commit: bool = True,
) -> int:
    """
    Append one immutable movement and return its id.

    commit=False only flushes, so batch callers (imports, opening carry
    forward) keep every movement inside their own transaction.

    Raises:
        ValidationError: unknown type, foreign item/counter/session, bad quantity,
            or a closing count against a closed session
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    ensure_item_in_tenant(tenant_id, item_id)
    qty = _validate_quantity(movement_type, quantity)

    if counter_id is not None:
        _ensure_counter_in_tenant(tenant_id, counter_id)

    session = None
    if session_id is not None:
        session = _ensure_session_in_tenant(tenant_id, session_id)
        if movement_type == MOVEMENT_CLOSING and not session.is_open:
            raise ValidationError("closing counts can only be recorded against an open session")

    try:
        movement_day = parse_business_date(movement_date)
    except ValueError:
        raise ValidationError("movement_date must be an ISO-8601 date")
    if movement_day is None:
        movement_day = session.session_date if session is not None else tenant_today(tenant_id)

    def _op():
        movement = StockMovement(
            tenant_id=tenant_id,
            session_id=session_id,
            counter_id=counter_id,
            item_id=item_id,
            movement_type=movement_type,
            quantity=qty,
            movement_date=movement_day,
            notes=(notes or None),
            created_by=actor_id,
        )
        db.session.add(movement)
        db.session.flush()
        return movement.id

    if not commit:
        return _op()

    movement_id = run_in_transaction(_op)
    current_app.logger.debug(
        "Recorded %s movement %s (tenant=%s item=%s qty=%s)",
        movement_type, movement_id, tenant_id, item_id, qty,
    )
    return movement_id


def list_movements(
    *,
    tenant_id: int,
    item_id: int | None = None,
    counter_id: int | None = None,
    movement_date: date | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Newest-first movement listing, always tenant scoped."""
    q = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if item_id is not None:
        q = q.filter(StockMovement.item_id == item_id)
    if counter_id is not None:
        q = q.filter(StockMovement.counter_id == counter_id)
    if movement_date is not None:
        q = q.filter(StockMovement.movement_date == movement_date)
    if movement_type is not None:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Invalid movement type: {movement_type}")
        q = q.filter(StockMovement.movement_type == movement_type)

    limit = max(1, min(1000, int(limit or 200)))
    return q.order_by(StockMovement.movement_date.desc(), StockMovement.id.desc()).limit(limit).all()
