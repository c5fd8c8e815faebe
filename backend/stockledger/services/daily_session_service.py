"""
Daily Session Gate

WHY: Physical counts only mean something against a known trading day.
The gate enforces one open/close cycle per tenant per date and decides
which session counts are recorded against.

DESIGN PRINCIPLES:
- One session per tenant per date (unique constraint is the authority)
- At most one open session per tenant (partial unique index)
- A day cannot be opened while any other day is still open
- Closed is terminal for that date; sessions are never reopened
- Opening a day carries the previous session day's closing counts
  forward as opening_stock movements (STOCK_CARRY_FORWARD_OPENING).
  opening_stock adds to the running balance, so a carried count is
  counted again on top of the stock it describes; turn the flag off when
  running totals matter more than per-day variance
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailySession, StockMovement, MOVEMENT_CLOSING, MOVEMENT_OPENING
from stockledger.time_utils import utcnow, parse_business_date
from .concurrency import lock_for_update, run_with_retry
from .movement_service import get_tenant, record_movement, tenant_today


class DailySessionError(Exception):
    """Raised for session gate conflicts; no state is changed."""


class AlreadyOpenError(DailySessionError):
    pass


class DayClosedError(DailySessionError):
    pass


class PriorSessionOpenError(DailySessionError):
    def __init__(self, session: DailySession):
        self.session = session
        super().__init__(
            f"The session for {session.session_date.isoformat()} is still open. "
            f"Close it before opening a new day."
        )


class NoOpenSessionError(DailySessionError):
    pass


class CountMissingError(DailySessionError):
    pass


@dataclass
class DayStatus:
    today: date
    session: DailySession | None
    unfinished: DailySession | None

    @property
    def available_action(self) -> str:
        if self.unfinished is not None:
            return "close_previous_day"
        if self.session is None or not self.session.is_open:
            return "open_day"
        return "close_day"

    def to_dict(self) -> dict:
        return {
            "today": self.today.isoformat(),
            "session": self.session.to_dict() if self.session else None,
            "unfinished_session": self.unfinished.to_dict() if self.unfinished else None,
            "available_action": self.available_action,
        }


def _resolve_day(tenant_id: int, on_date) -> date:
    day = parse_business_date(on_date)
    return day if day is not None else tenant_today(tenant_id)


def get_session(tenant_id: int, on_date) -> DailySession | None:
    return db.session.query(DailySession).filter_by(
        tenant_id=tenant_id,
        session_date=parse_business_date(on_date),
    ).first()


def get_open_session(tenant_id: int) -> DailySession | None:
    """The tenant's open session, if any (there is at most one)."""
    return db.session.query(DailySession).filter_by(
        tenant_id=tenant_id,
        is_open=True,
    ).first()


def require_open_session(tenant_id: int) -> DailySession:
    session = get_open_session(tenant_id)
    if session is None:
        raise NoOpenSessionError("No open session. Open the day before recording counts.")
    return session


def get_unfinished_session(tenant_id: int, before: date) -> DailySession | None:
    """Oldest session dated before `before` that was never closed."""
    return db.session.query(DailySession).filter(
        DailySession.tenant_id == tenant_id,
        DailySession.is_open.is_(True),
        DailySession.session_date < before,
    ).order_by(DailySession.session_date.asc()).first()


def get_day_status(tenant_id: int, on_date=None) -> DayStatus:
    today = _resolve_day(tenant_id, on_date)
    return DayStatus(
        today=today,
        session=get_session(tenant_id, today),
        unfinished=get_unfinished_session(tenant_id, today),
    )


def _check_can_open(tenant_id: int, day: date) -> None:
    existing = get_session(tenant_id, day)
    if existing is not None:
        if existing.is_open:
            raise AlreadyOpenError("Day is already open. You cannot open it twice.")
        raise DayClosedError("Today's session was already closed. You cannot reopen it.")

    # Any other open session blocks, including one dated after `day`
    open_session = get_open_session(tenant_id)
    if open_session is not None:
        raise PriorSessionOpenError(open_session)


def _carry_forward_opening_stock(session: DailySession, actor_id: int | None) -> int:
    """
    Copy the closing counts of the previous session day into the new
    session as opening_stock movements. Runs inside the open_day transaction.
    """
    previous = db.session.query(DailySession).filter(
        DailySession.tenant_id == session.tenant_id,
        DailySession.session_date < session.session_date,
    ).order_by(DailySession.session_date.desc()).first()
    if previous is None:
        return 0
    previous_day = previous.session_date

    closings = db.session.query(StockMovement).filter(
        StockMovement.tenant_id == session.tenant_id,
        StockMovement.movement_type == MOVEMENT_CLOSING,
        StockMovement.movement_date == previous_day,
    ).order_by(StockMovement.id.asc()).all()

    carried = 0
    for closing in closings:
        # Zero counts carry nothing forward
        if closing.quantity <= 0:
            continue
        record_movement(
            tenant_id=session.tenant_id,
            item_id=closing.item_id,
            counter_id=closing.counter_id,
            session_id=session.id,
            movement_type=MOVEMENT_OPENING,
            quantity=closing.quantity,
            movement_date=session.session_date,
            notes=f"Carried forward from {previous_day.isoformat()} closing count",
            actor_id=actor_id,
            commit=False,
        )
        carried += 1
    return carried


def open_day(tenant_id: int, actor_id: int | None, on_date=None) -> DailySession:
    """
    Open the tenant's trading day.

    Raises:
        AlreadyOpenError: the day is already open (including a lost insert race)
        DayClosedError: the day was opened and closed already
        PriorSessionOpenError: another day (usually an earlier one) is still open
    """
    get_tenant(tenant_id)
    day = _resolve_day(tenant_id, on_date)

    def _op():
        _check_can_open(tenant_id, day)

        session = DailySession(
            tenant_id=tenant_id,
            session_date=day,
            opened_by=actor_id,
            opening_time=utcnow(),
            is_open=True,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Lost the race: re-check so the caller gets the precise conflict
            db.session.rollback()
            _check_can_open(tenant_id, day)
            raise AlreadyOpenError("Another session is already open for this tenant.") from exc

        carried = 0
        if current_app.config.get("STOCK_CARRY_FORWARD_OPENING", True):
            carried = _carry_forward_opening_stock(session, actor_id)
        db.session.commit()
        current_app.logger.info(
            "Opened day %s for tenant %s (%d opening rows carried forward)",
            day.isoformat(), tenant_id, carried,
        )
        return session

    try:
        return run_with_retry(_op)
    except DailySessionError:
        db.session.rollback()
        raise


def _close(session: DailySession, actor_id: int | None) -> DailySession:
    counted = db.session.query(StockMovement.id).filter(
        StockMovement.tenant_id == session.tenant_id,
        StockMovement.movement_type == MOVEMENT_CLOSING,
        StockMovement.movement_date == session.session_date,
    ).first()

    if counted is None:
        if current_app.config.get("STOCK_REQUIRE_COUNT_BEFORE_CLOSE"):
            raise CountMissingError(
                f"No physical count recorded for {session.session_date.isoformat()}. "
                f"Import the closing count before closing the day."
            )
        current_app.logger.warning(
            "Closing day %s for tenant %s without a physical count; every item will read as not counted",
            session.session_date.isoformat(), session.tenant_id,
        )

    session.is_open = False
    session.closed_by = actor_id
    session.closing_time = utcnow()
    db.session.commit()
    current_app.logger.info("Closed day %s for tenant %s", session.session_date.isoformat(), session.tenant_id)
    return session


def close_day(tenant_id: int, actor_id: int | None, on_date=None) -> DailySession | None:
    """
    Close the tenant's session for the day.

    Returns None when there is no session (nothing to close) and the
    session unchanged when it is already closed.

    Raises:
        CountMissingError: STOCK_REQUIRE_COUNT_BEFORE_CLOSE is set and no
            closing_stock was recorded for the day
    """
    day = _resolve_day(tenant_id, on_date)

    def _op():
        session = lock_for_update(
            db.session.query(DailySession).filter_by(tenant_id=tenant_id, session_date=day)
        ).first()
        if session is None or not session.is_open:
            return session
        return _close(session, actor_id)

    try:
        return run_with_retry(_op)
    except DailySessionError:
        db.session.rollback()
        raise


def close_previous_day(tenant_id: int, actor_id: int | None, on_date=None) -> DailySession | None:
    """Close the oldest unfinished session dated before today, if any."""
    today = _resolve_day(tenant_id, on_date)

    def _op():
        unfinished = get_unfinished_session(tenant_id, today)
        if unfinished is None:
            return None
        return _close(unfinished, actor_id)

    try:
        return run_with_retry(_op)
    except DailySessionError:
        db.session.rollback()
        raise
