# Overview: Pytest coverage for the daily session gate.

"""
Daily Session Tests

- open/close lifecycle per tenant and date
- duplicate open, reopen after close and unfinished prior days are rejected
- closing counts carry forward as opening stock when configured
- day status reports the one action the operator can take
"""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError
from stockledger.models import DailySession, StockMovement, MOVEMENT_CLOSING, MOVEMENT_OPENING
from stockledger.services import daily_session_service
from stockledger.services.daily_session_service import (
    AlreadyOpenError,
    CountMissingError,
    DayClosedError,
    NoOpenSessionError,
    PriorSessionOpenError,
    close_day,
    close_previous_day,
    get_day_status,
    get_open_session,
    open_day,
    require_open_session,
)
from stockledger.services.movement_service import record_movement
from stockledger.services.stock_service import get_current_stock


MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)


def _count(tenant, item, quantity, session, counter=None):
    return record_movement(
        tenant_id=tenant.id,
        item_id=item.id,
        movement_type=MOVEMENT_CLOSING,
        quantity=quantity,
        counter_id=counter.id if counter else None,
        session_id=session.id,
        actor_id=None,
    )


class TestOpenDay:
    def test_open_creates_open_session(self, db_session, tenant_a, user_a):
        session = open_day(tenant_a.id, user_a.id, MONDAY)

        assert session.is_open is True
        assert session.session_date == MONDAY
        assert session.opened_by == user_a.id
        assert session.opening_time is not None
        assert get_open_session(tenant_a.id).id == session.id

    def test_open_twice_rejected(self, db_session, tenant_a, user_a):
        open_day(tenant_a.id, user_a.id, MONDAY)

        with pytest.raises(AlreadyOpenError):
            open_day(tenant_a.id, user_a.id, MONDAY)
        assert db_session.query(DailySession).count() == 1

    def test_reopen_after_close_rejected(self, db_session, tenant_a, user_a):
        open_day(tenant_a.id, user_a.id, MONDAY)
        close_day(tenant_a.id, user_a.id, MONDAY)

        with pytest.raises(DayClosedError):
            open_day(tenant_a.id, user_a.id, MONDAY)

    def test_prior_open_day_blocks_new_day(self, db_session, tenant_a, user_a):
        monday = open_day(tenant_a.id, user_a.id, MONDAY)

        with pytest.raises(PriorSessionOpenError) as excinfo:
            open_day(tenant_a.id, user_a.id, TUESDAY)
        assert excinfo.value.session.id == monday.id
        assert "2026-03-02" in str(excinfo.value)

    def test_sessions_are_tenant_scoped(self, db_session, tenant_a, tenant_b, user_a, user_b):
        """An open day in tenant A does not block tenant B."""
        open_day(tenant_a.id, user_a.id, MONDAY)
        session_b = open_day(tenant_b.id, user_b.id, MONDAY)

        assert session_b.tenant_id == tenant_b.id
        assert get_open_session(tenant_a.id).tenant_id == tenant_a.id

    def test_later_open_day_blocks_earlier_day(self, db_session, tenant_a, user_a):
        tuesday = open_day(tenant_a.id, user_a.id, TUESDAY)

        with pytest.raises(PriorSessionOpenError) as excinfo:
            open_day(tenant_a.id, user_a.id, MONDAY)
        assert excinfo.value.session.id == tuesday.id
        assert db_session.query(DailySession).count() == 1


class TestSessionStorageGuards:
    def test_second_open_session_rejected_by_database(self, db_session, tenant_a):
        db_session.add_all([
            DailySession(tenant_id=tenant_a.id, session_date=MONDAY, is_open=True),
            DailySession(tenant_id=tenant_a.id, session_date=TUESDAY, is_open=True),
        ])

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_second_session_same_date_rejected_by_database(self, db_session, tenant_a):
        db_session.add_all([
            DailySession(tenant_id=tenant_a.id, session_date=MONDAY, is_open=False),
            DailySession(tenant_id=tenant_a.id, session_date=MONDAY, is_open=False),
        ])

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_lost_open_race_reports_already_open(self, db_session, tenant_a, user_a, monkeypatch):
        """A competing open committed between the check and the insert."""
        real_check = daily_session_service._check_can_open
        calls = []

        def check_then_lose_race(tenant_id, day):
            calls.append(day)
            if len(calls) == 1:
                db_session.add(DailySession(tenant_id=tenant_id, session_date=day, is_open=True))
                db_session.commit()
                return
            real_check(tenant_id, day)

        monkeypatch.setattr(daily_session_service, "_check_can_open", check_then_lose_race)

        with pytest.raises(AlreadyOpenError):
            open_day(tenant_a.id, user_a.id, MONDAY)
        assert len(calls) == 2
        assert db_session.query(DailySession).filter_by(tenant_id=tenant_a.id).count() == 1


class TestCarryForward:
    def test_closing_counts_become_opening_stock(self, db_session, tenant_a, user_a, beer, soda, main_bar):
        monday = open_day(tenant_a.id, user_a.id, MONDAY)
        _count(tenant_a, beer, 40, monday, counter=main_bar)
        _count(tenant_a, soda, 0, monday)
        close_day(tenant_a.id, user_a.id, MONDAY)

        tuesday = open_day(tenant_a.id, user_a.id, TUESDAY)

        openings = db_session.query(StockMovement).filter_by(
            movement_type=MOVEMENT_OPENING, session_id=tuesday.id
        ).all()
        assert [(m.item_id, m.counter_id, m.quantity) for m in openings] == [(beer.id, main_bar.id, 40)]
        assert openings[0].movement_date == TUESDAY
        assert "2026-03-02" in openings[0].notes

    def test_carry_forward_can_be_disabled(self, app, db_session, tenant_a, user_a, beer, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_CARRY_FORWARD_OPENING", False)
        monday = open_day(tenant_a.id, user_a.id, MONDAY)
        _count(tenant_a, beer, 40, monday)
        close_day(tenant_a.id, user_a.id, MONDAY)

        open_day(tenant_a.id, user_a.id, TUESDAY)

        assert db_session.query(StockMovement).filter_by(movement_type=MOVEMENT_OPENING).count() == 0
        assert get_current_stock(tenant_a.id, beer.id) == 0

    def test_first_day_has_nothing_to_carry(self, db_session, tenant_a, user_a, beer):
        open_day(tenant_a.id, user_a.id, MONDAY)
        assert db_session.query(StockMovement).count() == 0


class TestCloseDay:
    def test_close_marks_session_closed(self, db_session, tenant_a, user_a, beer):
        session = open_day(tenant_a.id, user_a.id, MONDAY)
        _count(tenant_a, beer, 12, session)

        closed = close_day(tenant_a.id, user_a.id, MONDAY)

        assert closed.is_open is False
        assert closed.closed_by == user_a.id
        assert closed.closing_time is not None
        assert get_open_session(tenant_a.id) is None

    def test_close_without_session_is_noop(self, db_session, tenant_a, user_a):
        assert close_day(tenant_a.id, user_a.id, MONDAY) is None

    def test_close_twice_returns_closed_session(self, db_session, tenant_a, user_a):
        open_day(tenant_a.id, user_a.id, MONDAY)
        first = close_day(tenant_a.id, user_a.id, MONDAY)
        second = close_day(tenant_a.id, user_a.id, MONDAY)

        assert second.id == first.id
        assert second.is_open is False

    def test_close_without_count_allowed_by_default(self, db_session, tenant_a, user_a):
        open_day(tenant_a.id, user_a.id, MONDAY)
        assert close_day(tenant_a.id, user_a.id, MONDAY).is_open is False

    def test_close_without_count_rejected_when_required(self, app, db_session, tenant_a, user_a, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_REQUIRE_COUNT_BEFORE_CLOSE", True)
        open_day(tenant_a.id, user_a.id, MONDAY)

        with pytest.raises(CountMissingError):
            close_day(tenant_a.id, user_a.id, MONDAY)
        assert get_open_session(tenant_a.id) is not None

    def test_counts_rejected_on_closed_session(self, db_session, tenant_a, user_a, beer):
        from stockledger.validation import ValidationError

        session = open_day(tenant_a.id, user_a.id, MONDAY)
        close_day(tenant_a.id, user_a.id, MONDAY)

        with pytest.raises(ValidationError):
            _count(tenant_a, beer, 5, session)

    def test_require_open_session(self, db_session, tenant_a, user_a):
        with pytest.raises(NoOpenSessionError):
            require_open_session(tenant_a.id)
        session = open_day(tenant_a.id, user_a.id, MONDAY)
        assert require_open_session(tenant_a.id).id == session.id


class TestClosePreviousDay:
    def test_closes_oldest_unfinished(self, db_session, tenant_a, user_a):
        open_day(tenant_a.id, user_a.id, MONDAY)

        closed = close_previous_day(tenant_a.id, user_a.id, TUESDAY)

        assert closed.session_date == MONDAY
        assert closed.is_open is False
        assert open_day(tenant_a.id, user_a.id, TUESDAY).is_open is True

    def test_nothing_unfinished(self, db_session, tenant_a, user_a):
        open_day(tenant_a.id, user_a.id, TUESDAY)
        assert close_previous_day(tenant_a.id, user_a.id, TUESDAY) is None


class TestDayStatus:
    def test_action_progression(self, db_session, tenant_a, user_a):
        assert get_day_status(tenant_a.id, MONDAY).available_action == "open_day"

        open_day(tenant_a.id, user_a.id, MONDAY)
        status = get_day_status(tenant_a.id, MONDAY)
        assert status.available_action == "close_day"
        assert status.to_dict()["session"]["is_open"] is True

        next_day = get_day_status(tenant_a.id, TUESDAY)
        assert next_day.available_action == "close_previous_day"
        assert next_day.to_dict()["unfinished_session"]["session_date"] == "2026-03-02"

        close_day(tenant_a.id, user_a.id, MONDAY)
        assert get_day_status(tenant_a.id, TUESDAY).available_action == "open_day"
