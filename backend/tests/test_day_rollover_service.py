from datetime import datetime, timedelta

import pytest

from backoffice.models import DaySummary, LotteryBusinessDay, Shift, Store
from backoffice.services import day_rollover_service, shift_service
from backoffice.services.day_rollover_service import (
    BusinessDayConflictError,
    RolloverError,
    ensure_open_business_day,
    get_current_business_day,
    rollover_business_day,
)
from backoffice.services.day_summary_service import (
    DayAlreadyClosedError,
    LotteryNotClosedError,
    ShiftsStillOpenError,
    close_day_summary,
    upsert_open_day_summary,
)
from backoffice.services.store_service import store_business_date
from backoffice.time_utils import utcnow


def _closed_day(db_session, store, closed_at, total_sales_cents=0):
    day = LotteryBusinessDay(
        store_id=store.id,
        business_date=closed_at.date(),
        status="CLOSED",
        opened_at=closed_at - timedelta(hours=6),
        closed_at=closed_at,
        total_sales_cents=total_sales_cents,
        total_tickets_sold=0,
    )
    db_session.add(day)
    db_session.commit()
    return day


def _miss_first_lookup(monkeypatch):
    """The first current-day lookup sees nothing, as if another request inserted right after it."""
    real_lookup = day_rollover_service.get_current_business_day
    calls = []

    def _lookup(store_id):
        calls.append(store_id)
        if len(calls) == 1:
            return None
        return real_lookup(store_id)

    monkeypatch.setattr(day_rollover_service, "get_current_business_day", _lookup)
    return calls


def test_rollover_opens_next_day_at_close_instant(db_session, store, user_id):
    closed_at = datetime(2026, 3, 14, 15, 30)
    closed = _closed_day(db_session, store, closed_at)

    next_day = rollover_business_day(store.id, closed.id, closed_at, user_id=user_id)

    assert next_day.status == "OPEN"
    assert next_day.opened_at == closed_at
    assert next_day.opened_by == user_id
    assert next_day.business_date.isoformat() == "2026-03-14"
    assert get_current_business_day(store.id).id == next_day.id


def test_mid_day_close_shares_one_summary(db_session, store):
    closed_at = datetime(2026, 3, 14, 15, 30)
    closed = _closed_day(db_session, store, closed_at)
    existing = upsert_open_day_summary(store.id, closed_at.date())
    db_session.commit()

    next_day = rollover_business_day(store.id, closed.id, closed_at)

    assert next_day.day_summary_id == existing.id
    assert db_session.get(LotteryBusinessDay, closed.id).day_summary_id == existing.id
    assert db_session.query(DaySummary).count() == 1


def test_rollover_reopens_closed_summary_of_same_date(db_session, store, user_id):
    closed_at = datetime(2026, 3, 14, 15, 30)
    closed = _closed_day(db_session, store, closed_at, total_sales_cents=1500)
    summary = close_day_summary(store.id, closed_at.date(), user_id)
    assert summary.status == "CLOSED"
    assert summary.lottery_sales_cents == 1500

    rollover_business_day(store.id, closed.id, closed_at, closed_summary_id=summary.id)

    summary = db_session.get(DaySummary, summary.id)
    assert summary.status == "OPEN"
    assert summary.closed_at is None
    assert summary.lottery_sales_cents == 1500


def test_rollover_links_existing_open_day(db_session, store, open_day):
    closed_at = utcnow()
    closed = _closed_day(db_session, store, closed_at)

    next_day = rollover_business_day(store.id, closed.id, closed_at)

    assert next_day.id == open_day.id
    assert next_day.day_summary_id is not None
    assert db_session.query(LotteryBusinessDay).filter_by(status="OPEN").count() == 1


def test_rollover_uses_store_timezone(db_session, user_id):
    store = Store(name="Chicago", code="CHI", timezone="America/Chicago")
    db_session.add(store)
    db_session.commit()
    # 02:00 UTC on the 15th is still the 14th in Chicago
    closed_at = datetime(2026, 3, 15, 2, 0)
    closed = _closed_day(db_session, store, closed_at)

    next_day = rollover_business_day(store.id, closed.id, closed_at)

    assert next_day.business_date.isoformat() == "2026-03-14"


def test_unknown_timezone_falls_back_to_utc(db_session):
    store = Store(name="Nowhere", code="NOW", timezone="Mars/Olympus_Mons")
    db_session.add(store)
    db_session.commit()

    assert store_business_date(store, datetime(2026, 3, 15, 2, 0)).isoformat() == "2026-03-15"


def test_rollover_requires_closed_day(db_session, store, open_day):
    with pytest.raises(RolloverError):
        rollover_business_day(store.id, open_day.id, utcnow())


def test_ensure_open_business_day_is_idempotent(db_session, store, user_id):
    day, created = ensure_open_business_day(store, user_id=user_id)
    db_session.commit()
    again, created_again = ensure_open_business_day(store, user_id=user_id)

    assert created is True
    assert created_again is False
    assert again.id == day.id


def test_first_shift_creates_missing_day(db_session, store, user_id):
    shift = shift_service.open_shift(store.id, user_id, terminal_name="REG-1")

    day = get_current_business_day(store.id)
    assert day is not None
    assert day.opened_at == shift.opened_at
    assert day.opened_by == user_id


def test_open_shift_rejects_second_shift_for_cashier(db_session, store, user_id):
    shift_service.open_shift(store.id, user_id)
    with pytest.raises(shift_service.ShiftError):
        shift_service.open_shift(store.id, user_id)


def test_close_shift(db_session, store, user_id):
    shift = shift_service.open_shift(store.id, user_id)
    assert shift_service.has_open_shifts(store.id)

    shift_service.close_shift(shift.id)

    assert not shift_service.has_open_shifts(store.id)
    with pytest.raises(shift_service.ShiftError):
        shift_service.close_shift(shift.id)


def test_close_day_summary_preconditions(db_session, store, make_shift, open_day, user_id):
    business_date = open_day.business_date

    with pytest.raises(LotteryNotClosedError):
        close_day_summary(store.id, business_date, user_id)

    open_day.status = "CLOSED"
    open_day.closed_at = utcnow()
    db_session.commit()

    own = make_shift(store, cashier_id=user_id)
    make_shift(store)
    with pytest.raises(ShiftsStillOpenError) as excinfo:
        close_day_summary(store.id, business_date, user_id, exclude_shift_id=own.id)
    assert len(excinfo.value.open_shifts) == 1


def test_close_day_summary_twice(db_session, store, user_id):
    business_date = utcnow().date()
    close_day_summary(store.id, business_date, user_id, notes="End of day")

    with pytest.raises(DayAlreadyClosedError):
        close_day_summary(store.id, business_date, user_id)


def _current_days(db_session, store):
    return db_session.query(LotteryBusinessDay).filter(
        LotteryBusinessDay.store_id == store.id,
        LotteryBusinessDay.status.in_(("OPEN", "PENDING_CLOSE")),
    ).all()


def test_second_current_day_is_rejected(db_session, store, open_day, monkeypatch):
    _miss_first_lookup(monkeypatch)

    with pytest.raises(BusinessDayConflictError):
        ensure_open_business_day(store)
    db_session.rollback()

    assert [d.id for d in _current_days(db_session, store)] == [open_day.id]


def test_open_shift_reuses_day_created_concurrently(db_session, store, open_day, user_id, monkeypatch):
    calls = _miss_first_lookup(monkeypatch)

    shift = shift_service.open_shift(store.id, user_id)

    assert len(calls) == 2
    assert db_session.get(Shift, shift.id).status == "OPEN"
    assert [d.id for d in _current_days(db_session, store)] == [open_day.id]


def test_rollover_links_day_created_concurrently(db_session, store, open_day, monkeypatch):
    closed_at = utcnow()
    closed = _closed_day(db_session, store, closed_at)
    _miss_first_lookup(monkeypatch)

    next_day = rollover_business_day(store.id, closed.id, closed_at)

    assert next_day.id == open_day.id
    assert [d.id for d in _current_days(db_session, store)] == [open_day.id]
