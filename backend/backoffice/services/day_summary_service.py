# Overview: Service-layer operations for day summaries; the aggregate record X/Z reports read.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import DaySummary, LotteryBusinessDay, LotteryPack, Store
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, transaction
from .shift_service import list_open_shifts


class DaySummaryError(ValueError):
    """Raised when a day summary operation is rejected."""
    pass


class StoreNotFoundError(DaySummaryError):
    def __init__(self, store_id: str):
        super().__init__(f"Store not found: {store_id}")
        self.store_id = store_id


class DayAlreadyClosedError(DaySummaryError):
    def __init__(self, store_id: str, business_date: date):
        super().__init__(f"Day already closed. Store: {store_id}, Date: {business_date.isoformat()}")
        self.store_id = store_id
        self.business_date = business_date


class LotteryNotClosedError(DaySummaryError):
    def __init__(self, store_id: str, business_date: date):
        super().__init__(
            f"Lottery must be closed before day can be closed. "
            f"Store: {store_id}, Date: {business_date.isoformat()}"
        )
        self.store_id = store_id
        self.business_date = business_date


class ShiftsStillOpenError(DaySummaryError):
    def __init__(self, store_id: str, business_date: date, open_shifts: list[dict]):
        super().__init__(
            f"All shifts must be closed before proceeding. {len(open_shifts)} shift(s) still open."
        )
        self.store_id = store_id
        self.business_date = business_date
        self.open_shifts = open_shifts


def get_day_summary(store_id: str, business_date: date) -> DaySummary | None:
    return db.session.query(DaySummary).filter_by(
        store_id=store_id,
        business_date=business_date,
    ).first()


def get_or_create_day_summary(store_id: str, business_date: date) -> DaySummary:
    """
    Day summary for (store, date), created OPEN if missing.

    Flushes but does not commit; the caller owns the transaction.
    """
    summary = lock_for_update(
        db.session.query(DaySummary).filter_by(store_id=store_id, business_date=business_date)
    ).first()
    if summary:
        return summary

    if not db.session.get(Store, store_id):
        raise StoreNotFoundError(store_id)

    summary = DaySummary(store_id=store_id, business_date=business_date, status="OPEN")
    db.session.add(summary)
    db.session.flush()
    return summary


def upsert_open_day_summary(store_id: str, business_date: date) -> DaySummary:
    """
    OPEN day summary for (store, date).

    An existing row is reused, never duplicated: a mid-day lottery close
    opens a second business day on the same calendar date, and both days
    aggregate into one summary. A reused CLOSED row is reopened.
    """
    summary = get_or_create_day_summary(store_id, business_date)
    if summary.status != "OPEN":
        summary.status = "OPEN"
        summary.closed_at = None
        summary.closed_by = None
        db.session.flush()
    return summary


def refresh_lottery_totals(summary: DaySummary) -> DaySummary:
    """Re-aggregate lottery totals from the CLOSED lottery days of the summary's date."""
    closed_days = db.session.query(LotteryBusinessDay.id).filter(
        LotteryBusinessDay.store_id == summary.store_id,
        LotteryBusinessDay.business_date == summary.business_date,
        LotteryBusinessDay.status == "CLOSED",
    )
    day_ids = [row.id for row in closed_days.all()]

    if not day_ids:
        summary.lottery_sales_cents = 0
        summary.lottery_tickets_sold = 0
        summary.lottery_packs_depleted = 0
        return summary

    sales, tickets = db.session.query(
        func.coalesce(func.sum(LotteryBusinessDay.total_sales_cents), 0),
        func.coalesce(func.sum(LotteryBusinessDay.total_tickets_sold), 0),
    ).filter(LotteryBusinessDay.id.in_(day_ids)).one()

    depleted = db.session.query(func.count(LotteryPack.id)).filter(
        LotteryPack.depleted_day_id.in_(day_ids)
    ).scalar()

    summary.lottery_sales_cents = int(sales)
    summary.lottery_tickets_sold = int(tickets)
    summary.lottery_packs_depleted = int(depleted or 0)
    return summary


def close_day_summary(
    store_id: str,
    business_date: date,
    closed_by: str,
    *,
    notes: str | None = None,
    exclude_shift_id: str | None = None,
) -> DaySummary:
    """
    Close the aggregate summary of a business date.

    Preconditions:
    - No OPEN shift besides exclude_shift_id (the closing cashier's own)
    - No OPEN or PENDING_CLOSE lottery day for the store

    Raises:
        StoreNotFoundError, DayAlreadyClosedError, ShiftsStillOpenError,
        LotteryNotClosedError
    """
    with transaction():
        if not db.session.get(Store, store_id):
            raise StoreNotFoundError(store_id)

        summary = get_or_create_day_summary(store_id, business_date)
        if summary.status == "CLOSED":
            raise DayAlreadyClosedError(store_id, business_date)

        open_shifts = list_open_shifts(store_id, exclude_shift_id=exclude_shift_id)
        if open_shifts:
            raise ShiftsStillOpenError(
                store_id,
                business_date,
                [s.to_dict() for s in open_shifts],
            )

        lottery_day = db.session.query(LotteryBusinessDay.id).filter(
            LotteryBusinessDay.store_id == store_id,
            LotteryBusinessDay.status.in_(("OPEN", "PENDING_CLOSE")),
        ).first()
        if lottery_day:
            raise LotteryNotClosedError(store_id, business_date)

        refresh_lottery_totals(summary)
        summary.status = "CLOSED"
        summary.closed_at = utcnow()
        summary.closed_by = closed_by
        if notes:
            summary.notes = notes

    return summary
