# Overview: Service-layer operations for lottery day succession; opens the next business day after a close.

"""
Day Rollover

After a lottery close commits, the store immediately gets its next OPEN
business day so sales recorded after the close land in the new period.

BOUNDARY RULE:
    The new day's business_date is the calendar date (store timezone) of the
    close timestamp, and its opened_at IS the close timestamp. Anything
    timestamped strictly after the close belongs to the new day.

A mid-day close therefore yields two business days with the same calendar
date. They share one DaySummary, since summaries are unique per
(store, date).

Rollover runs after the close is durable. If it fails, the close stands and
the first shift opened afterwards creates the missing day through
ensure_open_business_day.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LotteryBusinessDay, Store
from backoffice.time_utils import utcnow
from .concurrency import run_with_retry, transaction
from .day_summary_service import get_day_summary, upsert_open_day_summary
from .store_service import store_business_date


class RolloverError(ValueError):
    """Raised when the next business day cannot be opened."""
    pass


class BusinessDayConflictError(RolloverError):
    """Another request opened the store's current business day first."""
    pass


def get_current_business_day(store_id: str) -> LotteryBusinessDay | None:
    """The store's OPEN or PENDING_CLOSE day (at most one is expected)."""
    return (
        db.session.query(LotteryBusinessDay)
        .filter(
            LotteryBusinessDay.store_id == store_id,
            LotteryBusinessDay.status.in_(("OPEN", "PENDING_CLOSE")),
        )
        .order_by(LotteryBusinessDay.opened_at.desc(), LotteryBusinessDay.id.desc())
        .first()
    )


def _insert_business_day(day: LotteryBusinessDay) -> None:
    """
    Add and flush a new current day.

    The partial unique index on (store_id) for OPEN/PENDING_CLOSE rows makes
    the second of two racing inserts fail here. The session must be rolled
    back after BusinessDayConflictError.
    """
    db.session.add(day)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise BusinessDayConflictError(
            f"Store {day.store_id} already has an open business day"
        ) from exc


def ensure_open_business_day(
    store: Store,
    *,
    user_id: str | None = None,
    at: datetime | None = None,
) -> tuple[LotteryBusinessDay, bool]:
    """
    Current OPEN/PENDING_CLOSE day of the store, creating an OPEN one if none.

    Returns (day, created). Flushes only; the caller commits.

    Raises:
        BusinessDayConflictError: If a concurrent request created the day first
    """
    day = get_current_business_day(store.id)
    if day:
        return day, False

    at = at or utcnow()
    business_date = store_business_date(store, at)
    summary = get_day_summary(store.id, business_date)

    day = LotteryBusinessDay(
        store_id=store.id,
        business_date=business_date,
        status="OPEN",
        opened_by=user_id,
        opened_at=at,
        day_summary_id=summary.id if summary else None,
    )
    _insert_business_day(day)
    return day, True


def rollover_business_day(
    store_id: str,
    closed_day_id: str,
    closed_at: datetime,
    *,
    user_id: str | None = None,
    closed_summary_id: str | None = None,
) -> LotteryBusinessDay:
    """
    Open the business day that follows a committed close.

    In one transaction:
    1. Upsert the DaySummary for the new date to OPEN (reuse on same date)
    2. Create the new OPEN day linked to it, or link an OPEN day that shift
       opening already created
    3. Link the closed day to its (closed) summary if it has none yet

    Raises:
        RolloverError: If the store or the closed day is missing
    """
    timeout_ms = current_app.config.get("LOTTERY_TX_BULK_TIMEOUT_MS")

    def _op():
        with transaction(timeout_ms=timeout_ms):
            store = db.session.get(Store, store_id)
            if not store:
                raise RolloverError(f"Store not found: {store_id}")

            closed_day = db.session.get(LotteryBusinessDay, closed_day_id)
            if not closed_day or closed_day.status != "CLOSED":
                raise RolloverError(f"Closed business day not found: {closed_day_id}")

            new_business_date = store_business_date(store, closed_at)
            summary = upsert_open_day_summary(store_id, new_business_date)

            next_day = get_current_business_day(store_id)
            if next_day is None:
                next_day = LotteryBusinessDay(
                    store_id=store_id,
                    business_date=new_business_date,
                    status="OPEN",
                    opened_by=user_id,
                    opened_at=closed_at,
                    day_summary_id=summary.id,
                )
                _insert_business_day(next_day)
            elif next_day.day_summary_id is None:
                next_day.day_summary_id = summary.id

            if closed_day.day_summary_id is None:
                summary_id = closed_summary_id
                if summary_id is None:
                    closed_summary = get_day_summary(store_id, closed_day.business_date)
                    summary_id = closed_summary.id if closed_summary else None
                closed_day.day_summary_id = summary_id

            db.session.flush()
        return next_day

    try:
        next_day = run_with_retry(_op)
    except BusinessDayConflictError:
        # A shift opened the next day meanwhile; link that one instead
        next_day = run_with_retry(_op)
    current_app.logger.info(
        "Lottery day rollover for store %s: day %s closed, day %s open (%s)",
        store_id,
        closed_day_id,
        next_day.id,
        next_day.business_date.isoformat(),
    )
    return next_day
