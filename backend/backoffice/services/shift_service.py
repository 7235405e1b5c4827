"""
Cashier Shift Service

The lottery day close consumes shifts only through list_open_shifts: any OPEN
shift other than the closing cashier's own blocks the close.

open_shift is also the lazy fallback for day rollover. If the post-commit
rollover failed, the first shift of the next day creates the missing OPEN
lottery business day.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Shift, Store
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update


class ShiftError(ValueError):
    """Raised for shift management errors."""
    pass


def list_open_shifts(store_id: str, exclude_shift_id: str | None = None) -> list[Shift]:
    """OPEN shifts of a store, optionally ignoring one (the caller's own)."""
    query = db.session.query(Shift).filter(
        Shift.store_id == store_id,
        Shift.status == "OPEN",
    )
    if exclude_shift_id:
        query = query.filter(Shift.id != exclude_shift_id)
    return query.order_by(Shift.opened_at).all()


def has_open_shifts(store_id: str, exclude_shift_id: str | None = None) -> bool:
    return bool(list_open_shifts(store_id, exclude_shift_id))


def open_shift(store_id: str, cashier_id: str, terminal_name: str | None = None) -> Shift:
    """
    Open a shift for a cashier.

    Raises:
        ShiftError: If the store is unknown or the cashier already has an open shift
    """
    from .day_rollover_service import BusinessDayConflictError

    try:
        return _open_shift(store_id, cashier_id, terminal_name)
    except BusinessDayConflictError:
        # Another request created the lottery day between our read and insert
        db.session.rollback()
        return _open_shift(store_id, cashier_id, terminal_name)


def _open_shift(store_id: str, cashier_id: str, terminal_name: str | None) -> Shift:
    from .day_rollover_service import ensure_open_business_day

    store = db.session.get(Store, store_id)
    if not store:
        raise ShiftError("Store not found")

    existing_open = db.session.query(Shift).filter_by(
        store_id=store_id,
        cashier_id=cashier_id,
        status="OPEN",
    ).first()
    if existing_open:
        raise ShiftError(f"Cashier already has open shift ({existing_open.id})")

    shift = Shift(
        store_id=store_id,
        cashier_id=cashier_id,
        terminal_name=terminal_name,
        status="OPEN",
        opened_at=utcnow(),
    )
    db.session.add(shift)

    day, created = ensure_open_business_day(store, user_id=cashier_id, at=shift.opened_at)
    if created:
        current_app.logger.warning(
            "No open lottery day for store %s at shift open; created day %s (%s)",
            store_id,
            day.id,
            day.business_date.isoformat(),
        )

    db.session.commit()
    return shift


def close_shift(shift_id: str) -> Shift:
    """Close a shift. Closed shifts are final."""
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()

    if not shift:
        raise ShiftError("Shift not found")

    if shift.status != "OPEN":
        raise ShiftError("Shift already closed")

    shift.status = "CLOSED"
    shift.closed_at = utcnow()
    db.session.commit()
    return shift
