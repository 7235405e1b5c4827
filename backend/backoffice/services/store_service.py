from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfoNotFoundError

from flask import current_app

from backoffice.extensions import db
from backoffice.models import Store
from backoffice.services.concurrency import run_with_retry
from backoffice.time_utils import business_date_for, resolve_timezone


class StoreError(ValueError):
    """Raised when store operations fail."""
    pass


def create_store(name: str, code: str | None = None, timezone: str = "UTC") -> Store:
    def _op():
        if not name:
            raise StoreError("Store name is required")
        try:
            resolve_timezone(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise StoreError(f"Unknown timezone: {timezone}")

        store = Store(name=name, code=code, timezone=timezone or "UTC")
        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def get_store(store_id: str) -> Store | None:
    return db.session.query(Store).filter_by(id=store_id).first()


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.name.asc()).all()


def store_business_date(store: Store, at: datetime) -> date:
    """Calendar date of a UTC-naive timestamp in the store's timezone."""
    try:
        return business_date_for(at, store.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        current_app.logger.warning(
            "Store %s has unknown timezone %r; using UTC business date",
            store.id,
            store.timezone,
        )
        return business_date_for(at, None)
