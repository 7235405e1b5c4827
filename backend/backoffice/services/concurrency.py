# Overview: Service-layer operations for concurrency; transaction scoping, timeouts and retries.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def apply_statement_timeout(timeout_ms: int | None) -> None:
    """
    Bound the current transaction's statements.

    PostgreSQL honors SET LOCAL statement_timeout until the transaction ends;
    other dialects have no per-transaction equivalent and are left alone.
    """
    if not timeout_ms:
        return
    if db.session.get_bind().dialect.name != "postgresql":
        return
    db.session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


@contextmanager
def transaction(*, timeout_ms: int | None = None):
    """
    Run a block as one database transaction.

    Commits when the block finishes, rolls back and re-raises on any error,
    so a failed phase leaves no partial writes behind.
    """
    try:
        apply_statement_timeout(timeout_ms)
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
