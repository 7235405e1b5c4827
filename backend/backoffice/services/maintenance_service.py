# Overview: Service-layer operations for maintenance; periodic sweeps run from the CLI or a scheduler.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..models import LotteryBusinessDay
from backoffice.time_utils import utcnow
from .concurrency import run_with_retry, transaction
from .lottery_day_close_service import revert_pending_closes


def cleanup_expired_pending_closes(*, now: datetime | None = None) -> int:
    """
    Revert every PENDING_CLOSE lottery day whose expiry has passed to OPEN.

    Stateless and safe to run concurrently with itself and with commit_close:
    each row is reverted by a guarded update, so only one caller wins it.
    """
    cutoff = now or utcnow()

    def _op():
        with transaction(timeout_ms=current_app.config.get("LOTTERY_TX_TIMEOUT_MS")):
            return revert_pending_closes(
                LotteryBusinessDay.pending_close_expires_at.isnot(None),
                LotteryBusinessDay.pending_close_expires_at < cutoff,
            )

    reverted = run_with_retry(_op)
    if reverted:
        current_app.logger.info("Reverted %d expired pending lottery close(s) to OPEN", reverted)
    return reverted
