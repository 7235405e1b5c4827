# Overview: Service-layer operations for the lottery day close; two-phase prepare/commit/cancel workflow.

"""
Lottery Day Close Service

================================================================================
PURPOSE: Reconcile lottery pack inventory against sales and close the business
day atomically, in two phases.
================================================================================

STATE MACHINE:
    OPEN -> PENDING_CLOSE -> CLOSED
    PENDING_CLOSE -> OPEN           (cancel, expiry at commit, expiry sweep)

    prepare_close: validate the scans, compute a preview, stage the scans on
                   the business day (PENDING_CLOSE) with an expiry.
                   Packs and day-packs are NOT touched.
    commit_close:  recompute from the staged scans, close the day, write
                   day-packs, deplete packs marked sold out. Then, best-effort,
                   close the day summary and open the next business day.
    cancel_close:  drop the staged scans. Idempotent.

RULES:
1. Every transition is one transaction with a bounded timeout
2. Transitions use guarded updates (WHERE id = ? AND status = ?) and check the
   affected row count; a zero count means another request got there first
3. The business day row is the only point of mutual exclusion for a store
4. A stale PENDING_CLOSE is never permanent: commit reverts it when expired,
   and the maintenance sweep reverts whatever commit never saw
5. The close is durable once commit's transaction ends; summary close and
   rollover failures are logged, never raised

================================================================================
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import LotteryBusinessDay, LotteryDayPack, LotteryPack, Store
from backoffice.time_utils import to_utc_naive, to_utc_z, utcnow
from .concurrency import lock_for_update, transaction
from .day_rollover_service import (
    BusinessDayConflictError,
    ensure_open_business_day,
    get_current_business_day,
    rollover_business_day,
)
from .day_summary_service import close_day_summary
from .lottery_close_validation import (
    CONCURRENT_MODIFICATION,
    DAY_ALREADY_CLOSED,
    DAY_NOT_FOUND,
    DAY_NOT_PENDING,
    PENDING_EXPIRED,
    STORE_NOT_FOUND,
    DayCloseError,
    LotteryClosing,
    PendingCloseData,
    coerce_closings,
    ensure_no_other_open_shifts,
    load_active_packs,
    validate_closings,
    validate_entry_method,
    validate_optional_uuid,
    validate_serial_bounds,
    validate_uuid,
)
from .lottery_serials import calculate_tickets_sold, get_starting_serials
from .store_service import get_store


_CLEARED_PENDING = {
    "pending_close_data": None,
    "pending_close_by": None,
    "pending_close_at": None,
    "pending_close_expires_at": None,
}


@dataclass
class DepletedPackInfo:
    """
    Pack depleted by a commit.

    Returned for cleanup that must not run inside the close transaction
    (e.g. deregistering the pack's UPC in the register system).
    """
    pack_id: str
    store_id: str
    pack_number: str
    game_name: str

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# SHARED HELPERS
# =============================================================================

def _guarded_update(model, criteria, values: dict) -> int:
    """UPDATE ... WHERE <criteria>; returns the affected row count."""
    stmt = (
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount


def revert_pending_closes(*criteria) -> int:
    """
    Guarded PENDING_CLOSE -> OPEN for every day matching criteria.

    Shared by cancel, commit's expiry path and the expiry sweep; the status
    predicate makes them safe to race each other.
    """
    return _guarded_update(
        LotteryBusinessDay,
        [LotteryBusinessDay.status == "PENDING_CLOSE", *criteria],
        {"status": "OPEN", **_CLEARED_PENDING},
    )


def _config(key: str):
    return current_app.config.get(key)


def _require_store(store_id: str) -> Store:
    store = get_store(store_id)
    if not store:
        raise DayCloseError(STORE_NOT_FOUND, "Store not found", {"store_id": store_id})
    return store


def _bin_row(closing: LotteryClosing, pack: LotteryPack, starting_serial: str) -> dict:
    tickets_sold = calculate_tickets_sold(
        closing.closing_serial,
        starting_serial,
        pack.serial_end,
        is_sold_out=closing.is_sold_out,
    )
    game_price_cents = pack.game.price_cents
    return {
        "bin_number": pack.bin.display_order + 1 if pack.bin else None,
        "pack_id": pack.id,
        "pack_number": pack.pack_number,
        "game_name": pack.game.name,
        "starting_serial": starting_serial,
        "closing_serial": closing.closing_serial,
        "is_sold_out": closing.is_sold_out,
        "game_price_cents": game_price_cents,
        "tickets_sold": tickets_sold,
        "sales_amount_cents": tickets_sold * game_price_cents,
    }


def _calculate_bins(
    closings: list[LotteryClosing],
    packs: dict[str, LotteryPack],
    starting_serials: dict[str, str],
) -> list[dict]:
    return [
        _bin_row(closing, packs[closing.pack_id], starting_serials[closing.pack_id])
        for closing in closings
    ]


def _stage_pending_close(
    day_id: str,
    *,
    expected_status: str,
    expected_pending_at: datetime | None,
    pending: PendingCloseData,
    user_id: str,
    pending_close_at: datetime,
    expires_at: datetime,
) -> None:
    """
    Write the pending blob only if the day is still as it was read.

    The predicate carries the status (and pending_close_at when re-preparing)
    observed at load time, so a racing prepare or cancel makes this update
    miss instead of overwriting.
    """
    guard = [
        LotteryBusinessDay.id == day_id,
        LotteryBusinessDay.status == expected_status,
    ]
    if expected_pending_at is None:
        guard.append(LotteryBusinessDay.pending_close_at.is_(None))
    else:
        guard.append(LotteryBusinessDay.pending_close_at == expected_pending_at)

    updated = _guarded_update(
        LotteryBusinessDay,
        guard,
        {
            "status": "PENDING_CLOSE",
            "pending_close_data": pending.to_dict(),
            "pending_close_by": user_id,
            "pending_close_at": pending_close_at,
            "pending_close_expires_at": expires_at,
        },
    )
    if updated != 1:
        raise DayCloseError(
            CONCURRENT_MODIFICATION,
            "Lottery day was modified by another request. Please retry.",
            {"day_id": day_id, "expected_status": expected_status},
        )


# =============================================================================
# PHASE 1: PREPARE
# =============================================================================

def prepare_close(
    store_id: str,
    closings,
    entry_method: str,
    *,
    user_id: str,
    current_shift_id: str | None = None,
    authorized_by_user_id: str | None = None,
) -> dict:
    """
    Phase 1: validate the closing scans and stage them on the business day.

    Args:
        store_id: Store closing its lottery day
        closings: [{"pack_id", "closing_serial", "is_sold_out"}] or LotteryClosing
        entry_method: SCAN or MANUAL
        user_id: User preparing the close
        current_shift_id: Caller's own shift, excluded from the open-shifts check
        authorized_by_user_id: Manager authorizing the close, if any

    Returns:
        Preview with estimated totals and per-bin breakdown (nothing committed)

    Raises:
        DayCloseError
    """
    validate_uuid(store_id, "store_id")
    validate_uuid(user_id, "user_id")
    closings = coerce_closings(closings)
    validate_closings(closings)
    validate_entry_method(entry_method)
    validate_optional_uuid(current_shift_id, "current_shift_id")
    validate_optional_uuid(authorized_by_user_id, "authorized_by_user_id")

    with transaction(timeout_ms=_config("LOTTERY_TX_TIMEOUT_MS")):
        store = _require_store(store_id)

        # Only OPEN or PENDING_CLOSE comes back; a closed latest day is
        # superseded by a new OPEN one
        try:
            day, _ = ensure_open_business_day(store, user_id=user_id)
        except BusinessDayConflictError:
            raise DayCloseError(
                CONCURRENT_MODIFICATION,
                "Lottery day was opened by another request. Please retry.",
                {"store_id": store_id},
            )
        expected_status = day.status
        expected_pending_at = day.pending_close_at

        # Independent reads, run in turn: one session cannot interleave
        # statements within a transaction. Both must pass before serial work.
        ensure_no_other_open_shifts(store_id, current_shift_id)
        packs = load_active_packs(store_id, [c.pack_id for c in closings])

        starting_serials = get_starting_serials(store_id, packs.values())
        validate_serial_bounds(closings, packs, starting_serials)

        bins_preview = _calculate_bins(closings, packs, starting_serials)
        estimated_total = sum(row["sales_amount_cents"] for row in bins_preview)

        pending = PendingCloseData(
            closings=closings,
            entry_method=entry_method,
            authorized_by_user_id=authorized_by_user_id,
            current_shift_id=current_shift_id,
        )
        pending_close_at = utcnow()
        expires_at = pending_close_at + timedelta(
            seconds=_config("LOTTERY_PENDING_CLOSE_TTL_SECONDS")
        )

        _stage_pending_close(
            day.id,
            expected_status=expected_status,
            expected_pending_at=expected_pending_at,
            pending=pending,
            user_id=user_id,
            pending_close_at=pending_close_at,
            expires_at=expires_at,
        )

        result = {
            "day_id": day.id,
            "business_date": day.business_date.isoformat(),
            "status": "PENDING_CLOSE",
            "pending_close_at": to_utc_z(pending_close_at),
            "pending_close_expires_at": to_utc_z(expires_at),
            "closings_count": len(closings),
            "estimated_lottery_total_cents": estimated_total,
            "bins_preview": bins_preview,
        }

    current_app.logger.info(
        "Lottery close prepared for store %s day %s (%d packs, est. %d cents)",
        store_id,
        result["day_id"],
        len(closings),
        estimated_total,
    )
    return result


# =============================================================================
# PHASE 2: COMMIT
# =============================================================================

def _load_pending_day(store_id: str) -> LotteryBusinessDay:
    day = lock_for_update(
        db.session.query(LotteryBusinessDay)
        .filter(
            LotteryBusinessDay.store_id == store_id,
            LotteryBusinessDay.status == "PENDING_CLOSE",
        )
        .order_by(LotteryBusinessDay.opened_at.desc())
    ).first()
    if day:
        return day

    if get_current_business_day(store_id):
        raise DayCloseError(
            DAY_NOT_PENDING,
            "Lottery day is not in PENDING_CLOSE status. Please complete lottery scanning first.",
        )

    closed_exists = db.session.query(LotteryBusinessDay.id).filter(
        LotteryBusinessDay.store_id == store_id,
        LotteryBusinessDay.status == "CLOSED",
    ).first()
    if closed_exists:
        raise DayCloseError(DAY_ALREADY_CLOSED, "Lottery day is already closed")

    raise DayCloseError(DAY_NOT_FOUND, "Business day not found")


def _upsert_day_pack(
    day: LotteryBusinessDay,
    pack: LotteryPack,
    row: dict,
    entry_method: str,
) -> LotteryDayPack:
    day_pack = lock_for_update(
        db.session.query(LotteryDayPack).filter_by(day_id=day.id, pack_id=pack.id)
    ).first()
    if day_pack is None:
        day_pack = LotteryDayPack(
            day_id=day.id,
            pack_id=pack.id,
            bin_id=pack.bin_id,
            starting_serial=row["starting_serial"],
        )
        db.session.add(day_pack)

    day_pack.ending_serial = row["closing_serial"]
    day_pack.tickets_sold = row["tickets_sold"]
    day_pack.sales_amount_cents = row["sales_amount_cents"]
    day_pack.entry_method = entry_method
    day_pack.is_sold_out = row["is_sold_out"]
    return day_pack


def _deplete_pack(pack: LotteryPack, day_id: str, user_id: str, depleted_at: datetime) -> bool:
    """ACTIVE -> DEPLETED, guarded on ACTIVE. True only if this call made the change."""
    updated = _guarded_update(
        LotteryPack,
        [LotteryPack.id == pack.id, LotteryPack.status == "ACTIVE"],
        {
            "status": "DEPLETED",
            "depleted_at": depleted_at,
            "depleted_by": user_id,
            "depletion_reason": "SOLD_OUT",
            "depleted_day_id": day_id,
        },
    )
    return updated == 1


def _apply_close(
    store_id: str,
    day: LotteryBusinessDay,
    user_id: str,
    closed_at: datetime,
) -> tuple[dict, PendingCloseData]:
    pending = PendingCloseData.from_dict(day.pending_close_data)

    # Staged data is re-checked, not trusted
    validate_closings(pending.closings)
    validate_entry_method(pending.entry_method)

    packs = load_active_packs(store_id, [c.pack_id for c in pending.closings])
    starting_serials = get_starting_serials(store_id, packs.values())
    validate_serial_bounds(pending.closings, packs, starting_serials)

    bins_closed = _calculate_bins(pending.closings, packs, starting_serials)
    lottery_total = sum(row["sales_amount_cents"] for row in bins_closed)
    tickets_total = sum(row["tickets_sold"] for row in bins_closed)

    # Claim the day before writing anything else; a second commit misses here
    closed = _guarded_update(
        LotteryBusinessDay,
        [LotteryBusinessDay.id == day.id, LotteryBusinessDay.status == "PENDING_CLOSE"],
        {
            "status": "CLOSED",
            "closed_at": closed_at,
            "closed_by": user_id,
            "total_sales_cents": lottery_total,
            "total_tickets_sold": tickets_total,
            **_CLEARED_PENDING,
        },
    )
    if closed != 1:
        raise DayCloseError(
            CONCURRENT_MODIFICATION,
            "Lottery day was modified by another request. Please retry.",
            {"day_id": day.id},
        )

    packs_depleted = []
    for closing, row in zip(pending.closings, bins_closed):
        pack = packs[closing.pack_id]
        _upsert_day_pack(day, pack, row, pending.entry_method)

        if closing.is_sold_out and _deplete_pack(pack, day.id, user_id, closed_at):
            packs_depleted.append(DepletedPackInfo(
                pack_id=pack.id,
                store_id=store_id,
                pack_number=pack.pack_number,
                game_name=pack.game.name,
            ))
    db.session.flush()

    return {
        "day_id": day.id,
        "business_date": day.business_date.isoformat(),
        "closed_at": to_utc_z(closed_at),
        "closings_created": len(bins_closed),
        "lottery_total_cents": lottery_total,
        "tickets_sold_total": tickets_total,
        "bins_closed": bins_closed,
        "packs_depleted": [p.to_dict() for p in packs_depleted],
    }, pending


def commit_close(store_id: str, *, user_id: str) -> dict:
    """
    Phase 2: commit the staged close.

    An expired pending close is reverted to OPEN (and that revert is
    committed) before PENDING_EXPIRED is raised, so a client retrying a stale
    commit leaves the day usable again.

    Returns:
        Final totals, per-bin rows, and packs depleted by this commit

    Raises:
        DayCloseError
    """
    validate_uuid(store_id, "store_id")
    validate_uuid(user_id, "user_id")

    expired = None
    result = pending = None
    with transaction(timeout_ms=_config("LOTTERY_TX_BULK_TIMEOUT_MS")):
        _require_store(store_id)
        now = utcnow()
        day = _load_pending_day(store_id)
        business_date = day.business_date

        expires_at = to_utc_naive(day.pending_close_expires_at)
        if expires_at and expires_at < now:
            expired = {
                "day_id": day.id,
                "pending_close_expires_at": to_utc_z(expires_at),
            }
            revert_pending_closes(LotteryBusinessDay.id == day.id)
        else:
            result, pending = _apply_close(store_id, day, user_id, now)

    if expired:
        current_app.logger.warning(
            "Pending lottery close for store %s day %s expired at %s; reverted to OPEN",
            store_id,
            expired["day_id"],
            expired["pending_close_expires_at"],
        )
        raise DayCloseError(
            PENDING_EXPIRED,
            "Pending close has expired. Please re-scan lottery to continue.",
            expired,
        )

    current_app.logger.info(
        "Lottery day %s closed for store %s (%d packs, %d cents, %d depleted)",
        result["day_id"],
        store_id,
        result["closings_created"],
        result["lottery_total_cents"],
        len(result["packs_depleted"]),
    )

    _run_post_commit(
        store_id,
        result,
        business_date=business_date,
        closed_at=now,
        user_id=user_id,
        current_shift_id=pending.current_shift_id,
    )
    return result


def _run_post_commit(
    store_id: str,
    result: dict,
    *,
    business_date: date,
    closed_at: datetime,
    user_id: str,
    current_shift_id: str | None,
) -> None:
    """Summary close and rollover; each failure is logged and dropped."""
    summary_id = None
    try:
        summary = close_day_summary(
            store_id,
            business_date,
            user_id,
            exclude_shift_id=current_shift_id,
        )
        summary_id = summary.id
        result["day_summary_id"] = summary_id
    except Exception:
        current_app.logger.exception(
            "Failed to close day summary after lottery close (store=%s day=%s date=%s)",
            store_id,
            result["day_id"],
            result["business_date"],
        )

    try:
        next_day = rollover_business_day(
            store_id,
            result["day_id"],
            closed_at,
            user_id=user_id,
            closed_summary_id=summary_id,
        )
        result["next_day_id"] = next_day.id
    except Exception:
        current_app.logger.exception(
            "Failed to open next lottery day after close (store=%s day=%s date=%s)",
            store_id,
            result["day_id"],
            result["business_date"],
        )


# =============================================================================
# CANCEL / STATUS
# =============================================================================

def cancel_close(store_id: str, *, user_id: str | None = None) -> bool:
    """
    Drop a staged close and return the day to OPEN.

    Returns:
        True if a pending close was cancelled, False if there was none
    """
    validate_uuid(store_id, "store_id")
    validate_optional_uuid(user_id, "user_id")

    with transaction(timeout_ms=_config("LOTTERY_TX_TIMEOUT_MS")):
        cancelled = revert_pending_closes(LotteryBusinessDay.store_id == store_id)

    if cancelled:
        current_app.logger.info("Pending lottery close cancelled for store %s by %s", store_id, user_id)
    return cancelled > 0


def get_day_status(store_id: str) -> dict | None:
    """Current lottery day of the store (or its most recent one); None if it has none."""
    validate_uuid(store_id, "store_id")

    day = get_current_business_day(store_id)
    if day is None:
        day = (
            db.session.query(LotteryBusinessDay)
            .filter(LotteryBusinessDay.store_id == store_id)
            .order_by(LotteryBusinessDay.opened_at.desc(), LotteryBusinessDay.id.desc())
            .first()
        )
    if day is None:
        return None

    return {
        "day_id": day.id,
        "business_date": day.business_date.isoformat(),
        "status": day.status,
        "pending_close_at": to_utc_z(day.pending_close_at),
        "pending_close_expires_at": to_utc_z(day.pending_close_expires_at),
    }
