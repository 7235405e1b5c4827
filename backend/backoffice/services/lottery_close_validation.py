# Overview: Input and precondition checks for the lottery day close; DayCloseError taxonomy.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ..extensions import db
from ..models import LotteryPack
from .shift_service import list_open_shifts


# Machine-readable error codes
STORE_NOT_FOUND = "STORE_NOT_FOUND"
DAY_NOT_FOUND = "DAY_NOT_FOUND"
DAY_ALREADY_CLOSED = "DAY_ALREADY_CLOSED"
DAY_NOT_PENDING = "DAY_NOT_PENDING"
PENDING_EXPIRED = "PENDING_EXPIRED"
SHIFTS_STILL_OPEN = "SHIFTS_STILL_OPEN"
INVALID_CLOSINGS = "INVALID_CLOSINGS"
PACK_NOT_FOUND = "PACK_NOT_FOUND"
SERIAL_VALIDATION_FAILED = "SERIAL_VALIDATION_FAILED"
CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

DAY_CLOSE_ERROR_CODES = frozenset({
    STORE_NOT_FOUND,
    DAY_NOT_FOUND,
    DAY_ALREADY_CLOSED,
    DAY_NOT_PENDING,
    PENDING_EXPIRED,
    SHIFTS_STILL_OPEN,
    INVALID_CLOSINGS,
    PACK_NOT_FOUND,
    SERIAL_VALIDATION_FAILED,
    CONCURRENT_MODIFICATION,
})

VALID_ENTRY_METHODS = {"SCAN", "MANUAL"}

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_SERIAL_RE = re.compile(r"^[0-9]{3}$")


class DayCloseError(ValueError):
    """
    Raised when a lottery day close step is rejected.

    code is one of DAY_CLOSE_ERROR_CODES; details carries the structured
    context a client needs (offending pack, bounds, open shift count...).
    """

    def __init__(self, code: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class LotteryClosing:
    """One pack's closing scan."""
    pack_id: str
    closing_serial: str
    is_sold_out: bool = False

    def to_dict(self) -> dict:
        return {
            "pack_id": self.pack_id,
            "closing_serial": self.closing_serial,
            "is_sold_out": self.is_sold_out,
        }


@dataclass
class PendingCloseData:
    """
    Blob stored on a PENDING_CLOSE business day.

    Written whole at prepare, read and cleared whole at commit, cancel or
    expiry.
    """
    closings: list[LotteryClosing]
    entry_method: str
    authorized_by_user_id: str | None = None
    current_shift_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "closings": [c.to_dict() for c in self.closings],
            "entry_method": self.entry_method,
            "authorized_by_user_id": self.authorized_by_user_id,
            "current_shift_id": self.current_shift_id,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PendingCloseData":
        if not isinstance(data, Mapping) or not isinstance(data.get("closings"), list):
            raise DayCloseError(DAY_NOT_PENDING, "Invalid pending close data")
        return cls(
            closings=coerce_closings(data["closings"]),
            entry_method=data.get("entry_method"),
            authorized_by_user_id=data.get("authorized_by_user_id"),
            current_shift_id=data.get("current_shift_id"),
        )


# =============================================================================
# SHAPE VALIDATION (no I/O)
# =============================================================================

def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def validate_uuid(value: Any, field_name: str) -> None:
    if not value or not isinstance(value, str):
        raise DayCloseError(INVALID_CLOSINGS, f"{field_name} is required")
    if not is_valid_uuid(value):
        raise DayCloseError(INVALID_CLOSINGS, f"{field_name} must be a valid UUID")


def validate_optional_uuid(value: Any, field_name: str) -> None:
    if value is not None:
        validate_uuid(value, field_name)


def validate_serial(value: Any, context: str) -> None:
    if not value or not isinstance(value, str):
        raise DayCloseError(
            SERIAL_VALIDATION_FAILED,
            f"Serial number is required for {context}",
        )
    if not _SERIAL_RE.match(value):
        raise DayCloseError(
            SERIAL_VALIDATION_FAILED,
            f"Serial number must be exactly 3 digits for {context}",
        )


def validate_entry_method(value: Any) -> None:
    if value not in VALID_ENTRY_METHODS:
        raise DayCloseError(INVALID_CLOSINGS, "entry_method must be 'SCAN' or 'MANUAL'")


def coerce_closings(raw: Any) -> list[LotteryClosing]:
    """
    Turn request-shaped closings (dicts or LotteryClosing) into LotteryClosing.

    Only the container and item types are checked here; validate_closings
    checks the values.
    """
    if not isinstance(raw, (list, tuple)):
        raise DayCloseError(INVALID_CLOSINGS, "closings must be an array")

    closings = []
    for i, item in enumerate(raw):
        if isinstance(item, LotteryClosing):
            closings.append(item)
            continue
        if not isinstance(item, Mapping):
            raise DayCloseError(INVALID_CLOSINGS, f"closings[{i}] must be an object")
        is_sold_out = item.get("is_sold_out", False)
        if not isinstance(is_sold_out, bool):
            raise DayCloseError(INVALID_CLOSINGS, f"closings[{i}].is_sold_out must be a boolean")
        closings.append(LotteryClosing(
            pack_id=item.get("pack_id"),
            closing_serial=item.get("closing_serial"),
            is_sold_out=is_sold_out,
        ))
    return closings


def validate_closings(closings: list[LotteryClosing]) -> None:
    """Non-empty, well-formed, one closing per pack."""
    if not closings:
        raise DayCloseError(INVALID_CLOSINGS, "closings array cannot be empty")

    seen_pack_ids: set[str] = set()
    for i, closing in enumerate(closings):
        context = f"closings[{i}]"
        validate_uuid(closing.pack_id, f"{context}.pack_id")
        validate_serial(closing.closing_serial, context)
        if not isinstance(closing.is_sold_out, bool):
            raise DayCloseError(INVALID_CLOSINGS, f"{context}.is_sold_out must be a boolean")

        # Duplicates are rejected, never merged
        if closing.pack_id in seen_pack_ids:
            raise DayCloseError(
                INVALID_CLOSINGS,
                f"Duplicate pack_id found: {closing.pack_id}",
                {"pack_id": closing.pack_id},
            )
        seen_pack_ids.add(closing.pack_id)


# =============================================================================
# PRECONDITIONS (read-only I/O)
# =============================================================================

def ensure_no_other_open_shifts(store_id: str, current_shift_id: str | None = None) -> None:
    open_shift_ids = [s.id for s in list_open_shifts(store_id, exclude_shift_id=current_shift_id)]

    if open_shift_ids:
        raise DayCloseError(
            SHIFTS_STILL_OPEN,
            f"{len(open_shift_ids)} shift(s) are still open",
            {"open_shift_count": len(open_shift_ids), "open_shift_ids": open_shift_ids},
        )


def load_active_packs(store_id: str, pack_ids: list[str]) -> dict[str, LotteryPack]:
    """
    ACTIVE packs of the store, keyed by id.

    Any requested id that is missing, inactive or owned by another store is
    reported together in one PACK_NOT_FOUND.
    """
    packs = (
        db.session.query(LotteryPack)
        .filter(
            LotteryPack.id.in_(pack_ids),
            LotteryPack.store_id == store_id,
            LotteryPack.status == "ACTIVE",
        )
        .all()
    )
    by_id = {p.id: p for p in packs}

    missing = [pid for pid in pack_ids if pid not in by_id]
    if missing:
        raise DayCloseError(
            PACK_NOT_FOUND,
            f"Some packs were not found or are not active: {', '.join(missing)}",
            {"missing_pack_ids": missing},
        )
    return by_id


def validate_serial_bounds(
    closings: Iterable[LotteryClosing],
    packs: Mapping[str, LotteryPack],
    starting_serials: Mapping[str, str],
) -> None:
    """Every closing serial must lie in [starting serial, serial_end]."""
    for closing in closings:
        pack = packs[closing.pack_id]
        starting_serial = starting_serials.get(pack.id) or pack.serial_start
        closing_num = int(closing.closing_serial, 10)
        start_num = int(starting_serial, 10)
        end_num = int(pack.serial_end, 10)

        details = {
            "pack_id": pack.id,
            "pack_number": pack.pack_number,
            "closing_serial": closing.closing_serial,
            "starting_serial": starting_serial,
            "serial_end": pack.serial_end,
        }

        if closing_num < start_num:
            raise DayCloseError(
                SERIAL_VALIDATION_FAILED,
                f"Closing serial {closing.closing_serial} is less than starting serial "
                f"{starting_serial} for pack {pack.pack_number} "
                f"(valid range {starting_serial}-{pack.serial_end})",
                details,
            )

        if closing_num > end_num:
            raise DayCloseError(
                SERIAL_VALIDATION_FAILED,
                f"Closing serial {closing.closing_serial} exceeds pack end serial "
                f"{pack.serial_end} for pack {pack.pack_number} "
                f"(valid range {starting_serial}-{pack.serial_end})",
                details,
            )
