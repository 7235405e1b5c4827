# Overview: Ticket serial arithmetic and starting-serial resolution for lottery packs.

"""
Lottery serial arithmetic.

SERIAL SEMANTICS:
- Serials are 3-digit ticket positions, "000".."999"
- A closing serial is the position of the NEXT unsold ticket
- serial_end is the index of the LAST valid ticket (inclusive)

    30-ticket pack: serial_start="000", serial_end="029"
    close at "015"              -> 15 sold (tickets 000..014)
    next day, sold out at "029" -> (29 + 1) - 15 = 15 sold

The depletion formula is chosen only from an explicit sold-out flag. A normal
scan may land on serial_end without the pack being empty; treating that as a
sell-out would deplete live inventory.

The arithmetic returns 0 for unusable input instead of raising. Previews must
not blow up on a bad row; commit validates formats and bounds beforehand.
"""

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import LotteryBusinessDay, LotteryDayPack


MIN_SERIAL = 0
MAX_SERIAL = 999


def parse_serial(value) -> int | None:
    """Serial string or int -> int in [0, 999], or None if unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or not stripped.isascii() or not stripped.isdigit():
            return None
        number = int(stripped)
    else:
        return None
    if number < MIN_SERIAL or number > MAX_SERIAL:
        return None
    return number


def tickets_sold_normal(ending, starting) -> int:
    """max(0, ending - starting); ending is the next unsold ticket."""
    end = parse_serial(ending)
    start = parse_serial(starting)
    if end is None or start is None:
        return 0
    return max(0, end - start)


def tickets_sold_depleted(serial_end, starting) -> int:
    """max(0, (serial_end + 1) - starting); serial_end is an inclusive index."""
    end = parse_serial(serial_end)
    start = parse_serial(starting)
    if end is None or start is None:
        return 0
    return max(0, (end + 1) - start)


def calculate_tickets_sold(
    closing_serial,
    starting_serial,
    serial_end,
    *,
    is_sold_out: bool,
) -> int:
    if is_sold_out:
        return tickets_sold_depleted(serial_end, starting_serial)
    return tickets_sold_normal(closing_serial, starting_serial)


def get_starting_serials(store_id: str, packs: Iterable) -> dict[str, str]:
    """
    Starting serial per pack id.

    Priority:
    1. ending_serial recorded for the pack on the store's most recent CLOSED day
    2. the pack's own serial_start (never closed at this store)

    Prepare and commit both call this, so the preview total and the committed
    total are computed from the same starting points.
    """
    packs = list(packs)
    pack_ids = [p.id for p in packs]
    result: dict[str, str] = {}

    last_closed_day = (
        db.session.query(LotteryBusinessDay)
        .filter(
            LotteryBusinessDay.store_id == store_id,
            LotteryBusinessDay.status == "CLOSED",
        )
        .order_by(LotteryBusinessDay.closed_at.desc(), LotteryBusinessDay.id.desc())
        .first()
    )

    if last_closed_day and pack_ids:
        day_packs = (
            db.session.query(LotteryDayPack)
            .filter(
                LotteryDayPack.day_id == last_closed_day.id,
                LotteryDayPack.pack_id.in_(pack_ids),
                LotteryDayPack.ending_serial.isnot(None),
            )
            .all()
        )
        for day_pack in day_packs:
            if day_pack.ending_serial:
                result[day_pack.pack_id] = day_pack.ending_serial

    for pack in packs:
        result.setdefault(pack.id, pack.serial_start)

    return result
