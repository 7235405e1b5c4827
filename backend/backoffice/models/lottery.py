from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from backoffice.time_utils import to_utc_z
from .tenancy import new_id


class LotteryGame(db.Model):
    """Scratch-off game: name and ticket price shared by all its packs."""
    __tablename__ = "lottery_games"
    __table_args__ = (
        db.UniqueConstraint("game_code", name="uq_lottery_games_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    game_code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    tickets_per_pack = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "game_code": self.game_code,
            "name": self.name,
            "price_cents": self.price_cents,
            "tickets_per_pack": self.tickets_per_pack,
        }


class LotteryBin(db.Model):
    """
    Physical dispenser slot in a store.

    display_order is 0-based; the bin number staff see is display_order + 1.
    """
    __tablename__ = "lottery_bins"
    __table_args__ = (
        db.UniqueConstraint("store_id", "display_order", name="uq_lottery_bins_store_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    store = db.relationship("Store", backref=db.backref("lottery_bins", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }


class LotteryPack(db.Model):
    """
    Physical pack of tickets.

    SERIALS: 3-digit zero-padded strings. serial_end is the index of the last
    valid ticket (inclusive), so a 30-ticket pack runs "000".."029".

    LIFECYCLE:
    - RECEIVED: In the back office, not on sale
    - ACTIVE: Loaded in a bin, on sale
    - DEPLETED: Sold out (set by day close when explicitly marked sold out)
    - RETURNED: Sent back to the lottery
    """
    __tablename__ = "lottery_packs"
    __table_args__ = (
        db.UniqueConstraint("game_id", "pack_number", name="uq_lottery_packs_game_number"),
        db.Index("ix_lottery_packs_store_status", "store_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    game_id = db.Column(db.String(36), db.ForeignKey("lottery_games.id"), nullable=False, index=True)
    bin_id = db.Column(db.String(36), db.ForeignKey("lottery_bins.id"), nullable=True, index=True)

    pack_number = db.Column(db.String(32), nullable=False)
    serial_start = db.Column(db.String(3), nullable=False)
    serial_end = db.Column(db.String(3), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="RECEIVED")
    activated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Depletion metadata
    depleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    depleted_by = db.Column(db.String(36), nullable=True)
    depletion_reason = db.Column(db.String(32), nullable=True)
    depleted_day_id = db.Column(db.String(36), db.ForeignKey("lottery_business_days.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("lottery_packs", lazy=True))
    game = db.relationship("LotteryGame", backref=db.backref("packs", lazy=True))
    bin = db.relationship("LotteryBin", backref=db.backref("packs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "game_id": self.game_id,
            "bin_id": self.bin_id,
            "pack_number": self.pack_number,
            "serial_start": self.serial_start,
            "serial_end": self.serial_end,
            "status": self.status,
            "activated_at": to_utc_z(self.activated_at) if self.activated_at else None,
            "depleted_at": to_utc_z(self.depleted_at) if self.depleted_at else None,
            "depleted_by": self.depleted_by,
            "depletion_reason": self.depletion_reason,
        }


class LotteryBusinessDay(db.Model):
    """
    One lottery accounting period for a store.

    STATE MACHINE:
        OPEN -> PENDING_CLOSE -> CLOSED
        PENDING_CLOSE -> OPEN   (cancel or expiry)

    RULES:
    - At most one OPEN or PENDING_CLOSE day per store (enforced by the close
      service, not a constraint: mid-day closes leave several days per date)
    - pending_close_* columns are set iff status is PENDING_CLOSE
    - Rows are never deleted, only superseded by the next day
    """
    __tablename__ = "lottery_business_days"
    __table_args__ = (
        db.Index("ix_lottery_days_store_status", "store_id", "status"),
        db.Index("ix_lottery_days_store_date", "store_id", "business_date"),
        # At most one OPEN or PENDING_CLOSE day per store
        db.Index(
            "uq_lottery_days_store_current",
            "store_id",
            unique=True,
            sqlite_where=text("status IN ('OPEN', 'PENDING_CLOSE')"),
            postgresql_where=text("status IN ('OPEN', 'PENDING_CLOSE')"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="OPEN")

    opened_by = db.Column(db.String(36), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_by = db.Column(db.String(36), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    # Two-phase close staging (see PendingCloseData)
    pending_close_data = db.Column(db.JSON(none_as_null=True), nullable=True)
    pending_close_by = db.Column(db.String(36), nullable=True)
    pending_close_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pending_close_expires_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    # Set at commit
    total_sales_cents = db.Column(db.Integer, nullable=True)
    total_tickets_sold = db.Column(db.Integer, nullable=True)

    day_summary_id = db.Column(db.String(36), db.ForeignKey("day_summaries.id"), nullable=True, index=True)

    store = db.relationship("Store", backref=db.backref("lottery_business_days", lazy=True))
    day_summary = db.relationship("DaySummary", backref=db.backref("lottery_business_days", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": self.business_date.isoformat(),
            "status": self.status,
            "opened_by": self.opened_by,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by": self.closed_by,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "pending_close_by": self.pending_close_by,
            "pending_close_at": to_utc_z(self.pending_close_at) if self.pending_close_at else None,
            "pending_close_expires_at": (
                to_utc_z(self.pending_close_expires_at) if self.pending_close_expires_at else None
            ),
            "total_sales_cents": self.total_sales_cents,
            "total_tickets_sold": self.total_tickets_sold,
            "day_summary_id": self.day_summary_id,
        }


class LotteryDayPack(db.Model):
    """
    Per-day, per-pack sales record.

    ending_serial of the most recent CLOSED day becomes the next day's
    starting_serial for the same pack.
    """
    __tablename__ = "lottery_day_packs"
    __table_args__ = (
        db.UniqueConstraint("day_id", "pack_id", name="uq_lottery_day_packs_day_pack"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    day_id = db.Column(db.String(36), db.ForeignKey("lottery_business_days.id"), nullable=False, index=True)
    pack_id = db.Column(db.String(36), db.ForeignKey("lottery_packs.id"), nullable=False, index=True)
    bin_id = db.Column(db.String(36), db.ForeignKey("lottery_bins.id"), nullable=True)

    starting_serial = db.Column(db.String(3), nullable=False)
    ending_serial = db.Column(db.String(3), nullable=True)
    tickets_sold = db.Column(db.Integer, nullable=False, default=0)
    sales_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    entry_method = db.Column(db.String(16), nullable=True)  # SCAN, MANUAL
    is_sold_out = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    day = db.relationship("LotteryBusinessDay", backref=db.backref("day_packs", lazy=True))
    pack = db.relationship("LotteryPack", backref=db.backref("day_packs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "day_id": self.day_id,
            "pack_id": self.pack_id,
            "bin_id": self.bin_id,
            "starting_serial": self.starting_serial,
            "ending_serial": self.ending_serial,
            "tickets_sold": self.tickets_sold,
            "sales_amount_cents": self.sales_amount_cents,
            "entry_method": self.entry_method,
            "is_sold_out": self.is_sold_out,
        }
