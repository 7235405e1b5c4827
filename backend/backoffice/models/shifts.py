from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z
from .tenancy import new_id


class Shift(db.Model):
    """
    Cashier shift at a store.

    LIFECYCLE:
    - OPEN: Cashier is working, transactions are attributed to the shift
    - CLOSED: Drawer counted, shift is final

    The lottery close only asks whether any OPEN shift remains besides the
    cashier's own.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index("ix_shifts_store_status", "store_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    cashier_id = db.Column(db.String(36), nullable=False, index=True)
    terminal_name = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN")  # OPEN, CLOSED

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", backref=db.backref("shifts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "cashier_id": self.cashier_id,
            "terminal_name": self.terminal_name,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }
