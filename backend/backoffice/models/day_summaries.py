from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z
from .tenancy import new_id


class DaySummary(db.Model):
    """
    Aggregate of one store's business date (the X/Z report source).

    One row per (store, business_date). Two lottery business days can share a
    calendar date after a mid-day close; both link to the same summary.
    """
    __tablename__ = "day_summaries"
    __table_args__ = (
        db.UniqueConstraint("store_id", "business_date", name="uq_day_summaries_store_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    store_id = db.Column(db.String(36), db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN")  # OPEN, CLOSED

    # Lottery (aggregated from closed lottery business days of this date)
    lottery_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    lottery_tickets_sold = db.Column(db.Integer, nullable=False, default=0)
    lottery_packs_depleted = db.Column(db.Integer, nullable=False, default=0)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.String(36), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("day_summaries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": self.business_date.isoformat(),
            "status": self.status,
            "lottery_sales_cents": self.lottery_sales_cents,
            "lottery_tickets_sold": self.lottery_tickets_sold,
            "lottery_packs_depleted": self.lottery_packs_depleted,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by,
            "notes": self.notes,
        }
