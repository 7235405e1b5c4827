from __future__ import annotations

import uuid

from ..extensions import db
from backoffice.time_utils import to_utc_z


def new_id() -> str:
    """Primary key factory for UUID-keyed tables."""
    return str(uuid.uuid4())


class Store(db.Model):
    """
    Retail store.

    The lottery close workflow only needs the id (tenant scope) and the
    timezone (business dates are calendar dates in store-local time).
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stores_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    # IANA timezone name (e.g. "America/Chicago")
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "created_at": to_utc_z(self.created_at),
        }
