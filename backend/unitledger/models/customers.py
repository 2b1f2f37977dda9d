from __future__ import annotations

from ..extensions import db
from unitledger.time_utils import to_utc_z


class Customer(db.Model):
    """
    Buyer of directly sold units.

    Only existence matters to the unit registry; contact data is kept for
    warranty lookups.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
