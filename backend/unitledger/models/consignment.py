from __future__ import annotations

from ..extensions import db
from unitledger.time_utils import to_utc_z


# Consignment header status
CONSIGNMENT_PENDING = "PENDING"
CONSIGNMENT_IN_PROGRESS = "IN_PROGRESS"
CONSIGNMENT_SETTLED = "SETTLED"
CONSIGNMENT_EXPIRED = "EXPIRED"
CONSIGNMENT_CANCELLED = "CANCELLED"

CONSIGNMENT_STATUSES = (
    CONSIGNMENT_PENDING,
    CONSIGNMENT_IN_PROGRESS,
    CONSIGNMENT_SETTLED,
    CONSIGNMENT_EXPIRED,
    CONSIGNMENT_CANCELLED,
)

OPEN_CONSIGNMENT_STATUSES = (CONSIGNMENT_PENDING, CONSIGNMENT_IN_PROGRESS)

# Consignment line state (terminal once SOLD or RETURNED)
LINE_CONSIGNED = "CONSIGNED"
LINE_SOLD = "SOLD"
LINE_RETURNED = "RETURNED"

LINE_STATES = (LINE_CONSIGNED, LINE_SOLD, LINE_RETURNED)


class Consignee(db.Model):
    """
    Third-party reseller holding consigned units.

    BALANCES (integer cents, accumulator-updated only by the consignment
    workflow and the settlement ledger):
    - total_consigned_cents: value currently consigned (returns subtract)
    - total_paid_cents: sum of all payments received
    - pending_balance_cents: total_consigned - total_paid
    """
    __tablename__ = "consignees"
    __table_args__ = (
        db.Index("ix_consignees_active_pending", "is_active", "pending_balance_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_id = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    total_consigned_cents = db.Column(db.Integer, nullable=False, default=0)
    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    pending_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Consignee id={self.id} name={self.name!r} pending={self.pending_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "tax_id": self.tax_id,
            "notes": self.notes,
            "is_active": self.is_active,
            "total_consigned_cents": self.total_consigned_cents,
            "total_paid_cents": self.total_paid_cents,
            "pending_balance_cents": self.pending_balance_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Consignment(db.Model):
    """
    Batch transfer of units to a consignee who pays upon sale.

    LIFECYCLE:
    1. PENDING: created, nothing sold or paid
    2. IN_PROGRESS: some line sold or some payment received
    3. SETTLED: every line sold/returned and nothing pending
    4. CANCELLED: every line returned
    5. EXPIRED: due date lapsed while still open

    INVARIANTS: total >= paid; pending == total - paid.
    """
    __tablename__ = "consignments"
    __table_args__ = (
        db.Index("ix_consignments_consignee_status", "consignee_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "CON-042"); sequence is its numeric part
    sequence = db.Column(db.Integer, nullable=False, unique=True)
    number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    consignee_id = db.Column(db.Integer, db.ForeignKey("consignees.id"), nullable=False, index=True)

    delivery_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    total_value_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_value_cents = db.Column(db.Integer, nullable=False, default=0)
    pending_value_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=CONSIGNMENT_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    consignee = db.relationship("Consignee", backref=db.backref("consignments", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Consignment id={self.id} number={self.number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "consignee_id": self.consignee_id,
            "delivery_date": to_utc_z(self.delivery_date),
            "due_date": to_utc_z(self.due_date),
            "total_value_cents": self.total_value_cents,
            "paid_value_cents": self.paid_value_cents,
            "pending_value_cents": self.pending_value_cents,
            "status": self.status,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class ConsignmentDetail(db.Model):
    """
    One consigned unit on a consignment.

    State: CONSIGNED -> SOLD | RETURNED (terminal).
    """
    __tablename__ = "consignment_details"
    __table_args__ = (
        db.Index("ix_consignment_details_consignment_state", "consignment_id", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    consignment_id = db.Column(db.Integer, db.ForeignKey("consignments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("inventory_units.id"), nullable=False, index=True)

    # Agreed consignment price
    price_cents = db.Column(db.Integer, nullable=False)

    state = db.Column(db.String(16), nullable=False, default=LINE_CONSIGNED, index=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=True)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    consignment = db.relationship(
        "Consignment",
        backref=db.backref("lines", lazy=True, order_by="ConsignmentDetail.id"),
    )
    product = db.relationship("Product")
    unit = db.relationship("InventoryUnit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consignment_id": self.consignment_id,
            "product_id": self.product_id,
            "unit_id": self.unit_id,
            "serial": self.unit.serial if self.unit else None,
            "price_cents": self.price_cents,
            "state": self.state,
            "sale_date": to_utc_z(self.sale_date),
            "return_date": to_utc_z(self.return_date),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Settlement record: money received from a consignee.

    IMMUTABLE: never updated or deleted. Corrections are new offsetting
    records. consignment_id is optional; a payment without it only affects
    the consignee aggregate (never auto-allocated).
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_consignee_paid_at", "consignee_id", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    consignee_id = db.Column(db.Integer, db.ForeignKey("consignees.id"), nullable=False, index=True)
    consignment_id = db.Column(db.Integer, db.ForeignKey("consignments.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    # Exchange-rate snapshot at payment time (opaque)
    currency_rate = db.Column(db.Numeric(18, 6), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    consignee = db.relationship("Consignee", backref=db.backref("payments", lazy=True))
    consignment = db.relationship("Consignment", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consignee_id": self.consignee_id,
            "consignment_id": self.consignment_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "currency": self.currency,
            "currency_rate": str(self.currency_rate) if self.currency_rate is not None else None,
            "paid_at": to_utc_z(self.paid_at),
            "reference": self.reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
