from __future__ import annotations

from ..extensions import db
from unitledger.time_utils import to_utc_z


# Product stock classification (derived from thresholds, never set directly)
STOCK_OK = "OK"
STOCK_WARNING = "WARNING"
STOCK_CRITICAL = "CRITICAL"
STOCK_OUT = "OUT_OF_STOCK"

# InventoryUnit lifecycle states
UNIT_AVAILABLE = "AVAILABLE"
UNIT_CONSIGNED = "CONSIGNED"
UNIT_SOLD = "SOLD"
UNIT_DEFECTIVE = "DEFECTIVE"
UNIT_RESERVED = "RESERVED"
UNIT_RETURNED = "RETURNED"

UNIT_STATES = (
    UNIT_AVAILABLE,
    UNIT_CONSIGNED,
    UNIT_SOLD,
    UNIT_DEFECTIVE,
    UNIT_RESERVED,
    UNIT_RETURNED,
)

# Where a unit came from
ORIGIN_PURCHASE = "PURCHASE"
ORIGIN_PRODUCTION = "PRODUCTION"
ORIGIN_IMPORT = "IMPORT"
ORIGIN_RETURN = "RETURN"
ORIGIN_ADJUSTMENT = "ADJUSTMENT"

UNIT_ORIGINS = (
    ORIGIN_PURCHASE,
    ORIGIN_PRODUCTION,
    ORIGIN_IMPORT,
    ORIGIN_RETURN,
    ORIGIN_ADJUSTMENT,
)


class Product(db.Model):
    """
    Product master data with a denormalized stock counter.

    STOCK DESIGN:
    - current_stock is an accumulator: every component that moves stock
      applies `current_stock = current_stock + delta` in SQL, never a
      cached read-modify-write.
    - status is always recomputed from current_stock and the thresholds
      (min_stock, warning_stock) after a change.
    - code is normalized to uppercase with whitespace stripped.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_active", "status", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    warning_stock = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STOCK_OUT, index=True)

    # Recorded base cost, used as fallback cost for bulk intake
    base_cost_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

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
        return f"<Product id={self.id} code={self.code!r} stock={self.current_stock} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "warning_stock": self.warning_stock,
            "status": self.status,
            "base_cost_cents": self.base_cost_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of quantity-level stock movements.

    stock_before/stock_after snapshot the counter around the movement so the
    journal can be audited without replaying it.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # ENTRY, EXIT, ADJUST, RETURN
    kind = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reference": self.reference,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


class InventoryUnit(db.Model):
    """
    A single serialized physical item.

    LIFECYCLE:
    - AVAILABLE -> CONSIGNED, SOLD, DEFECTIVE, RESERVED
    - CONSIGNED -> SOLD, AVAILABLE (returned by consignee)
    - SOLD -> RETURNED

    SERIAL: globally unique, normalized (uppercase, trimmed), immutable.

    CONCURRENCY: version_id_col gives optimistic locking on state
    transitions; two transactions that both read AVAILABLE cannot both
    commit a transition.
    """
    __tablename__ = "inventory_units"
    __table_args__ = (
        db.Index("ix_inventory_units_product_state", "product_id", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    serial = db.Column(db.String(128), nullable=False, unique=True, index=True)

    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    origin = db.Column(db.String(32), nullable=True, index=True)
    lot = db.Column(db.String(128), nullable=True)

    entry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    warranty_months = db.Column(db.Integer, nullable=False)
    warranty_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    state = db.Column(db.String(16), nullable=False, default=UNIT_AVAILABLE, index=True)

    # Buyer (direct sale) or consignee (consignment) holding the unit
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    consignee_id = db.Column(db.Integer, db.ForeignKey("consignees.id"), nullable=True, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sale_price_cents = db.Column(db.Integer, nullable=True)
    margin_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("units", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("units", lazy=True))
    consignee = db.relationship("Consignee", backref=db.backref("units", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryUnit id={self.id} serial={self.serial!r} state={self.state}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "serial": self.serial,
            "cost_cents": self.cost_cents,
            "origin": self.origin,
            "lot": self.lot,
            "entry_date": to_utc_z(self.entry_date),
            "warranty_months": self.warranty_months,
            "warranty_expires_at": to_utc_z(self.warranty_expires_at),
            "state": self.state,
            "customer_id": self.customer_id,
            "consignee_id": self.consignee_id,
            "sale_date": to_utc_z(self.sale_date),
            "sale_price_cents": self.sale_price_cents,
            "margin_cents": self.margin_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAlert(db.Model):
    """Persisted low-stock alert, written after the stock change commits."""
    __tablename__ = "stock_alerts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # LOW_STOCK or OUT_OF_STOCK
    alert_type = db.Column(db.String(16), nullable=False)
    current_stock = db.Column(db.Integer, nullable=False)
    min_stock = db.Column(db.Integer, nullable=False)
    message = db.Column(db.String(255), nullable=False)

    is_resolved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("alerts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "alert_type": self.alert_type,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "message": self.message,
            "is_resolved": self.is_resolved,
            "resolved_at": to_utc_z(self.resolved_at),
            "created_at": to_utc_z(self.created_at),
        }
