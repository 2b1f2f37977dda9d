# Overview: Service-layer operations for serialized inventory units; registration, sale, patches and warranty lookups.

"""
Unit Registry Invariants & Semantics (authoritative)

Units:
- One InventoryUnit per physical item, keyed by a normalized serial
  (uppercase, trimmed). Serials are unique and never change.
- New units start AVAILABLE and add 1 to the product stock.

Sale:
- The only way into SOLD is sell_unit(): it records buyer, sale price,
  margin (= price - cost) and restarts the warranty from the sale date.
- A patch that targets SOLD is rejected.

Patch transitions (state field):
- AVAILABLE -> DEFECTIVE | RESERVED
- RESERVED  -> AVAILABLE | DEFECTIVE
- DEFECTIVE -> AVAILABLE
- SOLD      -> RETURNED
- RETURNED  -> AVAILABLE | DEFECTIVE
- CONSIGNED -> (none; owned by the consignment workflow)

Stock effect of a patch:
- AVAILABLE, RESERVED and RETURNED units are on hand and counted in
  Product.current_stock; the patch applies counted(new) - counted(old).
  SOLD -> RETURNED is journaled as RETURN, other increases as ENTRY,
  decreases as EXIT.

Concurrency:
- InventoryUnit uses version_id_col; two transactions that both read the
  same state cannot both commit a transition (StaleDataError -> retry ->
  the loser re-reads the new state and is rejected).
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from flask import current_app

from ..extensions import db
from ..models import Customer, InventoryUnit, Product
from ..models.inventory import (
    UNIT_AVAILABLE,
    UNIT_CONSIGNED,
    UNIT_DEFECTIVE,
    UNIT_ORIGINS,
    UNIT_RESERVED,
    UNIT_RETURNED,
    UNIT_SOLD,
    UNIT_STATES,
)
from ..validation import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
    normalize_serial,
)
from unitledger.time_utils import add_months, days_until, normalize_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry
from .notification_service import dispatch_low_stock
from .stock_ledger_service import StockMovementKind, get_product_for_update, paginate_meta, post_stock_change


# States whose units are physically on hand (counted in Product.current_stock)
ON_HAND_STATES = frozenset({UNIT_AVAILABLE, UNIT_RESERVED, UNIT_RETURNED})

ALLOWED_PATCH_TRANSITIONS = {
    UNIT_AVAILABLE: {UNIT_DEFECTIVE, UNIT_RESERVED},
    UNIT_RESERVED: {UNIT_AVAILABLE, UNIT_DEFECTIVE},
    UNIT_DEFECTIVE: {UNIT_AVAILABLE},
    UNIT_SOLD: {UNIT_RETURNED},
    UNIT_RETURNED: {UNIT_AVAILABLE, UNIT_DEFECTIVE},
    UNIT_CONSIGNED: set(),
}

PATCHABLE_FIELDS = ("state", "cost_cents", "origin", "lot", "notes", "warranty_months")


def default_warranty_months() -> int:
    return int(current_app.config.get("DEFAULT_WARRANTY_MONTHS", 6))


def normalize_origin(origin: str | None) -> str | None:
    if origin is None:
        return None
    value = str(origin).strip().upper()
    if not value:
        return None
    if value not in UNIT_ORIGINS:
        raise ValidationError(f"Invalid origin: {origin}. Must be one of {', '.join(UNIT_ORIGINS)}")
    return value


def append_note(existing: str | None, note: str | None) -> str | None:
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


def validate_warranty_months(warranty_months: int | None) -> int:
    if warranty_months is None:
        return default_warranty_months()
    if warranty_months < 0:
        raise ValidationError("warranty_months must be >= 0")
    return warranty_months


def _validate_cost(cost_cents: int | None) -> int:
    if cost_cents is None:
        return 0
    if cost_cents < 0:
        raise ValidationError("cost_cents must be >= 0")
    return cost_cents


def get_unit(serial: str) -> InventoryUnit:
    unit = db.session.query(InventoryUnit).filter_by(serial=normalize_serial(serial)).first()
    if unit is None:
        raise NotFoundError(f"Unit with serial {normalize_serial(serial)} not found")
    return unit


def _get_unit_for_update(serial: str) -> InventoryUnit:
    unit = lock_for_update(
        db.session.query(InventoryUnit).filter_by(serial=serial)
    ).first()
    if unit is None:
        raise NotFoundError(f"Unit with serial {serial} not found")
    return unit


def build_unit(
    product: Product,
    *,
    serial: str,
    cost_cents: int,
    origin: str | None,
    lot: str | None,
    warranty_months: int,
    entry_date,
    notes: str | None,
) -> InventoryUnit:
    return InventoryUnit(
        product_id=product.id,
        serial=serial,
        cost_cents=cost_cents,
        origin=origin,
        lot=lot,
        entry_date=entry_date,
        warranty_months=warranty_months,
        warranty_expires_at=add_months(entry_date, warranty_months),
        state=UNIT_AVAILABLE,
        notes=notes,
    )


# =============================================================================
# REGISTRATION
# =============================================================================

def register_unit(
    *,
    product_id: int,
    serial: str,
    cost_cents: int | None = None,
    origin: str | None = None,
    lot: str | None = None,
    warranty_months: int | None = None,
    entry_date=None,
    notes: str | None = None,
) -> InventoryUnit:
    """
    Register one serialized unit as AVAILABLE and add it to product stock.

    Raises:
        NotFoundError: product does not exist
        ConflictError: serial already registered
    """
    serial = normalize_serial(serial)
    cost_cents = _validate_cost(cost_cents)
    origin = normalize_origin(origin)
    warranty_months = validate_warranty_months(warranty_months)
    entry_dt = normalize_datetime(entry_date, field="entry_date") or utcnow()

    def _op():
        product = get_product_for_update(product_id)
        if db.session.query(InventoryUnit.id).filter_by(serial=serial).first() is not None:
            raise ConflictError(f"Serial {serial} is already registered")

        unit = build_unit(
            product,
            serial=serial,
            cost_cents=cost_cents,
            origin=origin,
            lot=lot,
            warranty_months=warranty_months,
            entry_date=entry_dt,
            notes=notes,
        )
        db.session.add(unit)
        db.session.flush()
        _, event = post_stock_change(
            product,
            delta=1,
            kind=StockMovementKind.ENTRY,
            reference=serial,
            reason="Unit registered",
        )
        db.session.commit()
        return unit, event

    unit, event = run_with_retry(_op)
    dispatch_low_stock([event])
    return unit


def register_units(
    *,
    product_id: int,
    serials: list[str],
    cost_cents: int | None = None,
    origin: str | None = None,
    lot: str | None = None,
    warranty_months: int | None = None,
    entry_date=None,
    notes: str | None = None,
) -> list[InventoryUnit]:
    """
    Register a batch of serials for one product, all or nothing.

    Every serial is checked before any insert. Repeated serials within the
    batch raise InvalidOperationError, serials already in storage raise
    ConflictError; either error lists every offending serial.
    """
    if not serials:
        raise ValidationError("serials must be a non-empty list")
    normalized = [normalize_serial(s) for s in serials]
    cost_cents = _validate_cost(cost_cents)
    origin = normalize_origin(origin)
    warranty_months = validate_warranty_months(warranty_months)
    entry_dt = normalize_datetime(entry_date, field="entry_date") or utcnow()

    seen = set()
    repeated = []
    for serial in normalized:
        if serial in seen and serial not in repeated:
            repeated.append(serial)
        seen.add(serial)
    if repeated:
        raise InvalidOperationError(f"Duplicate serials in batch: {', '.join(repeated)}")

    def _op():
        product = get_product_for_update(product_id)
        existing = {
            row[0]
            for row in db.session.query(InventoryUnit.serial)
            .filter(InventoryUnit.serial.in_(normalized))
            .all()
        }
        if existing:
            offending = [s for s in normalized if s in existing]
            raise ConflictError(f"Serials already registered: {', '.join(offending)}")

        units = [
            build_unit(
                product,
                serial=serial,
                cost_cents=cost_cents,
                origin=origin,
                lot=lot,
                warranty_months=warranty_months,
                entry_date=entry_dt,
                notes=notes,
            )
            for serial in normalized
        ]
        db.session.add_all(units)
        db.session.flush()
        _, event = post_stock_change(
            product,
            delta=len(units),
            kind=StockMovementKind.ENTRY,
            reference=lot,
            reason=f"Batch registration: {len(units)} units",
        )
        db.session.commit()
        return units, event

    units, event = run_with_retry(_op)
    dispatch_low_stock([event])
    return units


# =============================================================================
# SALE
# =============================================================================

def sell_unit(
    *,
    serial: str,
    customer_id: int,
    sale_price_cents: int,
    payment_method: str,
    sale_date=None,
    notes: str | None = None,
) -> InventoryUnit:
    """
    Sell an AVAILABLE unit directly to a customer.

    Args:
        serial: unit serial (normalized before lookup)
        customer_id: buyer, must exist
        sale_price_cents: agreed price; margin = price - cost
        payment_method: free-form tender label recorded on the unit
        sale_date: defaults to now; the warranty restarts from this date
        notes: appended to existing unit notes

    Raises:
        NotFoundError: unknown serial or customer
        InvalidOperationError: unit is not AVAILABLE
    """
    serial = normalize_serial(serial)
    if sale_price_cents is None or sale_price_cents < 0:
        raise ValidationError("sale_price_cents must be >= 0")
    method = (payment_method or "").strip().upper()
    if not method:
        raise ValidationError("payment_method is required")
    sale_dt = normalize_datetime(sale_date, field="sale_date") or utcnow()

    def _op():
        unit = _get_unit_for_update(serial)
        if unit.state != UNIT_AVAILABLE:
            raise InvalidOperationError(
                f"Unit {serial} is not AVAILABLE (current state: {unit.state})"
            )
        if db.session.get(Customer, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        unit.state = UNIT_SOLD
        unit.customer_id = customer_id
        unit.sale_date = sale_dt
        unit.sale_price_cents = sale_price_cents
        unit.margin_cents = sale_price_cents - unit.cost_cents
        unit.payment_method = method
        unit.warranty_expires_at = add_months(sale_dt, unit.warranty_months)
        unit.notes = append_note(unit.notes, notes)
        db.session.flush()

        _, event = post_stock_change(
            unit.product,
            delta=-1,
            kind=StockMovementKind.EXIT,
            reference=serial,
            reason="Unit sold",
            occurred_at=sale_dt,
        )
        db.session.commit()
        return unit, event

    unit, event = run_with_retry(_op)
    dispatch_low_stock([event])
    return unit


# =============================================================================
# PATCH
# =============================================================================

def _stock_delta(old_state: str, new_state: str) -> int:
    return int(new_state in ON_HAND_STATES) - int(old_state in ON_HAND_STATES)


def update_unit(serial: str, fields: dict) -> InventoryUnit:
    """
    Patch unit fields; a state change follows ALLOWED_PATCH_TRANSITIONS.

    Raises:
        NotFoundError: unknown serial
        InvalidOperationError: transition into SOLD or not allowed
        ValidationError: unknown field or bad value
    """
    serial = normalize_serial(serial)
    unknown = sorted(set(fields) - set(PATCHABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

    new_state = fields.get("state")
    if new_state is not None:
        new_state = str(new_state).strip().upper()
        if new_state not in UNIT_STATES:
            raise ValidationError(f"Invalid state: {fields['state']}")
        if new_state == UNIT_SOLD:
            raise InvalidOperationError("Units can only be marked SOLD through a sale; use sell")

    def _op():
        unit = _get_unit_for_update(serial)
        old_state = unit.state

        if "cost_cents" in fields:
            unit.cost_cents = _validate_cost(fields["cost_cents"])
            if unit.sale_price_cents is not None:
                unit.margin_cents = unit.sale_price_cents - unit.cost_cents
        if "origin" in fields:
            unit.origin = normalize_origin(fields["origin"])
        if "lot" in fields:
            unit.lot = fields["lot"]
        if "notes" in fields:
            unit.notes = fields["notes"]
        if fields.get("warranty_months") is not None:
            months = fields["warranty_months"]
            if months < 0:
                raise ValidationError("warranty_months must be >= 0")
            unit.warranty_months = months
            base = unit.sale_date or unit.entry_date
            unit.warranty_expires_at = add_months(base, months)

        event = None
        if new_state is not None and new_state != old_state:
            if new_state not in ALLOWED_PATCH_TRANSITIONS.get(old_state, set()):
                raise InvalidOperationError(
                    f"Cannot change unit {serial} from {old_state} to {new_state}"
                )
            unit.state = new_state
            if new_state == UNIT_AVAILABLE:
                unit.consignee_id = None
            db.session.flush()

            delta = _stock_delta(old_state, new_state)
            if old_state == UNIT_SOLD and new_state == UNIT_RETURNED:
                kind = StockMovementKind.RETURN
            elif delta > 0:
                kind = StockMovementKind.ENTRY
            else:
                kind = StockMovementKind.EXIT
            _, event = post_stock_change(
                unit.product,
                delta=delta,
                kind=kind,
                reference=serial,
                reason=f"Unit {old_state} -> {new_state}",
            )

        db.session.commit()
        return unit, event

    unit, event = run_with_retry(_op)
    dispatch_low_stock([event])
    return unit


# =============================================================================
# QUERIES
# =============================================================================

@dataclass
class WarrantyStatus:
    unit: InventoryUnit
    in_warranty: bool
    days_remaining: int
    sold_by_us: bool

    def to_dict(self) -> dict:
        product = self.unit.product
        return {
            "unit": self.unit.to_dict(),
            "product": {"id": product.id, "code": product.code, "name": product.name} if product else None,
            "in_warranty": self.in_warranty,
            "days_remaining": self.days_remaining,
            "sold_by_us": self.sold_by_us,
        }


def lookup_warranty(serial: str, now=None) -> WarrantyStatus:
    unit = get_unit(serial)
    now = now or utcnow()
    expires = unit.warranty_expires_at
    return WarrantyStatus(
        unit=unit,
        in_warranty=expires is not None and now < expires,
        days_remaining=days_until(expires, now),
        sold_by_us=unit.state in (UNIT_SOLD, UNIT_RETURNED),
    )


def list_units(
    *,
    product_id: int | None = None,
    state: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 500))

    q = db.session.query(InventoryUnit)
    if product_id is not None:
        q = q.filter(InventoryUnit.product_id == product_id)
    if state:
        state = state.strip().upper()
        if state not in UNIT_STATES:
            raise ValidationError(f"Invalid state: {state}")
        q = q.filter(InventoryUnit.state == state)

    total = q.count()
    items = (
        q.order_by(InventoryUnit.entry_date.desc(), InventoryUnit.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "pagination": paginate_meta(page, limit, total)}


def unit_statistics(product_id: int | None = None) -> dict:
    """Counts per state plus cost of AVAILABLE units and value/margin of SOLD units."""
    q = db.session.query(
        InventoryUnit.state,
        func.count(InventoryUnit.id),
        func.coalesce(func.sum(InventoryUnit.cost_cents), 0),
        func.coalesce(func.sum(InventoryUnit.sale_price_cents), 0),
        func.coalesce(func.sum(InventoryUnit.margin_cents), 0),
    )
    if product_id is not None:
        q = q.filter(InventoryUnit.product_id == product_id)
    rows = q.group_by(InventoryUnit.state).all()

    by_state = {state: 0 for state in UNIT_STATES}
    available_cost = 0
    sold_value = 0
    sold_margin = 0
    for state, count, cost_sum, sale_sum, margin_sum in rows:
        by_state[state] = int(count)
        if state == UNIT_AVAILABLE:
            available_cost = int(cost_sum)
        elif state == UNIT_SOLD:
            sold_value = int(sale_sum)
            sold_margin = int(margin_sum)

    return {
        "product_id": product_id,
        "total": sum(by_state.values()),
        "by_state": by_state,
        "available_cost_cents": available_cost,
        "sold_value_cents": sold_value,
        "sold_margin_cents": sold_margin,
    }
