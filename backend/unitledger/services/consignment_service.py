# Overview: Service-layer operations for consignees and consignments; allocation, sale/return reporting and status recomputation.

"""
Consignment Workflow Invariants & Semantics (authoritative)

Allocation:
- A consignment allocates AVAILABLE units to one active consignee. Units
  become CONSIGNED, product stock drops by the number of lines per product,
  and the consignee's consigned total and pending balance grow by the sum of
  line prices. All in one transaction.
- A unit is on at most one open consignment line at a time (it must be
  AVAILABLE to be allocated, and stays CONSIGNED until sold or returned).

Lines:
- CONSIGNED -> SOLD | RETURNED, both terminal.
- Sale: unit -> SOLD with price = line price, margin = price - cost, and a
  warranty restarted from the sale date. Stock is untouched (it already left
  on allocation).
- Return: unit -> AVAILABLE (+1 stock) or DEFECTIVE (no restock). The line
  price leaves the consignment total/pending and the consignee
  consigned/pending. A return may never leave total < paid.

Money:
- total >= paid and pending == total - paid on every consignment.
- Every balance change is an accumulator update (see concurrency.increment),
  re-checked after the UPDATE so a concurrent writer cannot push a balance
  past its bound.

Status (recomputed after every line or payment event):
    all lines terminal and all RETURNED   -> CANCELLED
    all lines terminal and pending <= 0   -> SETTLED
    any line SOLD or paid > 0             -> IN_PROGRESS
    otherwise unchanged
"""

from __future__ import annotations

from collections import Counter

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Consignee, Consignment, ConsignmentDetail, InventoryUnit, Product
from ..models.consignment import (
    CONSIGNMENT_CANCELLED,
    CONSIGNMENT_EXPIRED,
    CONSIGNMENT_IN_PROGRESS,
    CONSIGNMENT_PENDING,
    CONSIGNMENT_SETTLED,
    CONSIGNMENT_STATUSES,
    LINE_CONSIGNED,
    LINE_RETURNED,
    LINE_SOLD,
    OPEN_CONSIGNMENT_STATUSES,
)
from ..models.inventory import UNIT_AVAILABLE, UNIT_CONSIGNED, UNIT_DEFECTIVE, UNIT_SOLD
from ..validation import InvalidOperationError, NotFoundError, ValidationError
from unitledger.time_utils import add_months, normalize_datetime, utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from .notification_service import dispatch_low_stock
from .stock_ledger_service import StockMovementKind, paginate_meta, post_stock_change


CONSIGNEE_CONTACT_FIELDS = ("name", "phone", "email", "address", "tax_id", "notes")


def credit_allowed() -> bool:
    return bool(current_app.config.get("ALLOW_CONSIGNEE_CREDIT", False))


# =============================================================================
# CONSIGNEES
# =============================================================================

def create_consignee(
    *,
    name: str,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    tax_id: str | None = None,
    notes: str | None = None,
) -> Consignee:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    consignee = Consignee(
        name=name,
        phone=phone,
        email=email,
        address=address,
        tax_id=tax_id,
        notes=notes,
        is_active=True,
        total_consigned_cents=0,
        total_paid_cents=0,
        pending_balance_cents=0,
    )
    db.session.add(consignee)
    db.session.commit()
    return consignee


def get_consignee(consignee_id: int) -> Consignee:
    consignee = db.session.get(Consignee, consignee_id)
    if consignee is None:
        raise NotFoundError(f"Consignee {consignee_id} not found")
    return consignee


def update_consignee(consignee_id: int, fields: dict) -> Consignee:
    """Patch contact fields. Running balances are never writable here."""
    blocked = sorted(set(fields) - set(CONSIGNEE_CONTACT_FIELDS))
    if blocked:
        raise ValidationError(f"Fields cannot be updated: {', '.join(blocked)}")
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("name cannot be empty")

    def _op():
        consignee = get_consignee(consignee_id)
        for key, value in fields.items():
            setattr(consignee, key, value.strip() if key == "name" else value)
        db.session.commit()
        return consignee

    return run_with_retry(_op)


def deactivate_consignee(consignee_id: int) -> Consignee:
    def _op():
        consignee = get_consignee(consignee_id)
        if consignee.is_active:
            consignee.is_active = False
            db.session.commit()
        return consignee

    return run_with_retry(_op)


def list_consignees(
    *,
    search: str | None = None,
    active: bool | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 500))

    q = db.session.query(Consignee)
    if active is not None:
        q = q.filter(Consignee.is_active.is_(active))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Consignee.name.ilike(pattern),
            Consignee.phone.ilike(pattern),
            Consignee.email.ilike(pattern),
            Consignee.tax_id.ilike(pattern),
        ))

    total = q.count()
    items = q.order_by(Consignee.name.asc(), Consignee.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": items, "pagination": paginate_meta(page, limit, total)}


# =============================================================================
# STATUS
# =============================================================================

def classify_consignment(
    current_status: str,
    line_states: list[str],
    paid_value_cents: int,
    pending_value_cents: int,
) -> str:
    """Pure status rule; CANCELLED is checked before SETTLED."""
    all_terminal = bool(line_states) and all(s in (LINE_SOLD, LINE_RETURNED) for s in line_states)
    if all_terminal and all(s == LINE_RETURNED for s in line_states):
        return CONSIGNMENT_CANCELLED
    if all_terminal and pending_value_cents <= 0:
        return CONSIGNMENT_SETTLED
    if any(s == LINE_SOLD for s in line_states) or paid_value_cents > 0:
        return CONSIGNMENT_IN_PROGRESS
    return current_status


def apply_status(consignment: Consignment) -> str:
    new_status = classify_consignment(
        consignment.status,
        [line.state for line in consignment.lines],
        consignment.paid_value_cents,
        consignment.pending_value_cents,
    )
    if new_status != consignment.status:
        consignment.status = new_status
    return new_status


def get_consignment_for_update(consignment_id: int) -> Consignment:
    consignment = lock_for_update(
        db.session.query(Consignment).filter_by(id=consignment_id)
    ).first()
    if consignment is None:
        raise NotFoundError(f"Consignment {consignment_id} not found")
    return consignment


def recompute_status(consignment_id: int) -> Consignment:
    """Re-apply the status rule. Running it twice yields the same status."""
    def _op():
        consignment = get_consignment_for_update(consignment_id)
        apply_status(consignment)
        db.session.commit()
        return consignment

    return run_with_retry(_op)


# =============================================================================
# CREATE
# =============================================================================

def format_consignment_number(sequence: int) -> str:
    prefix = current_app.config.get("CONSIGNMENT_NUMBER_PREFIX", "CON-")
    pad = int(current_app.config.get("CONSIGNMENT_NUMBER_PAD", 3))
    return f"{prefix}{str(sequence).zfill(pad)}"


def _next_sequence() -> int:
    current = db.session.query(func.max(Consignment.sequence)).scalar()
    return int(current or 0) + 1


def _validate_lines(lines: list[dict]) -> list[dict]:
    if not lines:
        raise ValidationError("lines must be a non-empty list")
    cleaned = []
    for index, line in enumerate(lines, start=1):
        product_id = line.get("product_id")
        unit_id = line.get("unit_id")
        price = line.get("price_cents")
        if product_id is None or unit_id is None:
            raise ValidationError(f"Line {index}: product_id and unit_id are required")
        if price is None or price <= 0:
            raise ValidationError(f"Line {index}: price_cents must be > 0")
        cleaned.append({"product_id": product_id, "unit_id": unit_id, "price_cents": price})

    counts = Counter(line["unit_id"] for line in cleaned)
    repeated = [str(unit_id) for unit_id, n in counts.items() if n > 1]
    if repeated:
        raise InvalidOperationError(f"Units repeated in consignment: {', '.join(repeated)}")
    return cleaned


def create_consignment(
    *,
    consignee_id: int,
    lines: list[dict],
    delivery_date=None,
    due_date=None,
    notes: str | None = None,
) -> Consignment:
    """
    Allocate AVAILABLE units to a consignee.

    Args:
        consignee_id: active consignee receiving the units
        lines: [{product_id, unit_id, price_cents}], one per unit
        delivery_date: defaults to now
        due_date: optional settlement deadline (see mark_expired)

    Raises:
        NotFoundError: consignee does not exist
        InvalidOperationError: inactive consignee, unit missing or not AVAILABLE,
            unit/product mismatch, unit repeated
    """
    cleaned = _validate_lines(lines)
    delivery_dt = normalize_datetime(delivery_date, field="delivery_date") or utcnow()
    due_dt = normalize_datetime(due_date, field="due_date")
    if due_dt is not None and due_dt < delivery_dt:
        raise ValidationError("due_date cannot be before delivery_date")
    unit_ids = [line["unit_id"] for line in cleaned]

    def _op():
        consignee = lock_for_update(db.session.query(Consignee).filter_by(id=consignee_id)).first()
        if consignee is None:
            raise NotFoundError(f"Consignee {consignee_id} not found")
        if not consignee.is_active:
            raise InvalidOperationError(f"Consignee {consignee.name} is inactive")

        units = {
            unit.id: unit
            for unit in lock_for_update(
                db.session.query(InventoryUnit).filter(InventoryUnit.id.in_(unit_ids))
            ).all()
        }
        missing = [str(uid) for uid in unit_ids if uid not in units]
        if missing:
            raise InvalidOperationError(f"Units do not exist: {', '.join(missing)}")

        unavailable = [units[uid] for uid in unit_ids if units[uid].state != UNIT_AVAILABLE]
        if unavailable:
            listed = ", ".join(f"{u.serial} ({u.state})" for u in unavailable)
            raise InvalidOperationError(f"Units not AVAILABLE: {listed}")

        mismatched = [
            units[line["unit_id"]].serial
            for line in cleaned
            if units[line["unit_id"]].product_id != line["product_id"]
        ]
        if mismatched:
            raise InvalidOperationError(
                f"Units do not belong to the line product: {', '.join(mismatched)}"
            )

        sequence = _next_sequence()
        total = sum(line["price_cents"] for line in cleaned)
        consignment = Consignment(
            sequence=sequence,
            number=format_consignment_number(sequence),
            consignee_id=consignee.id,
            delivery_date=delivery_dt,
            due_date=due_dt,
            total_value_cents=total,
            paid_value_cents=0,
            pending_value_cents=total,
            status=CONSIGNMENT_PENDING,
            notes=notes,
        )
        db.session.add(consignment)
        db.session.flush()

        for line in cleaned:
            unit = units[line["unit_id"]]
            db.session.add(ConsignmentDetail(
                consignment_id=consignment.id,
                product_id=line["product_id"],
                unit_id=unit.id,
                price_cents=line["price_cents"],
                state=LINE_CONSIGNED,
            ))
            unit.state = UNIT_CONSIGNED
            unit.consignee_id = consignee.id
        db.session.flush()

        events = []
        per_product = Counter(line["product_id"] for line in cleaned)
        for product_id, count in per_product.items():
            product = db.session.get(Product, product_id)
            _, event = post_stock_change(
                product,
                delta=-count,
                kind=StockMovementKind.EXIT,
                reference=consignment.number,
                reason=f"Consigned to {consignee.name}",
                occurred_at=delivery_dt,
            )
            events.append(event)

        increment(consignee, total_consigned_cents=total, pending_balance_cents=total)
        db.session.commit()
        return consignment, events

    consignment, events = run_with_retry(_op)
    dispatch_low_stock(events)
    current_app.logger.info(
        "Consignment %s created for consignee %s (%s lines)",
        consignment.number, consignee_id, len(cleaned),
    )
    return consignment


# =============================================================================
# SALE / RETURN
# =============================================================================

def _lines_for_event(consignment: Consignment, line_ids: list[int]) -> list[ConsignmentDetail]:
    if not line_ids:
        raise ValidationError("line_ids must be a non-empty list")
    if len(set(line_ids)) != len(line_ids):
        raise ValidationError("line_ids must not repeat")

    by_id = {line.id: line for line in consignment.lines}
    foreign = [str(lid) for lid in line_ids if lid not in by_id]
    if foreign:
        raise InvalidOperationError(
            f"Lines {', '.join(foreign)} do not belong to consignment {consignment.number}"
        )
    not_open = [by_id[lid] for lid in line_ids if by_id[lid].state != LINE_CONSIGNED]
    if not_open:
        listed = ", ".join(f"{line.id} ({line.state})" for line in not_open)
        raise InvalidOperationError(f"Lines are not CONSIGNED: {listed}")
    return [by_id[lid] for lid in line_ids]


def _lock_line_units(lines: list[ConsignmentDetail]) -> dict[int, InventoryUnit]:
    unit_ids = [line.unit_id for line in lines]
    units = {
        unit.id: unit
        for unit in lock_for_update(
            db.session.query(InventoryUnit).filter(InventoryUnit.id.in_(unit_ids))
        ).all()
    }
    drifted = [u.serial for u in units.values() if u.state != UNIT_CONSIGNED]
    if drifted:
        raise InvalidOperationError(f"Units are no longer CONSIGNED: {', '.join(drifted)}")
    return units


def report_sale(*, consignment_id: int, line_ids: list[int], sale_date=None) -> Consignment:
    """
    Record that the consignee sold some lines.

    Raises:
        NotFoundError: consignment does not exist
        InvalidOperationError: a line is foreign or not CONSIGNED
    """
    sale_dt = normalize_datetime(sale_date, field="sale_date") or utcnow()

    def _op():
        consignment = get_consignment_for_update(consignment_id)
        lines = _lines_for_event(consignment, line_ids)
        units = _lock_line_units(lines)

        for line in lines:
            line.state = LINE_SOLD
            line.sale_date = sale_dt
            unit = units[line.unit_id]
            unit.state = UNIT_SOLD
            unit.sale_date = sale_dt
            unit.sale_price_cents = line.price_cents
            unit.margin_cents = line.price_cents - unit.cost_cents
            unit.consignee_id = consignment.consignee_id
            unit.warranty_expires_at = add_months(sale_dt, unit.warranty_months)

        apply_status(consignment)
        db.session.commit()
        return consignment

    return run_with_retry(_op)


def report_return(
    *,
    consignment_id: int,
    line_ids: list[int],
    return_date=None,
    defective_line_ids: list[int] | None = None,
) -> Consignment:
    """
    Take lines back from the consignee.

    Units return AVAILABLE and restock, except those listed in
    defective_line_ids, which become DEFECTIVE without restocking.

    Raises:
        NotFoundError: consignment does not exist
        InvalidOperationError: a line is foreign or not CONSIGNED, or the
            return would leave total below paid
    """
    defective = set(defective_line_ids or [])
    if not defective.issubset(set(line_ids or [])):
        raise ValidationError("defective_line_ids must be a subset of line_ids")
    return_dt = normalize_datetime(return_date, field="return_date") or utcnow()

    def _op():
        consignment = get_consignment_for_update(consignment_id)
        lines = _lines_for_event(consignment, line_ids)
        units = _lock_line_units(lines)

        amount = sum(line.price_cents for line in lines)
        if consignment.total_value_cents - amount < consignment.paid_value_cents:
            raise InvalidOperationError(
                f"Return of {amount} would leave consignment {consignment.number} "
                f"total below its paid value ({consignment.paid_value_cents})"
            )

        restock = Counter()
        for line in lines:
            line.state = LINE_RETURNED
            line.return_date = return_dt
            unit = units[line.unit_id]
            unit.consignee_id = None
            if line.id in defective:
                unit.state = UNIT_DEFECTIVE
            else:
                unit.state = UNIT_AVAILABLE
                restock[line.product_id] += 1
        db.session.flush()

        events = []
        for product_id, count in restock.items():
            _, event = post_stock_change(
                db.session.get(Product, product_id),
                delta=count,
                kind=StockMovementKind.RETURN,
                reference=consignment.number,
                reason="Consignment return",
                occurred_at=return_dt,
            )
            events.append(event)

        increment(consignment, total_value_cents=-amount, pending_value_cents=-amount)
        if consignment.total_value_cents < consignment.paid_value_cents:
            raise InvalidOperationError(
                f"Consignment {consignment.number} total would fall below its paid value"
            )

        consignee = db.session.get(Consignee, consignment.consignee_id)
        increment(consignee, total_consigned_cents=-amount, pending_balance_cents=-amount)

        apply_status(consignment)
        db.session.commit()
        return consignment, events

    consignment, events = run_with_retry(_op)
    dispatch_low_stock(events)
    return consignment


# =============================================================================
# EXPIRY
# =============================================================================

def mark_expired(as_of=None) -> int:
    """Move open consignments whose due date passed before as_of to EXPIRED."""
    as_of_dt = normalize_datetime(as_of, field="as_of") or utcnow()

    def _op():
        overdue = (
            lock_for_update(
                db.session.query(Consignment)
                .filter(Consignment.status.in_(OPEN_CONSIGNMENT_STATUSES))
                .filter(Consignment.due_date.isnot(None))
                .filter(Consignment.due_date < as_of_dt)
            ).all()
        )
        for consignment in overdue:
            consignment.status = CONSIGNMENT_EXPIRED
        db.session.commit()
        return len(overdue)

    count = run_with_retry(_op)
    if count:
        current_app.logger.info("Marked %s consignments as EXPIRED (as of %s)", count, as_of_dt)
    return count


# =============================================================================
# QUERIES
# =============================================================================

def get_consignment(consignment_id: int) -> Consignment:
    consignment = db.session.get(Consignment, consignment_id)
    if consignment is None:
        raise NotFoundError(f"Consignment {consignment_id} not found")
    return consignment


def list_consignments(
    *,
    consignee_id: int | None = None,
    status: str | None = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 500))
    date_from = normalize_datetime(date_from, field="date_from")
    date_to = normalize_datetime(date_to, field="date_to")

    q = db.session.query(Consignment)
    if consignee_id is not None:
        q = q.filter(Consignment.consignee_id == consignee_id)
    if status:
        status = status.strip().upper()
        if status not in CONSIGNMENT_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        q = q.filter(Consignment.status == status)
    if date_from is not None:
        q = q.filter(Consignment.delivery_date >= date_from)
    if date_to is not None:
        q = q.filter(Consignment.delivery_date <= date_to)

    total = q.count()
    items = (
        q.order_by(Consignment.delivery_date.desc(), Consignment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "pagination": paginate_meta(page, limit, total)}
