# Overview: Service-layer operations for the stock ledger; movements, stock status and stock counters.

"""
Stock Ledger Invariants & Semantics (authoritative)

Stock model:
- Product.current_stock is a denormalized counter. Every change goes through
  post_stock_change() (delta) or an ADJUST movement (absolute value).
- Each change appends exactly one StockMovement in the same DB transaction,
  with stock_before/stock_after snapshots.
- Delta changes are accumulator updates (current_stock = current_stock + d).

Movement kinds (tagged variant, one effect function per kind):
- ENTRY:  stock + quantity
- EXIT:   stock - quantity; rejected when quantity > stock
- ADJUST: stock = quantity (absolute override, not a delta)
- RETURN: stock + quantity

Status:
- Recomputed after every change: OUT_OF_STOCK (<= 0), CRITICAL (<= min),
  WARNING (<= warning threshold), else OK.
- Crossing from OK into any other status yields a LowStockEvent that the
  caller dispatches AFTER commit (see notification_service).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import STOCK_CRITICAL, STOCK_OK, STOCK_OUT, STOCK_WARNING
from ..validation import InvalidOperationError, NotFoundError, ValidationError
from unitledger.time_utils import normalize_datetime, utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from .notification_service import LowStockEvent, dispatch_low_stock


class StockMovementKind(str, Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"
    ADJUST = "ADJUST"
    RETURN = "RETURN"


# =============================================================================
# PER-KIND EFFECTS
# =============================================================================

def _entry_effect(current: int, quantity: int) -> int:
    return current + quantity


def _exit_effect(current: int, quantity: int) -> int:
    if quantity > current:
        raise InvalidOperationError(
            f"Insufficient stock. Available: {current}, requested: {quantity}"
        )
    return current - quantity


def _adjust_effect(current: int, quantity: int) -> int:
    return quantity


def _return_effect(current: int, quantity: int) -> int:
    return current + quantity


@dataclass(frozen=True)
class MovementEffect:
    apply: Callable[[int, int], int]
    # Absolute effects set the counter; the others are applied as deltas
    absolute: bool = False
    allow_zero: bool = False


MOVEMENT_EFFECTS: dict[StockMovementKind, MovementEffect] = {
    StockMovementKind.ENTRY: MovementEffect(_entry_effect),
    StockMovementKind.EXIT: MovementEffect(_exit_effect),
    StockMovementKind.ADJUST: MovementEffect(_adjust_effect, absolute=True, allow_zero=True),
    StockMovementKind.RETURN: MovementEffect(_return_effect),
}


def parse_movement_kind(value) -> StockMovementKind:
    try:
        return StockMovementKind(str(value).strip().upper())
    except ValueError:
        valid = ", ".join(k.value for k in StockMovementKind)
        raise ValidationError(f"Invalid movement kind: {value}. Must be one of {valid}")


# =============================================================================
# STATUS
# =============================================================================

def classify_stock(stock: int, min_stock: int, warning_stock: int) -> str:
    if stock <= 0:
        return STOCK_OUT
    if stock <= min_stock:
        return STOCK_CRITICAL
    if stock <= warning_stock:
        return STOCK_WARNING
    return STOCK_OK


def refresh_stock_status(product: Product, previous_status: str) -> LowStockEvent | None:
    """Recompute product.status; return an event on an OK -> non-OK crossing."""
    new_status = classify_stock(product.current_stock, product.min_stock, product.warning_stock)
    if new_status != product.status:
        product.status = new_status
    if new_status != STOCK_OK and previous_status == STOCK_OK:
        return LowStockEvent(
            product_id=product.id,
            code=product.code,
            name=product.name,
            current_stock=product.current_stock,
            min_stock=product.min_stock,
            status=new_status,
        )
    return None


def append_movement(
    product: Product,
    *,
    kind: StockMovementKind,
    quantity: int,
    stock_before: int,
    reference: str | None,
    reason: str | None,
    occurred_at: datetime | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        kind=kind.value,
        quantity=quantity,
        stock_before=stock_before,
        stock_after=product.current_stock,
        reference=reference,
        reason=reason,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def post_stock_change(
    product: Product,
    *,
    delta: int,
    kind: StockMovementKind,
    reference: str | None = None,
    reason: str | None = None,
    occurred_at: datetime | None = None,
) -> tuple[StockMovement | None, LowStockEvent | None]:
    """
    Apply a unit-driven stock delta inside the caller's transaction.

    Used by the unit registry, bulk intake and consignment workflow. No
    sufficiency check: the unit states are authoritative, the counter follows.
    """
    if delta == 0:
        return None, None
    previous_status = product.status
    increment(product, current_stock=delta)
    movement = append_movement(
        product,
        kind=kind,
        quantity=abs(delta),
        stock_before=product.current_stock - delta,
        reference=reference,
        reason=reason,
        occurred_at=occurred_at,
    )
    return movement, refresh_stock_status(product, previous_status)


# =============================================================================
# MOVEMENTS
# =============================================================================

def get_product_for_update(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def record_movement(
    *,
    product_id: int,
    kind,
    quantity: int,
    reference: str | None = None,
    reason: str | None = None,
    occurred_at=None,
) -> tuple[StockMovement, Product]:
    """
    Record a quantity-level stock movement and update the product counter.

    Movement and product update commit together. A low-stock crossing is
    dispatched after the commit; notifier failures never surface here.

    Raises:
        NotFoundError: product does not exist
        InvalidOperationError: EXIT larger than current stock
        ValidationError: unknown kind or invalid quantity
    """
    movement_kind = parse_movement_kind(kind)
    effect = MOVEMENT_EFFECTS[movement_kind]
    if quantity is None or quantity < 0 or (quantity == 0 and not effect.allow_zero):
        raise ValidationError("quantity must be positive")
    occurred_dt = normalize_datetime(occurred_at, field="occurred_at")

    def _op():
        product = get_product_for_update(product_id)
        previous_status = product.status
        current = product.current_stock
        target = effect.apply(current, quantity)

        if effect.absolute:
            product.current_stock = target
            db.session.flush()
            stock_before = current
        else:
            delta = target - current
            increment(product, current_stock=delta)
            stock_before = product.current_stock - delta
            if product.current_stock < 0:
                # Concurrent exits drained the stock between check and update
                raise InvalidOperationError(
                    f"Insufficient stock. Available: {stock_before}, requested: {quantity}"
                )

        movement = append_movement(
            product,
            kind=movement_kind,
            quantity=quantity,
            stock_before=stock_before,
            reference=reference,
            reason=reason,
            occurred_at=occurred_dt,
        )
        event = refresh_stock_status(product, previous_status)
        db.session.commit()
        return movement, product, event

    movement, product, event = run_with_retry(_op)
    dispatch_low_stock([event])
    return movement, product


def list_movements(
    *,
    product_id: int | None = None,
    kind=None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    """Movements newest first, with a pagination envelope."""
    page = max(1, page)
    limit = max(1, min(limit, 500))

    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if kind is not None:
        q = q.filter(StockMovement.kind == parse_movement_kind(kind).value)
    date_from = normalize_datetime(date_from, field="date_from")
    date_to = normalize_datetime(date_to, field="date_to")
    if date_from is not None:
        q = q.filter(StockMovement.occurred_at >= date_from)
    if date_to is not None:
        q = q.filter(StockMovement.occurred_at <= date_to)

    total = q.count()
    items = (
        q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "pagination": paginate_meta(page, limit, total),
    }


def paginate_meta(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": (total + limit - 1) // limit if limit else 0,
    }
