# Overview: Service-layer operations for products (shared stock resource).

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import ConflictError, NotFoundError, ValidationError, normalize_code
from .stock_ledger_service import StockMovementKind, append_movement, classify_stock


def create_product(
    *,
    code: str,
    name: str,
    min_stock: int = 0,
    warning_stock: int = 0,
    base_cost_cents: int | None = None,
    description: str | None = None,
    initial_stock: int = 0,
) -> Product:
    """
    Create a product with a normalized, unique code.

    An initial stock above zero is journaled as a single ENTRY movement.
    """
    code = normalize_code(code)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if min_stock < 0 or warning_stock < 0 or initial_stock < 0:
        raise ValidationError("stock thresholds and initial_stock must be >= 0")
    if base_cost_cents is not None and base_cost_cents < 0:
        raise ValidationError("base_cost_cents must be >= 0")

    if db.session.query(Product.id).filter_by(code=code).first() is not None:
        raise ConflictError(f"Product code {code} already exists")

    product = Product(
        code=code,
        name=name,
        description=description,
        min_stock=min_stock,
        warning_stock=warning_stock,
        base_cost_cents=base_cost_cents,
        current_stock=initial_stock,
        status=classify_stock(initial_stock, min_stock, warning_stock),
    )
    db.session.add(product)
    try:
        db.session.flush()
        if initial_stock > 0:
            append_movement(
                product,
                kind=StockMovementKind.ENTRY,
                quantity=initial_stock,
                stock_before=0,
                reference=None,
                reason="Initial stock",
                occurred_at=None,
            )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Product code {code} already exists")
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_product_by_code(code: str) -> Product:
    product = db.session.query(Product).filter_by(code=normalize_code(code)).first()
    if product is None:
        raise NotFoundError(f"Product {code} not found")
    return product


def resolve_product(ref) -> Product | None:
    """Resolve a product reference given as an id or a code; None when unknown."""
    if isinstance(ref, int) and not isinstance(ref, bool):
        return db.session.get(Product, ref)
    text = str(ref or "").strip()
    if not text:
        return None
    product = db.session.query(Product).filter_by(code=text.upper()).first()
    if product is None and text.isdigit():
        product = db.session.get(Product, int(text))
    return product


def list_products(*, status: str | None = None, active_only: bool = True) -> list[Product]:
    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    if status:
        q = q.filter(Product.status == status.strip().upper())
    return q.order_by(Product.code.asc()).all()
