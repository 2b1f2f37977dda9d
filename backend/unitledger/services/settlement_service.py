# Overview: Service-layer operations for consignment settlements; payment recording and balance updates.

from __future__ import annotations

from decimal import Decimal, InvalidOperation as DecimalInvalidOperation

from flask import current_app

from ..extensions import db
from ..models import Consignee, Payment
from ..validation import MAX_AMOUNT_CENTS, InvalidOperationError, NotFoundError, ValidationError
from unitledger.time_utils import normalize_datetime, utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from .consignment_service import apply_status, credit_allowed, get_consignment_for_update
from .stock_ledger_service import paginate_meta


# =============================================================================
# PAYMENT METHOD CONSTANTS
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_ZELLE = "ZELLE"
METHOD_MOBILE_PAYMENT = "MOBILE_PAYMENT"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_BINANCE = "BINANCE"
METHOD_MIXED = "MIXED"

VALID_PAYMENT_METHODS = {
    METHOD_CASH,
    METHOD_CARD,
    METHOD_ZELLE,
    METHOD_MOBILE_PAYMENT,
    METHOD_BANK_TRANSFER,
    METHOD_BINANCE,
    METHOD_MIXED,
}


def _normalize_method(method: str) -> str:
    value = (method or "").strip().upper()
    if value not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {', '.join(sorted(VALID_PAYMENT_METHODS))}"
        )
    return value


def _normalize_rate(currency_rate) -> Decimal | None:
    if currency_rate is None or currency_rate == "":
        return None
    try:
        rate = Decimal(str(currency_rate))
    except DecimalInvalidOperation:
        raise ValidationError("currency_rate must be a number")
    if rate <= 0:
        raise ValidationError("currency_rate must be > 0")
    return rate


# =============================================================================
# PAYMENT REGISTRATION
# =============================================================================

def register_payment(
    *,
    consignee_id: int,
    amount_cents: int,
    method: str,
    consignment_id: int | None = None,
    currency: str | None = None,
    currency_rate=None,
    reference: str | None = None,
    notes: str | None = None,
    paid_at=None,
) -> Payment:
    """
    Record money received from a consignee.

    The payment always reduces the consignee pending balance. When tied to a
    consignment it also reduces that consignment's pending value and
    re-applies its status rule; otherwise it is never spread over open
    consignments.

    Args:
        consignee_id: paying consignee
        amount_cents: amount in cents (> 0)
        method: one of VALID_PAYMENT_METHODS
        consignment_id: optional consignment the payment settles
        currency: defaults to DEFAULT_CURRENCY
        currency_rate: opaque exchange-rate snapshot
        paid_at: defaults to now

    Returns:
        The immutable Payment record

    Raises:
        NotFoundError: consignee or consignment missing
        InvalidOperationError: consignment of another consignee, amount above
            the consignment pending value, or above the consignee pending
            balance when consignee credit is disabled
        ValidationError: malformed amount, method or rate
    """
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError("amount_cents exceeds maximum allowed amount")
    method = _normalize_method(method)
    rate = _normalize_rate(currency_rate)
    currency = (currency or current_app.config.get("DEFAULT_CURRENCY", "USD")).strip().upper()
    paid_dt = normalize_datetime(paid_at, field="paid_at") or utcnow()
    allow_credit = credit_allowed()

    def _op():
        consignee = lock_for_update(db.session.query(Consignee).filter_by(id=consignee_id)).first()
        if consignee is None:
            raise NotFoundError(f"Consignee {consignee_id} not found")

        consignment = None
        if consignment_id is not None:
            consignment = get_consignment_for_update(consignment_id)
            if consignment.consignee_id != consignee.id:
                raise InvalidOperationError(
                    f"Consignment {consignment.number} does not belong to consignee {consignee.id}"
                )
            if amount_cents > consignment.pending_value_cents:
                raise InvalidOperationError(
                    f"Payment of {amount_cents} exceeds pending value "
                    f"{consignment.pending_value_cents} of consignment {consignment.number}"
                )

        if not allow_credit and amount_cents > consignee.pending_balance_cents:
            raise InvalidOperationError(
                f"Payment of {amount_cents} exceeds pending balance "
                f"{consignee.pending_balance_cents} of consignee {consignee.name}"
            )

        payment = Payment(
            consignee_id=consignee.id,
            consignment_id=consignment.id if consignment else None,
            amount_cents=amount_cents,
            method=method,
            currency=currency,
            currency_rate=rate,
            paid_at=paid_dt,
            reference=reference,
            notes=notes,
        )
        db.session.add(payment)
        db.session.flush()

        increment(consignee, total_paid_cents=amount_cents, pending_balance_cents=-amount_cents)
        if not allow_credit and consignee.pending_balance_cents < 0:
            # A concurrent payment landed between the check and the update
            raise InvalidOperationError(
                f"Payment of {amount_cents} exceeds pending balance of consignee {consignee.name}"
            )

        if consignment is not None:
            increment(consignment, paid_value_cents=amount_cents, pending_value_cents=-amount_cents)
            if consignment.pending_value_cents < 0:
                raise InvalidOperationError(
                    f"Payment of {amount_cents} exceeds pending value of consignment {consignment.number}"
                )
            apply_status(consignment)

        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info(
        "Payment %s of %s %s cents registered for consignee %s",
        payment.id, currency, amount_cents, consignee_id,
    )
    return payment


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def list_payments(
    *,
    consignee_id: int | None = None,
    consignment_id: int | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 500))

    q = db.session.query(Payment)
    if consignee_id is not None:
        q = q.filter(Payment.consignee_id == consignee_id)
    if consignment_id is not None:
        q = q.filter(Payment.consignment_id == consignment_id)

    total = q.count()
    items = (
        q.order_by(Payment.paid_at.desc(), Payment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "pagination": paginate_meta(page, limit, total)}
