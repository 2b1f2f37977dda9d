# Overview: Read-side consignee balance views; dashboard, receivables, statements and reconciliation checks.

"""
Consignee Balance View

Read only. Every number here is derived from the persisted consignment,
line and payment records; nothing is written.

reconcile() re-derives each running balance independently and reports the
identities that do not hold, so drift can be detected without trusting the
denormalized counters.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Consignee, Consignment, ConsignmentDetail, Payment
from ..models.consignment import (
    CONSIGNMENT_EXPIRED,
    LINE_CONSIGNED,
    LINE_RETURNED,
    LINE_SOLD,
    OPEN_CONSIGNMENT_STATUSES,
)
from ..validation import NotFoundError


TOP_DEBTORS_LIMIT = 5
STATEMENT_HISTORY_LIMIT = 20


def dashboard() -> dict:
    totals = (
        db.session.query(
            func.count(Consignee.id),
            func.coalesce(func.sum(Consignee.total_consigned_cents), 0),
            func.coalesce(func.sum(Consignee.total_paid_cents), 0),
            func.coalesce(func.sum(Consignee.pending_balance_cents), 0),
        )
        .filter(Consignee.is_active.is_(True))
        .one()
    )
    open_count = (
        db.session.query(func.count(Consignment.id))
        .filter(Consignment.status.in_(OPEN_CONSIGNMENT_STATUSES))
        .scalar()
    )
    expired_count = (
        db.session.query(func.count(Consignment.id))
        .filter(Consignment.status == CONSIGNMENT_EXPIRED)
        .scalar()
    )
    top_debtors = (
        db.session.query(Consignee)
        .filter(Consignee.is_active.is_(True), Consignee.pending_balance_cents > 0)
        .order_by(Consignee.pending_balance_cents.desc(), Consignee.id.asc())
        .limit(TOP_DEBTORS_LIMIT)
        .all()
    )
    return {
        "active_consignees": int(totals[0]),
        "total_consigned_cents": int(totals[1]),
        "total_paid_cents": int(totals[2]),
        "total_pending_cents": int(totals[3]),
        "open_consignments": int(open_count or 0),
        "expired_consignments": int(expired_count or 0),
        "top_debtors": [
            {"id": c.id, "name": c.name, "pending_balance_cents": c.pending_balance_cents}
            for c in top_debtors
        ],
    }


def receivables() -> list[dict]:
    """Active consignees that owe money, largest balance first."""
    debtors = (
        db.session.query(Consignee)
        .filter(Consignee.is_active.is_(True), Consignee.pending_balance_cents > 0)
        .order_by(Consignee.pending_balance_cents.desc(), Consignee.id.asc())
        .all()
    )
    out = []
    for consignee in debtors:
        consignments = (
            db.session.query(Consignment)
            .filter(
                Consignment.consignee_id == consignee.id,
                Consignment.status.in_(OPEN_CONSIGNMENT_STATUSES),
            )
            .order_by(Consignment.delivery_date.asc(), Consignment.id.asc())
            .all()
        )
        entry = consignee.to_dict()
        entry["consignments"] = []
        for consignment in consignments:
            data = consignment.to_dict(include_lines=False)
            data["lines"] = [
                line.to_dict() for line in consignment.lines
                if line.state in (LINE_CONSIGNED, LINE_SOLD)
            ]
            entry["consignments"].append(data)
        out.append(entry)
    return out


def consignee_statement(consignee_id: int) -> dict:
    consignee = db.session.get(Consignee, consignee_id)
    if consignee is None:
        raise NotFoundError(f"Consignee {consignee_id} not found")
    consignments = (
        db.session.query(Consignment)
        .filter_by(consignee_id=consignee_id)
        .order_by(Consignment.delivery_date.desc(), Consignment.id.desc())
        .limit(STATEMENT_HISTORY_LIMIT)
        .all()
    )
    payments = (
        db.session.query(Payment)
        .filter_by(consignee_id=consignee_id)
        .order_by(Payment.paid_at.desc(), Payment.id.desc())
        .limit(STATEMENT_HISTORY_LIMIT)
        .all()
    )
    return {
        "consignee": consignee.to_dict(),
        "consignments": [c.to_dict(include_lines=False) for c in consignments],
        "payments": [p.to_dict() for p in payments],
    }


def reconcile(consignee_id: int) -> list[str]:
    """Violated balance identities for one consignee; empty when consistent."""
    consignee = db.session.get(Consignee, consignee_id)
    if consignee is None:
        raise NotFoundError(f"Consignee {consignee_id} not found")

    violations = []
    consigned = consignee.total_consigned_cents
    paid = consignee.total_paid_cents
    pending = consignee.pending_balance_cents

    if pending != consigned - paid:
        violations.append(f"pending {pending} != consigned {consigned} - paid {paid}")

    consignments = db.session.query(Consignment).filter_by(consignee_id=consignee_id).all()
    sum_totals = sum(c.total_value_cents for c in consignments)
    sum_pending = sum(c.pending_value_cents for c in consignments)
    if consigned != sum_totals:
        violations.append(f"consigned {consigned} != sum of consignment totals {sum_totals}")

    payments_total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.consignee_id == consignee_id)
        .scalar()
    )
    if paid != int(payments_total):
        violations.append(f"paid {paid} != sum of payments {int(payments_total)}")

    unallocated = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.consignee_id == consignee_id, Payment.consignment_id.is_(None))
        .scalar()
    )
    if pending != sum_pending - int(unallocated):
        violations.append(
            f"pending {pending} != sum of consignment pending {sum_pending} "
            f"- unallocated payments {int(unallocated)}"
        )

    for consignment in consignments:
        number = consignment.number
        total = consignment.total_value_cents
        c_paid = consignment.paid_value_cents
        c_pending = consignment.pending_value_cents
        if c_pending != total - c_paid:
            violations.append(f"{number}: pending {c_pending} != total {total} - paid {c_paid}")
        lines_total = (
            db.session.query(func.coalesce(func.sum(ConsignmentDetail.price_cents), 0))
            .filter(
                ConsignmentDetail.consignment_id == consignment.id,
                ConsignmentDetail.state != LINE_RETURNED,
            )
            .scalar()
        )
        if total != int(lines_total):
            violations.append(f"{number}: total {total} != sum of non-returned lines {int(lines_total)}")
        if total < c_paid:
            violations.append(f"{number}: total {total} < paid {c_paid}")

    return violations
