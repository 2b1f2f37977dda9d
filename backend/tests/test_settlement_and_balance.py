"""
Settlement ledger and consignee balance view tests.
"""

from decimal import Decimal

import pytest

from unitledger.extensions import db
from unitledger.models import Payment
from unitledger.services import balance_service, consignment_service, settlement_service
from unitledger.validation import InvalidOperationError, NotFoundError, ValidationError


@pytest.fixture
def open_consignment(product, consignee, make_units):
    units = make_units(product, ["BAL-1", "BAL-2"], cost_cents=40)
    return consignment_service.create_consignment(
        consignee_id=consignee.id,
        lines=[
            {"product_id": product.id, "unit_id": units[0].id, "price_cents": 60},
            {"product_id": product.id, "unit_id": units[1].id, "price_cents": 90},
        ],
    )


@pytest.fixture
def allow_credit(app):
    app.config["ALLOW_CONSIGNEE_CREDIT"] = True
    yield
    app.config["ALLOW_CONSIGNEE_CREDIT"] = False


class TestRegisterPayment:

    def test_consignment_payment_updates_both_balances(self, consignee, open_consignment):
        payment = settlement_service.register_payment(
            consignee_id=consignee.id,
            amount_cents=100,
            method="bank_transfer",
            consignment_id=open_consignment.id,
            currency_rate="36.5",
            reference="TX-1",
        )

        assert payment.method == "BANK_TRANSFER"
        assert payment.currency == "USD"
        assert Decimal(str(payment.currency_rate)) == Decimal("36.5")

        consignment = consignment_service.get_consignment(open_consignment.id)
        assert consignment.paid_value_cents == 100
        assert consignment.pending_value_cents == 50
        assert consignment.status == "IN_PROGRESS"

        db.session.refresh(consignee)
        assert consignee.total_paid_cents == 100
        assert consignee.pending_balance_cents == 50

    def test_unallocated_payment_only_touches_consignee(self, consignee, open_consignment):
        settlement_service.register_payment(consignee_id=consignee.id, amount_cents=30, method="CASH")

        consignment = consignment_service.get_consignment(open_consignment.id)
        assert consignment.paid_value_cents == 0
        assert consignment.status == "PENDING"
        db.session.refresh(consignee)
        assert consignee.pending_balance_cents == 120

    def test_overpaying_consignment_is_rejected(self, consignee, open_consignment, allow_credit):
        with pytest.raises(InvalidOperationError, match="exceeds pending value"):
            settlement_service.register_payment(
                consignee_id=consignee.id, amount_cents=151, method="CASH", consignment_id=open_consignment.id
            )
        assert db.session.query(Payment).count() == 0

    def test_consignee_credit_policy(self, consignee, open_consignment):
        with pytest.raises(InvalidOperationError, match="exceeds pending balance"):
            settlement_service.register_payment(consignee_id=consignee.id, amount_cents=151, method="CASH")

    def test_credit_allowed_goes_negative(self, consignee, open_consignment, allow_credit):
        settlement_service.register_payment(consignee_id=consignee.id, amount_cents=200, method="CASH")

        db.session.refresh(consignee)
        assert consignee.pending_balance_cents == -50
        assert balance_service.reconcile(consignee.id) == []

    def test_foreign_consignment(self, consignee, open_consignment):
        other = consignment_service.create_consignee(name="Someone Else")

        with pytest.raises(InvalidOperationError, match="does not belong"):
            settlement_service.register_payment(
                consignee_id=other.id, amount_cents=10, method="CASH", consignment_id=open_consignment.id
            )

    def test_input_validation(self, consignee):
        with pytest.raises(ValidationError):
            settlement_service.register_payment(consignee_id=consignee.id, amount_cents=0, method="CASH")
        with pytest.raises(ValidationError, match="Invalid payment method"):
            settlement_service.register_payment(consignee_id=consignee.id, amount_cents=5, method="CHEQUE")
        with pytest.raises(ValidationError):
            settlement_service.register_payment(
                consignee_id=consignee.id, amount_cents=5, method="CASH", currency_rate="-1"
            )
        with pytest.raises(NotFoundError):
            settlement_service.register_payment(consignee_id=404, amount_cents=5, method="CASH")

    def test_list_payments(self, consignee, open_consignment):
        settlement_service.register_payment(
            consignee_id=consignee.id, amount_cents=10, method="CASH", paid_at="2024-01-01"
        )
        settlement_service.register_payment(
            consignee_id=consignee.id, amount_cents=20, method="CASH",
            consignment_id=open_consignment.id, paid_at="2024-02-01",
        )

        listed = settlement_service.list_payments(consignee_id=consignee.id)
        assert [p.amount_cents for p in listed["items"]] == [20, 10]

        scoped = settlement_service.list_payments(consignment_id=open_consignment.id)
        assert scoped["pagination"]["total"] == 1


class TestBalanceView:

    def test_dashboard_and_receivables(self, consignee, open_consignment):
        consignment_service.create_consignee(name="Nothing Owed")
        line_id = open_consignment.lines[0].id
        consignment_service.report_return(consignment_id=open_consignment.id, line_ids=[line_id])

        data = balance_service.dashboard()
        assert data["active_consignees"] == 2
        assert data["total_consigned_cents"] == 90
        assert data["total_pending_cents"] == 90
        assert data["open_consignments"] == 1
        assert data["expired_consignments"] == 0
        assert [d["id"] for d in data["top_debtors"]] == [consignee.id]

        owed = balance_service.receivables()
        assert len(owed) == 1
        assert owed[0]["pending_balance_cents"] == 90
        lines = owed[0]["consignments"][0]["lines"]
        # Returned lines are not receivable
        assert [line["serial"] for line in lines] == ["BAL-2"]

    def test_statement(self, consignee, open_consignment):
        settlement_service.register_payment(consignee_id=consignee.id, amount_cents=15, method="CARD")

        statement = balance_service.consignee_statement(consignee.id)

        assert statement["consignee"]["pending_balance_cents"] == 135
        assert [c["number"] for c in statement["consignments"]] == [open_consignment.number]
        assert [p["amount_cents"] for p in statement["payments"]] == [15]

    def test_reconcile_after_full_workflow(self, consignee, open_consignment):
        first, second = [line.id for line in open_consignment.lines]
        consignment_service.report_sale(consignment_id=open_consignment.id, line_ids=[first])
        settlement_service.register_payment(
            consignee_id=consignee.id, amount_cents=60, method="CASH", consignment_id=open_consignment.id
        )
        consignment_service.report_return(consignment_id=open_consignment.id, line_ids=[second])

        assert balance_service.reconcile(consignee.id) == []
        assert consignment_service.get_consignment(open_consignment.id).status == "SETTLED"

    def test_reconcile_empty_consignee(self, consignee):
        assert balance_service.reconcile(consignee.id) == []

    def test_reconcile_detects_drift(self, consignee, open_consignment):
        consignee.pending_balance_cents = 1
        db.session.commit()

        violations = balance_service.reconcile(consignee.id)

        assert any("pending 1 != consigned 150 - paid 0" in v for v in violations)

    def test_unknown_consignee(self, db_session):
        with pytest.raises(NotFoundError):
            balance_service.reconcile(12345)
