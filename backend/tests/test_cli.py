"""
Flask CLI command tests.
"""

from unitledger.extensions import db
from unitledger.models import InventoryUnit
from unitledger.services import consignment_service


class TestUnitCommands:

    def test_import_csv(self, app, make_product, tmp_path):
        make_product(code="CLI", base_cost_cents=700)
        path = tmp_path / "units.csv"
        path.write_text("product_code,serial,cost\nCLI,CLI-1,\nCLI,CLI-2,9.99\nNOPE,CLI-3,\n", encoding="utf-8")

        result = app.test_cli_runner().invoke(
            args=["units", "import-csv", str(path), "--origin", "PURCHASE", "--reference", "CLI-REF"]
        )

        assert result.exit_code == 0, result.output
        assert "Reference CLI-REF: 2 imported, 1 failed" in result.output
        assert "FAIL CLI-3" in result.output
        costs = {u.serial: u.cost_cents for u in db.session.query(InventoryUnit).all()}
        assert costs == {"CLI-1": 700, "CLI-2": 999}

    def test_import_csv_duplicate_serials(self, app, make_product, tmp_path):
        make_product(code="CLI")
        path = tmp_path / "dups.csv"
        path.write_text("product_code,serial\nCLI,X\nCLI,x\n", encoding="utf-8")

        result = app.test_cli_runner().invoke(args=["units", "import-csv", str(path)])

        assert result.exit_code != 0
        assert "Duplicate serials" in result.output


class TestConsignmentCommands:

    def test_expire_and_reconcile(self, app, product, consignee, make_units):
        unit = make_units(product, ["EXP-1"])[0]
        consignment_service.create_consignment(
            consignee_id=consignee.id,
            lines=[{"product_id": product.id, "unit_id": unit.id, "price_cents": 10}],
            delivery_date="2024-01-01",
            due_date="2024-01-15",
        )
        runner = app.test_cli_runner()

        result = runner.invoke(args=["consignments", "expire", "--as-of", "2024-02-01"])
        assert result.exit_code == 0, result.output
        assert "1 consignment(s) marked EXPIRED" in result.output

        result = runner.invoke(args=["consignments", "reconcile"])
        assert result.exit_code == 0, result.output
        assert "1 consignee(s) reconciled" in result.output

    def test_reconcile_reports_drift(self, app, consignee):
        consignee.total_paid_cents = 5
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["consignments", "reconcile", "--consignee-id", str(consignee.id)])

        assert result.exit_code != 0
        assert f"FAIL Consignee {consignee.id}" in result.output
