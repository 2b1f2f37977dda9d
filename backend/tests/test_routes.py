"""
HTTP API tests through the Flask test client: payload parsing, response
envelopes and error status mapping.
"""

import io


def _post(client, url, payload):
    return client.post(url, json=payload)


def _create_product(client, code="API-1", **extra):
    payload = {"code": code, "name": f"Product {code}", "min_stock": 1, "warning_stock": 2}
    payload.update(extra)
    resp = _post(client, "/api/products", payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["product"]


class TestSystemRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/api/system/health")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_cors_header_for_allowed_origin(self, client, db_session):
        resp = client.get("/api/system/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        resp = client.get("/api/system/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestProductAndMovementRoutes:

    def test_create_and_fetch_product(self, client, db_session):
        product = _create_product(client, code=" api-7 ", initial_stock=3)

        assert product["code"] == "API-7"
        assert product["current_stock"] == 3

        resp = client.get("/api/products/code/api-7")
        assert resp.status_code == 200
        assert resp.get_json()["product"]["id"] == product["id"]

        assert client.get("/api/products/9999").status_code == 404

    def test_duplicate_code_is_conflict(self, client, db_session):
        _create_product(client, code="DUP")

        resp = _post(client, "/api/products", {"code": "dup", "name": "Again"})

        assert resp.status_code == 409

    def test_movement_errors_map_to_status(self, client, db_session):
        product = _create_product(client, initial_stock=1)

        resp = _post(client, "/api/inventory/movements", {
            "product_id": product["id"], "kind": "EXIT", "quantity": 5,
        })
        assert resp.status_code == 400
        assert "Insufficient stock" in resp.get_json()["error"]

        resp = _post(client, "/api/inventory/movements", {"product_id": product["id"], "kind": "EXIT"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "quantity is required"

        resp = _post(client, "/api/inventory/movements", {"product_id": 999, "kind": "ENTRY", "quantity": 1})
        assert resp.status_code == 404

    def test_movement_and_listing(self, client, db_session):
        product = _create_product(client)

        resp = _post(client, "/api/inventory/movements", {
            "product_id": product["id"], "kind": "entry", "quantity": "4", "reference": "PO-1",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["product"]["current_stock"] == 4
        assert body["movement"]["stock_after"] == 4

        listed = client.get(f"/api/inventory/movements?product_id={product['id']}&limit=1").get_json()
        assert listed["pagination"]["total"] == 1
        assert listed["items"][0]["reference"] == "PO-1"

    def test_float_quantity_rejected(self, client, db_session):
        product = _create_product(client)

        resp = _post(client, "/api/inventory/movements", {
            "product_id": product["id"], "kind": "ENTRY", "quantity": 1.5,
        })

        assert resp.status_code == 400


class TestUnitRoutes:

    def test_register_sell_and_lookup(self, client, db_session):
        product = _create_product(client)
        customer = _post(client, "/api/customers", {"name": "Buyer"}).get_json()["customer"]

        resp = _post(client, "/api/units", {"product_id": product["id"], "serial": "sn-001", "cost_cents": 100})
        assert resp.status_code == 201
        assert resp.get_json()["unit"]["serial"] == "SN-001"

        resp = _post(client, "/api/units/SN-001/sell", {
            "customer_id": customer["id"], "sale_price_cents": 150, "payment_method": "CASH",
        })
        assert resp.status_code == 200
        unit = resp.get_json()["unit"]
        assert unit["state"] == "SOLD"
        assert unit["margin_cents"] == 50

        resp = _post(client, "/api/units/SN-001/sell", {
            "customer_id": customer["id"], "sale_price_cents": 150, "payment_method": "CASH",
        })
        assert resp.status_code == 400

        warranty = client.get("/api/units/sn-001/warranty").get_json()
        assert warranty["sold_by_us"] is True
        assert warranty["in_warranty"] is True

        assert client.get("/api/units/NOPE").status_code == 404

    def test_batch_conflict_and_duplicates(self, client, db_session):
        product = _create_product(client)
        _post(client, "/api/units", {"product_id": product["id"], "serial": "B-1"})

        resp = _post(client, "/api/units/batch", {"product_id": product["id"], "serials": ["B-1", "B-2"]})
        assert resp.status_code == 409

        resp = _post(client, "/api/units/batch", {"product_id": product["id"], "serials": ["A", "A"]})
        assert resp.status_code == 400
        assert "A" in resp.get_json()["error"]

        resp = _post(client, "/api/units/batch", {"product_id": product["id"], "serials": ["B-2", "B-3"]})
        assert resp.status_code == 201
        assert resp.get_json()["count"] == 2

    def test_patch_and_stats(self, client, db_session):
        product = _create_product(client)
        _post(client, "/api/units", {"product_id": product["id"], "serial": "PT-1", "cost_cents": 80})

        resp = client.patch("/api/units/PT-1", json={"state": "DEFECTIVE", "notes": "cracked"})
        assert resp.status_code == 200
        assert resp.get_json()["unit"]["state"] == "DEFECTIVE"

        resp = client.patch("/api/units/PT-1", json={"state": "SOLD"})
        assert resp.status_code == 400

        stats = client.get(f"/api/units/stats?product_id={product['id']}").get_json()
        assert stats["by_state"]["DEFECTIVE"] == 1
        assert stats["total"] == 1

        listed = client.get("/api/units?state=defective").get_json()
        assert [u["serial"] for u in listed["items"]] == ["PT-1"]


class TestImportRoutes:

    def test_grouped_import(self, client, db_session):
        _create_product(client, code="IMP", base_cost_cents=500)

        resp = _post(client, "/api/imports", {
            "reference": "INV-1",
            "groups": [{"product_code": "IMP", "units": [{"serial": "I-1"}, {"serial": "I-2"}]}],
        })

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["succeeded"] == 2
        assert data["products"][0]["stock_after"] == 2

    def test_duplicate_serial_in_import(self, client, db_session):
        _create_product(client, code="IMP")

        resp = _post(client, "/api/imports/rows", {"rows": [
            {"product_code": "IMP", "serial": "Z-1"},
            {"product_code": "IMP", "serial": "Z-1"},
        ]})

        assert resp.status_code == 400

    def test_csv_upload(self, client, db_session):
        _create_product(client, code="CSV")
        csv_bytes = b"product_code,serial,cost\nCSV,U-1,10.00\nCSV,U-2,\n"

        resp = client.post(
            "/api/imports/upload",
            data={"file": (io.BytesIO(csv_bytes), "units.csv"), "origin": "PURCHASE", "reference": "UP-1"},
            content_type="multipart/form-data",
        )

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["reference"] == "UP-1"
        assert data["succeeded"] == 2

    def test_upload_requires_supported_file(self, client, db_session):
        assert client.post("/api/imports/upload", data={}, content_type="multipart/form-data").status_code == 400

        resp = client.post(
            "/api/imports/upload",
            data={"file": (io.BytesIO(b"x"), "units.txt")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400


class TestConsignmentRoutes:

    def _setup(self, client):
        product = _create_product(client, code="CNS")
        units = _post(client, "/api/units/batch", {
            "product_id": product["id"], "serials": ["K-1", "K-2"], "cost_cents": 30,
        }).get_json()["units"]
        consignee = _post(client, "/api/consignees", {"name": "Kiosk"}).get_json()["consignee"]
        resp = _post(client, "/api/consignments", {
            "consignee_id": consignee["id"],
            "lines": [{"product_id": product["id"], "unit_id": u["id"], "price_cents": 50} for u in units],
        })
        assert resp.status_code == 201
        return consignee, resp.get_json()["consignment"]

    def test_full_flow(self, client, db_session):
        consignee, consignment = self._setup(client)
        first, second = [line["id"] for line in consignment["lines"]]
        cid = consignment["id"]

        resp = _post(client, f"/api/consignments/{cid}/sales", {"line_ids": [first]})
        assert resp.get_json()["consignment"]["status"] == "IN_PROGRESS"

        resp = _post(client, "/api/consignments/payments", {
            "consignee_id": consignee["id"], "amount_cents": 50, "method": "ZELLE", "consignment_id": cid,
        })
        assert resp.status_code == 201
        payment_id = resp.get_json()["payment"]["id"]
        fetched = client.get(f"/api/consignments/payments/{payment_id}").get_json()["payment"]
        assert fetched["method"] == "ZELLE"
        assert fetched["consignment_id"] == cid

        resp = _post(client, f"/api/consignments/{cid}/returns", {"line_ids": [second]})
        assert resp.status_code == 200
        assert resp.get_json()["consignment"]["status"] == "SETTLED"

        reconcile = client.get(f"/api/consignees/{consignee['id']}/reconcile").get_json()
        assert reconcile == {"consistent": True, "violations": []}

        statement = client.get(f"/api/consignees/{consignee['id']}/statement").get_json()
        assert statement["consignee"]["pending_balance_cents"] == 0

        dashboard = client.get("/api/consignments/dashboard").get_json()
        assert dashboard["total_paid_cents"] == 50
        assert client.get("/api/consignments/receivables").get_json() == {"items": []}

    def test_errors(self, client, db_session):
        consignee, consignment = self._setup(client)
        cid = consignment["id"]

        resp = _post(client, f"/api/consignments/{cid}/sales", {"line_ids": []})
        assert resp.status_code == 400

        resp = _post(client, f"/api/consignments/{cid}/sales", {"line_ids": [987654]})
        assert resp.status_code == 400

        resp = _post(client, "/api/consignments/987/sales", {"line_ids": [1]})
        assert resp.status_code == 404

        resp = _post(client, "/api/consignments/payments", {
            "consignee_id": consignee["id"], "amount_cents": 101, "method": "CASH",
        })
        assert resp.status_code == 400

        resp = client.patch(f"/api/consignees/{consignee['id']}", json={"total_paid_cents": 0})
        assert resp.status_code == 400

        resp = client.get("/api/consignments?status=pending").get_json()
        assert resp["pagination"]["total"] == 1
