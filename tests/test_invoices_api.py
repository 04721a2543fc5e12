from crm_inventory.inventory.availability import StockCheckResult
from crm_inventory.invoices import creation
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.invoices import Invoice


def _stock(db, item_id):
    item = db.get(InventoryItem, item_id)
    db.refresh(item)
    return item.stock_level


def _invoice_body(*lines, **extra):
    body = {"items": list(lines), "due_date": "2026-11-30"}
    body.update(extra)
    return body


def _line(item=None, quantity=1, unit_price="10.00", **extra):
    line = {
        "description": item.name if item else "Service",
        "quantity": quantity,
        "unit_price": unit_price,
        "inventory_item_id": item.id if item else None,
    }
    line.update(extra)
    return line


class TestCreateInvoice:

    def test_creates_and_deducts(self, client, db, auth_headers, make_item):
        widget = make_item(stock_level=10)

        response = client.post(
            "/invoices",
            json=_invoice_body(_line(widget, 3), _line(None, 2, "25.00"), tax_rate="10"),
            headers=auth_headers,
        )

        data = response.json()
        assert response.status_code == 201
        assert data["invoice_number"] == "INV-0001"
        assert data["subtotal"] == "80.00"
        assert data["total"] == "88.00"
        assert len(data["items"]) == 2
        assert _stock(db, widget.id) == 7

    def test_insufficient_stock_lists_every_item(self, client, db, auth_headers, make_item):
        widget = make_item(stock_level=1, name="Widget", sku="W-1")
        gadget = make_item(stock_level=0, name="Gadget", sku="G-1")

        response = client.post(
            "/invoices",
            json=_invoice_body(_line(widget, 2), _line(gadget, 1)),
            headers=auth_headers,
        )

        detail = response.json()["detail"]
        assert response.status_code == 400
        assert detail["code"] == "insufficient_stock"
        assert detail["errors"] == [
            'Insufficient stock for "Widget" (W-1): need 2, available 1',
            'Insufficient stock for "Gadget" (G-1): need 1, available 0',
        ]
        assert [(s["id"], s["available"], s["requested"]) for s in detail["insufficient_stock"]] == [
            (widget.id, 1, 2),
            (gadget.id, 0, 1),
        ]
        assert db.query(Invoice).count() == 0

    def test_lost_race_reports_locked_levels(self, client, db, auth_headers, make_item, monkeypatch):
        monkeypatch.setattr(
            creation,
            "check_stock_availability",
            lambda db, org_id, requests: StockCheckResult(valid=True),
        )
        widget = make_item(stock_level=1, name="Widget", sku="W-1")

        response = client.post("/invoices", json=_invoice_body(_line(widget, 4)), headers=auth_headers)

        detail = response.json()["detail"]
        assert response.status_code == 400
        assert detail["code"] == "insufficient_stock"
        assert detail["insufficient_stock"] == [
            {"id": widget.id, "name": "Widget", "sku": "W-1", "available": 1, "requested": 4}
        ]
        assert db.query(Invoice).count() == 0
        assert _stock(db, widget.id) == 1

    def test_line_linking_other_tenant_item(self, client, db, auth_headers, other_org, make_item):
        foreign = make_item(organization=other_org, stock_level=5, sku="F-1")

        response = client.post(
            "/invoices",
            json=_invoice_body(_line(foreign, 1, deduct_from_stock=False)),
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "item_not_found"
        assert db.query(Invoice).count() == 0
        assert _stock(db, foreign.id) == 5

    def test_line_linking_unknown_item(self, client, db, auth_headers):
        line = _line(None, 1, inventory_item_id=999, deduct_from_stock=False)

        response = client.post("/invoices", json=_invoice_body(line), headers=auth_headers)

        assert response.status_code == 404
        assert "999" in response.json()["detail"]["message"]
        assert db.query(Invoice).count() == 0

    def test_fractional_stock_line(self, client, auth_headers, make_item):
        widget = make_item(stock_level=10)

        response = client.post("/invoices", json=_invoice_body(_line(widget, 1.5)), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "fractional_quantity"

    def test_validation(self, client, auth_headers):
        assert client.post("/invoices", json=_invoice_body(), headers=auth_headers).status_code == 422
        assert client.post(
            "/invoices",
            json=_invoice_body(_line(), discount_type="PERCENTAGE", discount_value="150"),
            headers=auth_headers,
        ).status_code == 422


class TestReadInvoices:

    def test_list_and_get(self, client, auth_headers, headers_for, other_org):
        created = client.post("/invoices", json=_invoice_body(_line()), headers=auth_headers).json()
        client.post("/invoices", json=_invoice_body(_line(), status="SENT"), headers=auth_headers)

        listing = client.get("/invoices", headers=auth_headers).json()
        assert listing["pagination"]["total"] == 2

        sent = client.get("/invoices?status=SENT", headers=auth_headers).json()
        assert [inv["status"] for inv in sent["invoices"]] == ["SENT"]

        single = client.get(f"/invoices/{created['id']}", headers=auth_headers)
        assert single.status_code == 200
        assert single.json()["invoice_number"] == "INV-0001"

        foreign = client.get(f"/invoices/{created['id']}", headers=headers_for(other_org.id))
        assert foreign.status_code == 404


class TestCloseInvoice:

    def test_cancel_restores_stock(self, client, db, auth_headers, make_item):
        widget = make_item(stock_level=10)
        invoice = client.post("/invoices", json=_invoice_body(_line(widget, 4)), headers=auth_headers).json()

        response = client.post(f"/invoices/{invoice['id']}/cancel", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["invoice"]["status"] == "CANCELLED"
        assert response.json()["restored_items"] == 1
        assert _stock(db, widget.id) == 10

    def test_void_then_cancel(self, client, db, auth_headers, make_item):
        widget = make_item(stock_level=10)
        invoice = client.post("/invoices", json=_invoice_body(_line(widget, 4)), headers=auth_headers).json()

        assert client.post(f"/invoices/{invoice['id']}/void", headers=auth_headers).status_code == 200
        response = client.post(f"/invoices/{invoice['id']}/cancel", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "already_closed"
        assert _stock(db, widget.id) == 10

    def test_unknown_invoice(self, client, auth_headers):
        assert client.post("/invoices/999/cancel", headers=auth_headers).status_code == 404
