"""Tests for cancelling and voiding invoices."""

from datetime import date
from decimal import Decimal

import pytest

from crm_inventory.inventory.error_codes import InvoiceErrorCode
from crm_inventory.invoices.cancellation import cancel_invoice
from crm_inventory.invoices.creation import create_invoice_with_stock
from crm_inventory.invoices.exceptions import InvalidInvoiceStatus, InvoiceNotFound
from crm_inventory.core.auth import AuthContext
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.invoices import InvoiceStatus
from crm_inventory.models.stock_movements import StockMovement
from crm_inventory.schemas.invoice import InvoiceCreate, InvoiceItemCreate


def _stock(db, item_id):
    item = db.get(InventoryItem, item_id)
    db.refresh(item)
    return item.stock_level


@pytest.fixture
def invoice_with_stock(db, ctx, make_item, audit_sink):
    widget = make_item(stock_level=10, name="Widget")
    gadget = make_item(stock_level=5, name="Gadget")

    invoice = create_invoice_with_stock(
        db,
        ctx,
        InvoiceCreate(
            items=[
                InvoiceItemCreate(description="Widget", quantity=Decimal("4"), unit_price=Decimal("10"), inventory_item_id=widget.id),
                InvoiceItemCreate(description="Gadget", quantity=Decimal("5"), unit_price=Decimal("10"), inventory_item_id=gadget.id),
                InvoiceItemCreate(description="Setup", quantity=Decimal("1"), unit_price=Decimal("99")),
            ],
            status="SENT",
            due_date=date(2026, 11, 30),
        ),
        audit_sink,
    )
    audit_sink.events.clear()

    return invoice, widget, gadget


class TestCancelInvoice:

    def test_cancel_restores_stock(self, db, ctx, audit_sink, invoice_with_stock):
        invoice, widget, gadget = invoice_with_stock

        closed, restoration = cancel_invoice(db, ctx, invoice.id, InvoiceStatus.CANCELLED, audit_sink)

        assert closed.status == "CANCELLED"
        assert restoration.restored_count == 2
        assert _stock(db, widget.id) == 10
        assert _stock(db, gadget.id) == 5

    def test_void_restores_stock(self, db, ctx, audit_sink, invoice_with_stock):
        invoice, widget, _ = invoice_with_stock

        closed, restoration = cancel_invoice(db, ctx, invoice.id, InvoiceStatus.VOID, audit_sink)

        assert closed.status == "VOID"
        assert _stock(db, widget.id) == 10

    def test_second_cancel_rejected(self, db, ctx, audit_sink, invoice_with_stock):
        invoice, widget, _ = invoice_with_stock
        cancel_invoice(db, ctx, invoice.id, InvoiceStatus.CANCELLED, audit_sink)

        with pytest.raises(InvalidInvoiceStatus) as exc_info:
            cancel_invoice(db, ctx, invoice.id, InvoiceStatus.VOID, audit_sink)

        assert exc_info.value.code == InvoiceErrorCode.ALREADY_CLOSED
        assert _stock(db, widget.id) == 10
        returns = db.query(StockMovement).filter(StockMovement.type == "RETURN").count()
        assert returns == 2

    def test_unknown_invoice(self, db, ctx, audit_sink):
        with pytest.raises(InvoiceNotFound):
            cancel_invoice(db, ctx, 999, InvoiceStatus.CANCELLED, audit_sink)

    def test_other_tenant_invoice(self, db, other_org, audit_sink, invoice_with_stock):
        invoice, widget, _ = invoice_with_stock
        outsider = AuthContext(org_id=other_org.id, user_id="user-9")

        with pytest.raises(InvoiceNotFound):
            cancel_invoice(db, outsider, invoice.id, InvoiceStatus.CANCELLED, audit_sink)

        assert _stock(db, widget.id) == 6

    def test_non_closing_status_rejected(self, db, ctx, audit_sink, invoice_with_stock):
        invoice, _, _ = invoice_with_stock

        with pytest.raises(InvalidInvoiceStatus) as exc_info:
            cancel_invoice(db, ctx, invoice.id, InvoiceStatus.PAID, audit_sink)

        assert exc_info.value.code == InvoiceErrorCode.INVALID_STATUS

    def test_invoice_without_stock_lines(self, db, ctx, audit_sink):
        invoice = create_invoice_with_stock(
            db,
            ctx,
            InvoiceCreate(
                items=[InvoiceItemCreate(description="Audit", quantity=Decimal("1"), unit_price=Decimal("500"))],
                due_date=date(2026, 11, 30),
            ),
            audit_sink,
        )

        closed, restoration = cancel_invoice(db, ctx, invoice.id, InvoiceStatus.CANCELLED, audit_sink)

        assert closed.status == "CANCELLED"
        assert restoration.restored_count == 0
        assert db.query(StockMovement).filter(StockMovement.type == "RETURN").count() == 0

    def test_emits_audit_event(self, db, ctx, audit_sink, invoice_with_stock):
        invoice, widget, gadget = invoice_with_stock

        cancel_invoice(db, ctx, invoice.id, InvoiceStatus.CANCELLED, audit_sink)

        event = audit_sink.events[-1]
        assert event.action == "UPDATE"
        assert event.module == "INVOICE"
        assert event.previous_state == {"status": "SENT"}
        assert event.new_state == {"status": "CANCELLED"}
        assert event.metadata["restored_items"] == [
            {"inventory_item_id": widget.id, "quantity": 4},
            {"inventory_item_id": gadget.id, "quantity": 5},
        ]
