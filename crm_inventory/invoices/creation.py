# crm_inventory/invoices/creation.py
"""Invoice creation with stock deduction.

The invoice rows and the stock they consume are written in one
transaction: either both are committed or neither is.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from crm_inventory.core.audit import AuditEvent, AuditSink, emit_audit_event
from crm_inventory.core.auth import AuthContext
from crm_inventory.inventory.availability import StockRequest, check_stock_availability
from crm_inventory.inventory.exceptions import (
    InvalidStockQuantity,
    StockAvailabilityError,
    StockDeductionError,
    UnknownInventoryItem,
)
from crm_inventory.inventory.transactions import deduct_stock_atomic
from crm_inventory.invoices.utils import (
    calculate_invoice_totals,
    calculate_item_amount,
    generate_invoice_number,
)
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.invoices import Invoice, InvoiceItem
from crm_inventory.schemas.invoice import InvoiceCreate

logger = logging.getLogger("crm_inventory")


def stock_requests_for(lines) -> list[StockRequest]:
    """Stock requests for the lines that link an item and deduct from stock.

    Integer stock cannot absorb fractional sales, so such lines are refused
    instead of having their remainder silently dropped.
    """
    requests = []

    for line in lines:
        if line.inventory_item_id is None or not line.deduct_from_stock:
            continue

        quantity = Decimal(str(line.quantity))
        if quantity != quantity.to_integral_value():
            raise InvalidStockQuantity(line.description, quantity)

        requests.append(StockRequest(inventory_item_id=line.inventory_item_id, quantity=quantity))

    return requests


def ensure_linked_items_exist(db: Session, org_id: int, lines) -> None:
    """Refuse lines linking items outside the organization, deducting or not."""
    linked = {line.inventory_item_id for line in lines if line.inventory_item_id is not None}

    if not linked:
        return

    found = {
        item_id
        for (item_id,) in db.query(InventoryItem.id).filter(
            InventoryItem.org_id == org_id,
            InventoryItem.id.in_(linked),
        )
    }

    missing = sorted(linked - found)
    if missing:
        raise UnknownInventoryItem(missing)


def create_invoice_with_stock(
    db: Session,
    ctx: AuthContext,
    data: InvoiceCreate,
    audit_sink: AuditSink,
) -> Invoice:
    requests = stock_requests_for(data.items)

    ensure_linked_items_exist(db, ctx.org_id, data.items)

    # Fast fail with every shortfall before anything is written
    if requests:
        check = check_stock_availability(db, ctx.org_id, requests)

        if not check.valid:
            db.rollback()
            raise StockAvailabilityError(check)

    db.rollback()

    totals = calculate_invoice_totals(
        data.items,
        tax_rate=data.tax_rate,
        discount_type=data.discount_type,
        discount_value=data.discount_value,
    )

    try:
        invoice = Invoice(
            org_id=ctx.org_id,
            invoice_number=generate_invoice_number(db, ctx.org_id),
            status=data.status,
            issue_date=data.issue_date or datetime.now(timezone.utc).date(),
            due_date=data.due_date,
            currency=data.currency.upper(),
            tax_rate=data.tax_rate,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total=totals.total,
            amount_paid=Decimal("0.00"),
            amount_due=totals.total,
            notes=data.notes,
            terms=data.terms,
            created_by_id=ctx.user_id,
            created_by_type=ctx.actor_type.value,
        )
        invoice.items = [
            InvoiceItem(
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                amount=calculate_item_amount(line.quantity, line.unit_price),
                item_code=line.item_code,
                sort_order=line.sort_order if line.sort_order is not None else index,
                inventory_item_id=line.inventory_item_id,
                deduct_from_stock=line.deduct_from_stock,
            )
            for index, line in enumerate(data.items)
        ]

        db.add(invoice)
        db.flush()

        deduction = deduct_stock_atomic(db, ctx.org_id, requests, invoice.id, ctx.actor)

        if not deduction.success:
            raise StockDeductionError(deduction)

        db.commit()

    except Exception:
        db.rollback()
        raise

    db.refresh(invoice)

    logger.info(
        f"Invoice {invoice.invoice_number} created for org {ctx.org_id} "
        f"with {len(deduction.deducted_items)} stock deduction(s)"
    )

    emit_audit_event(
        audit_sink,
        AuditEvent(
            org_id=ctx.org_id,
            action="CREATE",
            module="INVOICE",
            record_id=str(invoice.id),
            actor_id=ctx.user_id,
            actor_type=ctx.actor_type.value,
            new_state={
                "invoice_number": invoice.invoice_number,
                "status": invoice.status,
                "total": str(invoice.total),
            },
            metadata={
                "stock_deductions": [
                    {
                        "inventory_item_id": item.inventory_item_id,
                        "quantity": item.quantity,
                        "previous_level": item.previous_level,
                        "new_level": item.new_level,
                    }
                    for item in deduction.deducted_items
                ],
            },
        ),
    )

    return invoice
