# crm_inventory/invoices/cancellation.py

import logging

from sqlalchemy.orm import Session

from crm_inventory.core.audit import AuditEvent, AuditSink, emit_audit_event
from crm_inventory.core.auth import AuthContext
from crm_inventory.inventory.error_codes import InvoiceErrorCode
from crm_inventory.inventory.transactions import StockRestorationResult, restore_stock_atomic
from crm_inventory.invoices.exceptions import InvalidInvoiceStatus, InvoiceNotFound
from crm_inventory.models.invoices import Invoice, InvoiceStatus

logger = logging.getLogger("crm_inventory")

CLOSED_STATUSES = {InvoiceStatus.CANCELLED.value, InvoiceStatus.VOID.value}


def cancel_invoice(
    db: Session,
    ctx: AuthContext,
    invoice_id: int,
    status: InvoiceStatus,
    audit_sink: AuditSink,
) -> tuple[Invoice, StockRestorationResult]:
    """Move an invoice to CANCELLED or VOID and give its stock back.

    The status change and the restoration share one transaction. The invoice
    row is locked first, so a concurrent second cancellation waits and then
    finds the invoice already closed.
    """
    status = InvoiceStatus(status)

    if status.value not in CLOSED_STATUSES:
        raise InvalidInvoiceStatus(f"Cannot close invoice with status {status.value}")

    try:
        invoice = (
            db.query(Invoice)
            .filter(
                Invoice.id == invoice_id,
                Invoice.org_id == ctx.org_id,
            )
            .with_for_update()
            .populate_existing()
            .first()
        )

        if invoice is None:
            raise InvoiceNotFound(invoice_id)

        if invoice.status in CLOSED_STATUSES:
            raise InvalidInvoiceStatus(
                f"Invoice is already {invoice.status.lower()}",
                code=InvoiceErrorCode.ALREADY_CLOSED,
            )

        previous_status = invoice.status
        invoice.status = status.value

        restoration = restore_stock_atomic(db, ctx.org_id, invoice.id, ctx.actor)

        db.commit()

    except Exception:
        db.rollback()
        raise

    db.refresh(invoice)

    logger.info(
        f"Invoice {invoice.invoice_number} {previous_status} -> {invoice.status}, "
        f"{restoration.restored_count} item(s) restocked"
    )

    emit_audit_event(
        audit_sink,
        AuditEvent(
            org_id=ctx.org_id,
            action="UPDATE",
            module="INVOICE",
            record_id=str(invoice.id),
            actor_id=ctx.user_id,
            actor_type=ctx.actor_type.value,
            previous_state={"status": previous_status},
            new_state={"status": invoice.status},
            metadata={
                "restored_items": [
                    {
                        "inventory_item_id": item.inventory_item_id,
                        "quantity": item.quantity,
                    }
                    for item in restoration.restored_items
                ],
            },
        ),
    )

    return invoice, restoration
