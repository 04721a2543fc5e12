# =========================================================
# INVOICES ROUTER
#
# Creating an invoice deducts linked stock in the same
# transaction. Cancelling or voiding gives it back.
# =========================================================

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from crm_inventory.database import get_db
from crm_inventory.core.audit import AuditSink, get_audit_sink
from crm_inventory.core.auth import AuthContext, get_auth_context
from crm_inventory.core.config import settings
from crm_inventory.core.rate_limiter import limiter
from crm_inventory.inventory.error_codes import InventoryErrorCode
from crm_inventory.inventory.exceptions import (
    InvalidStockQuantity,
    StockAvailabilityError,
    StockConcurrencyError,
    StockDeductionError,
    UnknownInventoryItem,
)
from crm_inventory.inventory.transactions import InsufficientStockItem
from crm_inventory.invoices.cancellation import cancel_invoice
from crm_inventory.invoices.creation import create_invoice_with_stock
from crm_inventory.invoices.exceptions import InvalidInvoiceStatus, InvoiceNotFound
from crm_inventory.models.invoices import Invoice, InvoiceStatus
from crm_inventory.schemas.invoice import InvoiceCancelResponse, InvoiceCreate, InvoiceResponse

router = APIRouter(prefix="/invoices", tags=["Invoices"])

logger = logging.getLogger("crm_inventory")


def _stock_error_detail(message: str, code, insufficient_stock=None, errors=None) -> dict:
    detail = {"message": message, "code": code.value}

    if insufficient_stock is not None:
        detail["insufficient_stock"] = [
            {
                "id": item.inventory_item_id,
                "name": item.name,
                "sku": item.sku,
                "available": item.available,
                "requested": item.requested,
            }
            for item in insufficient_stock
        ]

    if errors is not None:
        detail["errors"] = errors

    return detail


# =========================================================
# CREATE INVOICE
# =========================================================
@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.INVOICE_CREATE_RATE_LIMIT)
def create_invoice(
    request: Request,
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    try:
        return create_invoice_with_stock(db, ctx, invoice_data, audit_sink)

    except InvalidStockQuantity as exc:
        raise HTTPException(
            status_code=400,
            detail=_stock_error_detail(str(exc), exc.code),
        )

    except UnknownInventoryItem as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_stock_error_detail(str(exc), exc.code),
        )

    except StockAvailabilityError as exc:
        shortfalls = [
            InsufficientStockItem(
                inventory_item_id=item.inventory_item_id,
                name=item.name,
                sku=item.sku,
                available=item.available_stock,
                requested=int(item.requested_quantity),
            )
            for item in exc.check_result.items
            if not item.sufficient
        ]
        raise HTTPException(
            status_code=400,
            detail=_stock_error_detail(
                "Insufficient stock for one or more items",
                exc.code,
                insufficient_stock=shortfalls,
                errors=exc.messages,
            ),
        )

    except StockDeductionError as exc:
        status_code = 404 if exc.code == InventoryErrorCode.ITEM_NOT_FOUND else 400
        raise HTTPException(
            status_code=status_code,
            detail=_stock_error_detail(
                str(exc),
                exc.code,
                insufficient_stock=exc.insufficient_stock or None,
            ),
        )

    except StockConcurrencyError:
        logger.warning("Invoice creation lost a stock update race")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Stock changed while creating the invoice, please retry",
        )

    except SQLAlchemyError:
        logger.exception("Failed to create invoice")
        raise HTTPException(status_code=500, detail="Failed to create invoice")


# =========================================================
# LIST INVOICES
# =========================================================
@router.get("")
def list_invoices(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    invoice_status: InvoiceStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    query = db.query(Invoice).filter(Invoice.org_id == ctx.org_id)

    if invoice_status is not None:
        query = query.filter(Invoice.status == invoice_status.value)

    total = query.count()

    invoices = (
        query
        .options(selectinload(Invoice.items))
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "invoices": [InvoiceResponse.model_validate(invoice) for invoice in invoices],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


# =========================================================
# GET SINGLE INVOICE
# =========================================================
@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    invoice = (
        db.query(Invoice)
        .options(selectinload(Invoice.items))
        .filter(
            Invoice.id == invoice_id,
            Invoice.org_id == ctx.org_id,
        )
        .first()
    )

    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")

    return invoice


# =========================================================
# CANCEL / VOID
# =========================================================
def _close_invoice(db, ctx, invoice_id, target, audit_sink):
    try:
        invoice, restoration = cancel_invoice(db, ctx, invoice_id, target, audit_sink)

    except InvoiceNotFound:
        raise HTTPException(status_code=404, detail="Invoice not found")

    except InvalidInvoiceStatus as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "code": exc.code.value},
        )

    except StockConcurrencyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Stock changed while closing the invoice, please retry",
        )

    except SQLAlchemyError:
        logger.exception(f"Failed to close invoice {invoice_id}")
        raise HTTPException(status_code=500, detail="Failed to update invoice")

    return {
        "invoice": InvoiceResponse.model_validate(invoice),
        "restored_items": restoration.restored_count,
    }


@router.post("/{invoice_id}/cancel", response_model=InvoiceCancelResponse)
def cancel(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    return _close_invoice(db, ctx, invoice_id, InvoiceStatus.CANCELLED, audit_sink)


@router.post("/{invoice_id}/void", response_model=InvoiceCancelResponse)
def void(
    invoice_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    return _close_invoice(db, ctx, invoice_id, InvoiceStatus.VOID, audit_sink)
