# crm_inventory/routers/inventory.py

import logging
import math
from datetime import datetime
from io import BytesIO
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crm_inventory.database import get_db
from crm_inventory.core.audit import AuditEvent, AuditSink, emit_audit_event, get_audit_sink
from crm_inventory.core.auth import AuthContext, get_auth_context
from crm_inventory.core.config import settings
from crm_inventory.core.rate_limiter import limiter
from crm_inventory.inventory.availability import StockRequest, check_stock_availability
from crm_inventory.inventory.error_codes import InventoryErrorCode
from crm_inventory.inventory.ledger import (
    MovementFilters,
    create_initial_stock_movement,
    list_movements,
)
from crm_inventory.inventory.transactions import adjust_stock
from crm_inventory.inventory.utils import (
    format_inventory_item,
    generate_sku,
    get_inventory_categories,
    get_inventory_stats,
    get_low_stock_items,
    is_sku_unique,
    low_stock_filter,
)
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.stock_movements import MovementType, ReferenceType, StockMovement
from crm_inventory.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryItemResponse,
    InventoryListResponse,
    InventoryStatsResponse,
    StockAdjustmentRequest,
    StockAdjustmentResponse,
    StockCheckRequest,
    StockCheckResponse,
    StockMovementListResponse,
)

router = APIRouter(
    prefix="/inventory",
    tags=["Inventory"],
)

logger = logging.getLogger("crm_inventory")

SORT_COLUMNS = {
    "name": InventoryItem.name,
    "sku": InventoryItem.sku,
    "stock_level": InventoryItem.stock_level,
    "unit_price": InventoryItem.unit_price,
    "category": InventoryItem.category,
    "created_at": InventoryItem.created_at,
    "updated_at": InventoryItem.updated_at,
}


def _get_item_or_404(db: Session, org_id: int, item_id: int) -> InventoryItem:
    item = (
        db.query(InventoryItem)
        .filter(
            InventoryItem.id == item_id,
            InventoryItem.org_id == org_id,
        )
        .first()
    )

    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inventory item not found",
        )

    return item


def _duplicate_sku_detail(sku: str) -> dict:
    return {
        "message": f'SKU "{sku}" already exists',
        "code": InventoryErrorCode.DUPLICATE_SKU.value,
    }


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


# =========================================================
# CREATE ITEM
# =========================================================
@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
def create_inventory_item(
    item_data: InventoryItemCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    sku = item_data.sku or generate_sku(db, ctx.org_id)

    if not is_sku_unique(db, ctx.org_id, sku):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_duplicate_sku_detail(sku),
        )

    try:
        item = InventoryItem(
            org_id=ctx.org_id,
            name=item_data.name,
            sku=sku,
            description=item_data.description,
            stock_level=item_data.stock_level,
            reorder_level=item_data.reorder_level,
            unit=item_data.unit,
            unit_price=item_data.unit_price,
            cost_price=item_data.cost_price,
            category=item_data.category,
            is_active=item_data.is_active,
            created_by_id=ctx.user_id,
            created_by_type=ctx.actor_type.value,
        )
        db.add(item)
        db.flush()

        create_initial_stock_movement(db, ctx.org_id, item.id, item_data.stock_level, ctx.actor)

        db.commit()

    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=_duplicate_sku_detail(sku))

    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create inventory item")
        raise HTTPException(status_code=500, detail="Failed to create inventory item")

    db.refresh(item)

    emit_audit_event(
        audit_sink,
        AuditEvent(
            org_id=ctx.org_id,
            action="CREATE",
            module="INVENTORY",
            record_id=str(item.id),
            actor_id=ctx.user_id,
            actor_type=ctx.actor_type.value,
            new_state={"sku": item.sku, "name": item.name, "stock_level": item.stock_level},
        ),
    )

    return format_inventory_item(item)


# =========================================================
# LIST ITEMS
# =========================================================
@router.get("", response_model=InventoryListResponse)
def list_inventory(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    search: str | None = Query(None),
    category: str | None = Query(None),
    is_active: bool | None = Query(None),
    low_stock: bool = Query(False, description="Items above zero but at or below reorder level"),
    out_of_stock: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sort_by: Literal["name", "sku", "stock_level", "unit_price", "category", "created_at", "updated_at"] = "name",
    sort_order: Literal["asc", "desc"] = "asc",
):
    query = db.query(InventoryItem).filter(InventoryItem.org_id == ctx.org_id)

    if is_active is not None:
        query = query.filter(InventoryItem.is_active.is_(is_active))

    if category:
        query = query.filter(InventoryItem.category == category)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                InventoryItem.name.ilike(pattern),
                InventoryItem.sku.ilike(pattern),
                InventoryItem.description.ilike(pattern),
            )
        )

    if low_stock:
        query = query.filter(InventoryItem.stock_level > 0, low_stock_filter())

    if out_of_stock:
        query = query.filter(InventoryItem.stock_level == 0)

    total = query.count()

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()

    items = (
        query
        .order_by(ordering, InventoryItem.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "items": [format_inventory_item(item) for item in items],
        "pagination": _pagination(page, limit, total),
    }


# =========================================================
# DASHBOARD HELPERS
# =========================================================
@router.get("/stats", response_model=InventoryStatsResponse)
def inventory_stats(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return get_inventory_stats(db, ctx.org_id)


@router.get("/low-stock", response_model=list[InventoryItemResponse])
def low_stock_items(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    limit: int = Query(10, ge=1, le=settings.MAX_PAGE_SIZE),
):
    return [format_inventory_item(item) for item in get_low_stock_items(db, ctx.org_id, limit)]


@router.get("/categories", response_model=list[str])
def inventory_categories(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return get_inventory_categories(db, ctx.org_id)


@router.get("/next-sku")
def next_sku(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    prefix: str = Query("SKU", min_length=1, max_length=20, pattern=r"^[A-Za-z0-9_]+$"),
):
    return {"sku": generate_sku(db, ctx.org_id, prefix)}


# =========================================================
# AVAILABILITY CHECK (READ ONLY)
# =========================================================
@router.post("/check-stock", response_model=StockCheckResponse)
def check_stock(
    check_data: StockCheckRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    result = check_stock_availability(
        db,
        ctx.org_id,
        [
            StockRequest(inventory_item_id=line.inventory_item_id, quantity=line.quantity)
            for line in check_data.items
        ],
    )

    return {
        "valid": result.valid,
        "items": result.items,
        "insufficient_items": result.insufficient_items,
        "errors": result.error_messages(),
    }


# =========================================================
# SINGLE ITEM
# =========================================================
@router.get("/{item_id}", response_model=InventoryItemResponse)
def get_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return format_inventory_item(_get_item_or_404(db, ctx.org_id, item_id))


@router.put("/{item_id}", response_model=InventoryItemResponse)
def update_inventory_item(
    item_id: int,
    item_data: InventoryItemUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    item = _get_item_or_404(db, ctx.org_id, item_id)

    if item_data.sku is not None and not is_sku_unique(db, ctx.org_id, item_data.sku, exclude_id=item.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_duplicate_sku_detail(item_data.sku),
        )

    changes = item_data.model_dump(exclude_unset=True)
    previous_state = {field: str(getattr(item, field)) for field in changes}

    for field, value in changes.items():
        setattr(item, field, value)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if "sku" in changes:
            raise HTTPException(status_code=409, detail=_duplicate_sku_detail(changes["sku"]))
        logger.exception(f"Rejected update of inventory item {item_id}")
        raise HTTPException(status_code=400, detail="Invalid inventory item data")

    db.refresh(item)

    emit_audit_event(
        audit_sink,
        AuditEvent(
            org_id=ctx.org_id,
            action="UPDATE",
            module="INVENTORY",
            record_id=str(item.id),
            actor_id=ctx.user_id,
            actor_type=ctx.actor_type.value,
            previous_state=previous_state,
            new_state={field: str(getattr(item, field)) for field in changes},
        ),
    )

    return format_inventory_item(item)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    # Historical invoices and movements keep referencing the item
    item = _get_item_or_404(db, ctx.org_id, item_id)

    item.is_active = False
    db.commit()

    emit_audit_event(
        audit_sink,
        AuditEvent(
            org_id=ctx.org_id,
            action="DEACTIVATE",
            module="INVENTORY",
            record_id=str(item.id),
            actor_id=ctx.user_id,
            actor_type=ctx.actor_type.value,
        ),
    )

    return None


# =========================================================
# MANUAL STOCK ADJUSTMENT
# =========================================================
@router.post("/{item_id}/adjust", response_model=StockAdjustmentResponse)
@limiter.limit(settings.STOCK_ADJUST_RATE_LIMIT)
def adjust_inventory_stock(
    request: Request,
    item_id: int,
    adjustment: StockAdjustmentRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    try:
        result = adjust_stock(
            db,
            ctx.org_id,
            item_id,
            adjustment.quantity,
            MovementType(adjustment.type),
            adjustment.reason,
            ctx.actor,
            notes=adjustment.notes,
        )
    except SQLAlchemyError:
        logger.exception(f"Stock adjustment failed for item {item_id}")
        raise HTTPException(status_code=500, detail="Failed to adjust stock")

    if not result.success:
        if result.error_code == InventoryErrorCode.ITEM_NOT_FOUND:
            raise HTTPException(status_code=404, detail=result.error)
        raise HTTPException(status_code=400, detail=result.error)

    item = _get_item_or_404(db, ctx.org_id, item_id)
    db.refresh(item)

    emit_audit_event(
        audit_sink,
        AuditEvent(
            org_id=ctx.org_id,
            action="UPDATE",
            module="INVENTORY",
            record_id=str(item_id),
            actor_id=ctx.user_id,
            actor_type=ctx.actor_type.value,
            previous_state={"stock_level": result.previous_level},
            new_state={"stock_level": result.new_level},
            metadata={
                "adjustment_type": adjustment.type,
                "quantity": adjustment.quantity,
                "reason": adjustment.reason,
                "notes": adjustment.notes,
            },
        ),
    )

    return {
        "success": True,
        "previous_level": result.previous_level,
        "new_level": result.new_level,
        "adjustment": adjustment.quantity,
        "type": adjustment.type,
        "item": format_inventory_item(item),
    }


# =========================================================
# MOVEMENT HISTORY
# =========================================================
@router.get("/{item_id}/movements", response_model=StockMovementListResponse)
def list_item_movements(
    item_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    type: MovementType | None = Query(None),
    reference_type: ReferenceType | None = Query(None),
    reference_id: str | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sort_order: Literal["asc", "desc"] = "desc",
):
    item = _get_item_or_404(db, ctx.org_id, item_id)

    movements, total = list_movements(
        db,
        ctx.org_id,
        item.id,
        MovementFilters(
            type=type,
            reference_type=reference_type,
            reference_id=reference_id,
            from_date=from_date,
            to_date=to_date,
            page=page,
            limit=limit,
            sort_order=sort_order,
        ),
    )

    return {
        "item": {"id": item.id, "name": item.name, "sku": item.sku},
        "movements": movements,
        "pagination": _pagination(page, limit, total),
    }


@router.get("/{item_id}/movements/export")
@limiter.limit(settings.EXPORT_RATE_LIMIT)
def export_item_movements(
    request: Request,
    item_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    item = _get_item_or_404(db, ctx.org_id, item_id)

    movements = (
        db.query(StockMovement)
        .filter(
            StockMovement.org_id == ctx.org_id,
            StockMovement.inventory_item_id == item.id,
        )
        .order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
        .all()
    )

    return _build_movements_excel(item, movements)


def _build_movements_excel(item: InventoryItem, movements: list[StockMovement]):
    workbook = Workbook()

    sheet = workbook.active
    sheet.title = "Stock Movements"

    sheet.append([
        "Date",
        "Type",
        "Quantity",
        "Previous Level",
        "New Level",
        "Reference Type",
        "Reference ID",
        "Reason",
        "Notes",
        "Actor",
        "Actor Type",
    ])

    for movement in movements:
        sheet.append([
            movement.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            movement.type,
            movement.quantity,
            movement.previous_level,
            movement.new_level,
            movement.reference_type,
            movement.reference_id or "",
            movement.reason or "",
            movement.notes or "",
            movement.created_by_id,
            movement.created_by_type,
        ])

    summary = workbook.create_sheet(title="Summary")
    summary.append(["Item", item.name])
    summary.append(["SKU", item.sku])
    summary.append(["Current Stock", item.stock_level])
    summary.append(["Reorder Level", item.reorder_level])
    summary.append(["Movements", len(movements)])

    output = BytesIO()
    workbook.save(output)
    output.seek(0)

    filename = f"stock_movements_{item.sku}.xlsx"

    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
