# crm_inventory/inventory/transactions.py
"""Atomic stock mutations.

``deduct_stock_atomic`` and ``restore_stock_atomic`` run inside a
transaction the caller already opened on ``db`` and never commit it, so the
stock change and the invoice change it belongs to succeed or fail together.
``adjust_stock`` is a standalone user action and commits on its own.

Rows are re-read with ``SELECT ... FOR UPDATE`` in primary-key order before
anything is validated, and the stock column is only ever changed through a
guarded ``UPDATE ... SET stock_level = stock_level + :delta``. Business
failures come back as result objects; database failures propagate so the
caller's transaction is rolled back.
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from crm_inventory.inventory.availability import StockRequest, format_quantity
from crm_inventory.inventory.error_codes import InventoryErrorCode
from crm_inventory.inventory.exceptions import StockConcurrencyError
from crm_inventory.inventory.ledger import Actor, net_invoice_deductions, record_movement
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.stock_movements import (
    MANUAL_ADJUSTMENT_TYPES,
    MovementType,
    ReferenceType,
)

logger = logging.getLogger("crm_inventory")

RESTORE_NOTE = "Stock restored due to invoice cancellation/void"


@dataclass
class DeductedItem:
    inventory_item_id: int
    quantity: int
    previous_level: int
    new_level: int
    price_at_sale: Decimal


@dataclass
class InsufficientStockItem:
    inventory_item_id: int
    name: str
    sku: str
    available: int
    requested: int


@dataclass
class StockDeductionResult:
    success: bool
    deducted_items: list[DeductedItem] = field(default_factory=list)
    error: str | None = None
    error_code: InventoryErrorCode | None = None
    insufficient_stock: list[InsufficientStockItem] = field(default_factory=list)


@dataclass
class RestoredItem:
    inventory_item_id: int
    quantity: int
    previous_level: int
    new_level: int


@dataclass
class StockRestorationResult:
    success: bool
    restored_count: int = 0
    restored_items: list[RestoredItem] = field(default_factory=list)


@dataclass
class StockAdjustmentResult:
    success: bool
    previous_level: int
    new_level: int
    error: str | None = None
    error_code: InventoryErrorCode | None = None
    attempted_level: int | None = None
    movement_id: int | None = None


def _lock_items(db: Session, org_id: int, item_ids, active_only: bool = True) -> list[InventoryItem]:
    query = db.query(InventoryItem).filter(
        InventoryItem.id.in_(list(item_ids)),
        InventoryItem.org_id == org_id,
    )

    if active_only:
        query = query.filter(InventoryItem.is_active.is_(True))

    # Fixed lock order keeps two invoices touching the same items from deadlocking
    return (
        query
        .order_by(InventoryItem.id)
        .with_for_update()
        .populate_existing()
        .all()
    )


def _apply_stock_change(db: Session, org_id: int, inventory_item_id: int, delta: int) -> None:
    stmt = update(InventoryItem).where(
        InventoryItem.id == inventory_item_id,
        InventoryItem.org_id == org_id,
    )

    if delta < 0:
        stmt = stmt.where(InventoryItem.stock_level >= -delta)

    result = db.execute(stmt.values(stock_level=InventoryItem.stock_level + delta))

    if result.rowcount != 1:
        raise StockConcurrencyError(inventory_item_id, delta)


def _whole_units(quantity) -> int:
    # Integer stock: only whole units of a line quantity are deducted
    return math.floor(Decimal(str(quantity)))


# =========================================================
# DEDUCTION (INVOICE CREATION)
# =========================================================
def deduct_stock_atomic(
    db: Session,
    org_id: int,
    items: Iterable[StockRequest],
    invoice_id,
    actor: Actor,
) -> StockDeductionResult:
    """Deduct stock for every requested item, or for none of them.

    Quantities are floored to whole units and summed per item. Calling this
    twice for the same invoice deducts twice; invoking it exactly once per
    invoice is the caller's job.
    """
    requested: dict[int, int] = {}

    for request in items:
        quantity = _whole_units(request.quantity)

        if quantity < 0:
            return StockDeductionResult(
                success=False,
                error=f"Quantity for inventory item {request.inventory_item_id} cannot be negative",
                error_code=InventoryErrorCode.INVALID_QUANTITY,
            )

        requested[request.inventory_item_id] = requested.get(request.inventory_item_id, 0) + quantity

    if not requested:
        return StockDeductionResult(success=True)

    item_map = {item.id: item for item in _lock_items(db, org_id, requested)}

    for item_id in requested:
        if item_id not in item_map:
            logger.warning(f"Stock deduction for invoice {invoice_id} rejected: item {item_id} not found or inactive")
            return StockDeductionResult(
                success=False,
                error=f"Inventory item {item_id} not found or inactive",
                error_code=InventoryErrorCode.ITEM_NOT_FOUND,
            )

    insufficient = [
        InsufficientStockItem(
            inventory_item_id=item_id,
            name=item_map[item_id].name,
            sku=item_map[item_id].sku,
            available=item_map[item_id].stock_level,
            requested=quantity,
        )
        for item_id, quantity in requested.items()
        if item_map[item_id].stock_level < quantity
    ]

    if insufficient:
        details = "; ".join(
            f"{item.name} ({item.sku}): need {item.requested}, have {item.available}"
            for item in insufficient
        )
        logger.warning(f"Stock deduction for invoice {invoice_id} rejected: {details}")
        return StockDeductionResult(
            success=False,
            error=f"Insufficient stock for: {details}",
            error_code=InventoryErrorCode.INSUFFICIENT_STOCK,
            insufficient_stock=insufficient,
        )

    deducted = []

    for item_id, quantity in requested.items():
        if quantity == 0:
            continue

        inventory_item = item_map[item_id]
        previous_level = inventory_item.stock_level

        _apply_stock_change(db, org_id, item_id, -quantity)

        movement = record_movement(
            db,
            org_id=org_id,
            inventory_item_id=item_id,
            movement_type=MovementType.SALE,
            quantity=-quantity,
            previous_level=previous_level,
            reference_type=ReferenceType.INVOICE,
            reference_id=invoice_id,
            actor=actor,
        )

        deducted.append(
            DeductedItem(
                inventory_item_id=item_id,
                quantity=quantity,
                previous_level=previous_level,
                new_level=movement.new_level,
                price_at_sale=inventory_item.unit_price,
            )
        )

    db.flush()

    logger.info(f"Deducted stock for invoice {invoice_id}: {len(deducted)} item(s)")

    return StockDeductionResult(success=True, deducted_items=deducted)


# =========================================================
# RESTORATION (INVOICE CANCEL / VOID)
# =========================================================
def restore_stock_atomic(
    db: Session,
    org_id: int,
    invoice_id,
    actor: Actor,
) -> StockRestorationResult:
    """Give back what the ledger shows an invoice still holds.

    Only items with SALE movements referencing the invoice are credited, by
    the quantity actually deducted, less anything already returned. Lines
    that never deducted stock are left alone. Callers lock the invoice row
    first so two cancellations of one invoice cannot both restore.
    """
    outstanding = net_invoice_deductions(db, org_id, invoice_id)

    if not outstanding:
        return StockRestorationResult(success=True, restored_count=0)

    # Deactivated items still get their stock back
    locked = _lock_items(db, org_id, outstanding, active_only=False)

    restored = []

    for inventory_item in locked:
        quantity = outstanding[inventory_item.id]
        previous_level = inventory_item.stock_level

        _apply_stock_change(db, org_id, inventory_item.id, quantity)

        movement = record_movement(
            db,
            org_id=org_id,
            inventory_item_id=inventory_item.id,
            movement_type=MovementType.RETURN,
            quantity=quantity,
            previous_level=previous_level,
            reference_type=ReferenceType.INVOICE,
            reference_id=invoice_id,
            actor=actor,
            notes=RESTORE_NOTE,
        )

        restored.append(
            RestoredItem(
                inventory_item_id=inventory_item.id,
                quantity=quantity,
                previous_level=previous_level,
                new_level=movement.new_level,
            )
        )

    db.flush()

    logger.info(f"Restored stock for invoice {invoice_id}: {len(restored)} item(s)")

    return StockRestorationResult(
        success=True,
        restored_count=len(restored),
        restored_items=restored,
    )


# =========================================================
# MANUAL ADJUSTMENT (RESTOCK / CORRECTION / DAMAGE)
# =========================================================
def adjust_stock(
    db: Session,
    org_id: int,
    inventory_item_id: int,
    quantity: int,
    movement_type: MovementType,
    reason: str,
    actor: Actor,
    notes: str | None = None,
) -> StockAdjustmentResult:
    """Add (positive) or remove (negative) stock for one item.

    Commits on success and rolls back otherwise, so ``db`` must not carry
    unrelated pending work. The reason is required by the API layer.
    """
    try:
        movement_type = MovementType(movement_type)
    except ValueError:
        movement_type = None

    if movement_type not in MANUAL_ADJUSTMENT_TYPES:
        return StockAdjustmentResult(
            success=False,
            previous_level=0,
            new_level=0,
            error="Adjustment type must be one of RESTOCK, ADJUSTMENT, DAMAGE",
            error_code=InventoryErrorCode.INVALID_TYPE,
        )

    if isinstance(quantity, bool) or Decimal(str(quantity)) != int(quantity) or int(quantity) == 0:
        return StockAdjustmentResult(
            success=False,
            previous_level=0,
            new_level=0,
            error=f"Adjustment quantity must be a non-zero whole number, got {format_quantity(quantity)}",
            error_code=InventoryErrorCode.INVALID_QUANTITY,
        )

    quantity = int(quantity)

    try:
        inventory_item = (
            db.query(InventoryItem)
            .filter(
                InventoryItem.id == inventory_item_id,
                InventoryItem.org_id == org_id,
            )
            .with_for_update()
            .populate_existing()
            .first()
        )

        if inventory_item is None:
            db.rollback()
            return StockAdjustmentResult(
                success=False,
                previous_level=0,
                new_level=0,
                error="Inventory item not found",
                error_code=InventoryErrorCode.ITEM_NOT_FOUND,
            )

        previous_level = inventory_item.stock_level

        if not inventory_item.is_active:
            db.rollback()
            return StockAdjustmentResult(
                success=False,
                previous_level=previous_level,
                new_level=previous_level,
                error="Cannot adjust stock for inactive item",
                error_code=InventoryErrorCode.ITEM_INACTIVE,
            )

        new_level = previous_level + quantity

        if new_level < 0:
            db.rollback()
            logger.warning(
                f"Adjustment of item {inventory_item_id} rejected: "
                f"current {previous_level}, adjustment {quantity}"
            )
            return StockAdjustmentResult(
                success=False,
                previous_level=previous_level,
                new_level=previous_level,
                error=f"Cannot reduce stock below 0. Current: {previous_level}, Adjustment: {quantity}",
                error_code=InventoryErrorCode.NEGATIVE_STOCK,
                attempted_level=new_level,
            )

        _apply_stock_change(db, org_id, inventory_item_id, quantity)

        movement = record_movement(
            db,
            org_id=org_id,
            inventory_item_id=inventory_item_id,
            movement_type=movement_type,
            quantity=quantity,
            previous_level=previous_level,
            reference_type=ReferenceType.MANUAL,
            actor=actor,
            reason=reason,
            notes=notes,
        )

        db.commit()

    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Adjusted item {inventory_item_id} ({movement_type.value}): "
        f"{previous_level} -> {new_level}"
    )

    return StockAdjustmentResult(
        success=True,
        previous_level=previous_level,
        new_level=new_level,
        movement_id=movement.id,
    )
