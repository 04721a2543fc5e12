# crm_inventory/inventory/ledger.py
"""Append-only stock ledger.

Every change to ``InventoryItem.stock_level`` is recorded here inside the
same transaction as the change itself. Rows are only ever inserted; the
history of an item (or the stock effect of an invoice) can be rebuilt by
summing its movements.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from crm_inventory.models.stock_movements import (
    ActorType,
    MovementType,
    ReferenceType,
    StockMovement,
)


@dataclass(frozen=True)
class Actor:
    """Who caused a stock change: a human user or an automated agent."""

    id: str
    type: ActorType = ActorType.USER


@dataclass
class MovementFilters:
    type: MovementType | None = None
    reference_type: ReferenceType | None = None
    reference_id: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = 1
    limit: int = 20
    sort_order: str = "desc"


def record_movement(
    db: Session,
    org_id: int,
    inventory_item_id: int,
    movement_type: MovementType,
    quantity: int,
    previous_level: int,
    reference_type: ReferenceType,
    actor: Actor,
    reference_id=None,
    reason: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Append one ledger row. ``new_level`` is always derived, never passed."""
    new_level = previous_level + quantity

    if new_level < 0:
        raise ValueError(
            f"Movement would leave inventory item {inventory_item_id} at {new_level}"
        )

    movement = StockMovement(
        org_id=org_id,
        inventory_item_id=inventory_item_id,
        type=MovementType(movement_type).value,
        quantity=quantity,
        previous_level=previous_level,
        new_level=new_level,
        reference_type=ReferenceType(reference_type).value,
        reference_id=str(reference_id) if reference_id is not None else None,
        reason=reason,
        notes=notes,
        created_by_id=actor.id,
        created_by_type=ActorType(actor.type).value,
    )
    db.add(movement)

    return movement


def create_initial_stock_movement(
    db: Session,
    org_id: int,
    inventory_item_id: int,
    initial_stock: int,
    actor: Actor,
) -> StockMovement | None:
    # Items created empty have no history yet
    if initial_stock <= 0:
        return None

    return record_movement(
        db,
        org_id=org_id,
        inventory_item_id=inventory_item_id,
        movement_type=MovementType.INITIAL,
        quantity=initial_stock,
        previous_level=0,
        reference_type=ReferenceType.MANUAL,
        actor=actor,
        reason="Initial stock on item creation",
    )


def list_movements(
    db: Session,
    org_id: int,
    inventory_item_id: int,
    filters: MovementFilters | None = None,
) -> tuple[list[StockMovement], int]:
    filters = filters or MovementFilters()

    query = db.query(StockMovement).filter(
        StockMovement.org_id == org_id,
        StockMovement.inventory_item_id == inventory_item_id,
    )

    if filters.type is not None:
        query = query.filter(StockMovement.type == MovementType(filters.type).value)

    if filters.reference_type is not None:
        query = query.filter(
            StockMovement.reference_type == ReferenceType(filters.reference_type).value
        )

    if filters.reference_id is not None:
        query = query.filter(StockMovement.reference_id == str(filters.reference_id))

    if filters.from_date is not None:
        query = query.filter(StockMovement.created_at >= filters.from_date)

    if filters.to_date is not None:
        query = query.filter(StockMovement.created_at <= filters.to_date)

    total = query.count()

    if filters.sort_order == "asc":
        ordering = (StockMovement.created_at.asc(), StockMovement.id.asc())
    else:
        ordering = (StockMovement.created_at.desc(), StockMovement.id.desc())

    movements = (
        query
        .order_by(*ordering)
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
        .all()
    )

    return movements, total


def net_invoice_deductions(db: Session, org_id: int, invoice_id) -> dict[int, int]:
    """Quantity per inventory item that an invoice still holds out of stock.

    SALE rows are negative and RETURN rows positive, so the sum per item is
    minus what remains to be restored. Items already fully restored are
    left out.
    """
    rows = (
        db.query(
            StockMovement.inventory_item_id,
            func.sum(StockMovement.quantity),
        )
        .filter(
            StockMovement.org_id == org_id,
            StockMovement.reference_type == ReferenceType.INVOICE.value,
            StockMovement.reference_id == str(invoice_id),
            StockMovement.type.in_([MovementType.SALE.value, MovementType.RETURN.value]),
        )
        .group_by(StockMovement.inventory_item_id)
        .order_by(StockMovement.inventory_item_id)
        .all()
    )

    return {
        item_id: -int(net)
        for item_id, net in rows
        if net is not None and int(net) < 0
    }
