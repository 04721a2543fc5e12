# crm_inventory/inventory/availability.py
"""Read-only stock availability checks.

Used before a transaction is opened to fail fast with a complete list of
shortfalls. The check is advisory: the deduction engine re-validates under
row locks because stock may be consumed between this read and the write.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from crm_inventory.models.inventory_items import InventoryItem


UNKNOWN = "Unknown"


@dataclass(frozen=True)
class StockRequest:
    inventory_item_id: int
    quantity: Decimal


@dataclass
class StockCheckItem:
    inventory_item_id: int
    name: str
    sku: str
    requested_quantity: Decimal
    available_stock: int
    sufficient: bool
    shortfall: Decimal | None = None


@dataclass
class StockShortfall:
    inventory_item_id: int
    name: str
    sku: str
    shortfall: Decimal


@dataclass
class StockCheckResult:
    valid: bool
    items: list[StockCheckItem] = field(default_factory=list)
    insufficient_items: list[StockShortfall] = field(default_factory=list)

    def error_messages(self) -> list[str]:
        by_id = {item.inventory_item_id: item for item in self.items}
        messages = []

        for shortfall in self.insufficient_items:
            item = by_id[shortfall.inventory_item_id]
            messages.append(
                f'Insufficient stock for "{item.name}" ({item.sku}): '
                f"need {format_quantity(item.requested_quantity)}, "
                f"available {item.available_stock}"
            )

        return messages


def format_quantity(quantity) -> str:
    quantity = Decimal(str(quantity))
    if quantity == quantity.to_integral_value():
        return str(int(quantity))
    return str(quantity.normalize())


def aggregate_requests(requests: Iterable[StockRequest]) -> dict[int, Decimal]:
    """Sum quantities per item, keeping the order items were first seen."""
    totals: dict[int, Decimal] = {}

    for request in requests:
        quantity = Decimal(str(request.quantity))
        totals[request.inventory_item_id] = totals.get(request.inventory_item_id, Decimal("0")) + quantity

    return totals


def check_stock_availability(
    db: Session,
    org_id: int,
    requests: Iterable[StockRequest],
) -> StockCheckResult:
    requested = aggregate_requests(requests)

    if not requested:
        return StockCheckResult(valid=True)

    inventory_items = (
        db.query(InventoryItem)
        .filter(
            InventoryItem.id.in_(list(requested)),
            InventoryItem.org_id == org_id,
            InventoryItem.is_active.is_(True),
        )
        .all()
    )
    item_map = {item.id: item for item in inventory_items}

    results = []
    insufficient = []

    for item_id, quantity in requested.items():
        inventory_item = item_map.get(item_id)

        # Missing, inactive or owned by another tenant
        if inventory_item is None:
            results.append(
                StockCheckItem(
                    inventory_item_id=item_id,
                    name=UNKNOWN,
                    sku=UNKNOWN,
                    requested_quantity=quantity,
                    available_stock=0,
                    sufficient=False,
                    shortfall=quantity,
                )
            )
            insufficient.append(
                StockShortfall(
                    inventory_item_id=item_id,
                    name=UNKNOWN,
                    sku=UNKNOWN,
                    shortfall=quantity,
                )
            )
            continue

        sufficient = inventory_item.stock_level >= quantity
        shortfall = None if sufficient else quantity - inventory_item.stock_level

        results.append(
            StockCheckItem(
                inventory_item_id=inventory_item.id,
                name=inventory_item.name,
                sku=inventory_item.sku,
                requested_quantity=quantity,
                available_stock=inventory_item.stock_level,
                sufficient=sufficient,
                shortfall=shortfall,
            )
        )

        if not sufficient:
            insufficient.append(
                StockShortfall(
                    inventory_item_id=inventory_item.id,
                    name=inventory_item.name,
                    sku=inventory_item.sku,
                    shortfall=shortfall,
                )
            )

    return StockCheckResult(
        valid=not insufficient,
        items=results,
        insufficient_items=insufficient,
    )
