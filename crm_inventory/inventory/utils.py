# crm_inventory/inventory/utils.py

import re
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func
from sqlalchemy.orm import Session

from crm_inventory.models.inventory_items import InventoryItem


OUT_OF_STOCK = "OUT_OF_STOCK"
LOW_STOCK = "LOW_STOCK"
IN_STOCK = "IN_STOCK"


def get_stock_status(stock_level: int, reorder_level: int) -> str:
    if stock_level <= 0:
        return OUT_OF_STOCK
    if stock_level <= reorder_level:
        return LOW_STOCK
    return IN_STOCK


def calculate_margin(unit_price, cost_price) -> Decimal | None:
    """Margin in percent of the unit price, rounded to 2 dp."""
    if cost_price is None:
        return None

    price = Decimal(str(unit_price))
    cost = Decimal(str(cost_price))

    if price <= 0:
        return None

    margin = (price - cost) / price * 100
    return margin.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def generate_sku(db: Session, org_id: int, prefix: str = "SKU") -> str:
    """Next sequential SKU for the tenant, e.g. SKU-0001, SKU-0002."""
    skus = (
        db.query(InventoryItem.sku)
        .filter(
            InventoryItem.org_id == org_id,
            InventoryItem.sku.like(f"{prefix}-%"),
        )
        .all()
    )

    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0

    for (sku,) in skus:
        match = pattern.match(sku)
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}-{highest + 1:04d}"


def is_sku_unique(db: Session, org_id: int, sku: str, exclude_id: int | None = None) -> bool:
    query = db.query(InventoryItem.id).filter(
        InventoryItem.org_id == org_id,
        InventoryItem.sku == sku,
    )

    if exclude_id is not None:
        query = query.filter(InventoryItem.id != exclude_id)

    return query.first() is None


def low_stock_filter():
    return InventoryItem.stock_level <= InventoryItem.reorder_level


def get_low_stock_items(db: Session, org_id: int, limit: int = 10) -> list[InventoryItem]:
    return (
        db.query(InventoryItem)
        .filter(
            InventoryItem.org_id == org_id,
            InventoryItem.is_active.is_(True),
            low_stock_filter(),
        )
        .order_by(InventoryItem.stock_level.asc(), InventoryItem.id.asc())
        .limit(limit)
        .all()
    )


def get_inventory_stats(db: Session, org_id: int) -> dict:
    base_filter = [
        InventoryItem.org_id == org_id,
        InventoryItem.is_active.is_(True),
    ]

    total_items = (
        db.query(func.count(InventoryItem.id))
        .filter(*base_filter)
        .scalar()
    )

    out_of_stock = (
        db.query(func.count(InventoryItem.id))
        .filter(*base_filter, InventoryItem.stock_level == 0)
        .scalar()
    )

    low_stock = (
        db.query(func.count(InventoryItem.id))
        .filter(*base_filter, InventoryItem.stock_level > 0, low_stock_filter())
        .scalar()
    )

    total_value = (
        db.query(func.coalesce(func.sum(InventoryItem.stock_level * InventoryItem.unit_price), 0))
        .filter(*base_filter)
        .scalar()
    )

    return {
        "total_items": total_items,
        "out_of_stock": out_of_stock,
        "low_stock": low_stock,
        "in_stock": total_items - out_of_stock - low_stock,
        "total_value": Decimal(str(total_value or 0)).quantize(Decimal("0.01")),
    }


def get_inventory_categories(db: Session, org_id: int) -> list[str]:
    rows = (
        db.query(InventoryItem.category)
        .filter(
            InventoryItem.org_id == org_id,
            InventoryItem.is_active.is_(True),
            InventoryItem.category.isnot(None),
        )
        .distinct()
        .order_by(InventoryItem.category.asc())
        .all()
    )

    return [category for (category,) in rows]


def format_inventory_item(item: InventoryItem) -> dict:
    """Item fields plus computed stock status and margin."""
    return {
        "id": item.id,
        "name": item.name,
        "sku": item.sku,
        "description": item.description,
        "stock_level": item.stock_level,
        "reorder_level": item.reorder_level,
        "unit": item.unit,
        "unit_price": item.unit_price,
        "cost_price": item.cost_price,
        "category": item.category,
        "is_active": item.is_active,
        "stock_status": get_stock_status(item.stock_level, item.reorder_level),
        "margin": calculate_margin(item.unit_price, item.cost_price),
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }
