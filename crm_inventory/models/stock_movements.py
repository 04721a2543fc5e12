# crm_inventory/models/stock_movements.py

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from crm_inventory.database import Base
from crm_inventory.models.inventory_items import InventoryItem


# Persisted values; historical rows depend on them staying stable.
class MovementType(str, enum.Enum):
    INITIAL = "INITIAL"
    SALE = "SALE"
    RETURN = "RETURN"
    RESTOCK = "RESTOCK"
    ADJUSTMENT = "ADJUSTMENT"
    DAMAGE = "DAMAGE"


class ReferenceType(str, enum.Enum):
    INVOICE = "INVOICE"
    MANUAL = "MANUAL"
    IMPORT = "IMPORT"


class ActorType(str, enum.Enum):
    USER = "USER"
    AI_AGENT = "AI_AGENT"


MANUAL_ADJUSTMENT_TYPES = (
    MovementType.RESTOCK,
    MovementType.ADJUSTMENT,
    MovementType.DAMAGE,
)


def _in_list(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class StockMovement(Base):
    """One immutable ledger row per stock-level transition."""

    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)

    inventory_item_id = Column(
        Integer,
        ForeignKey("inventory_items.id"),
        nullable=False,
        index=True,
    )

    type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_level = Column(Integer, nullable=False)
    new_level = Column(Integer, nullable=False)

    reference_type = Column(String(20), nullable=False)
    reference_id = Column(String, nullable=True)

    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    created_by_id = Column(String, nullable=False)
    created_by_type = Column(String(20), nullable=False, default=ActorType.USER.value)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    inventory_item = relationship(InventoryItem)

    __table_args__ = (
        Index("ix_stock_movements_org_item", "org_id", "inventory_item_id"),
        Index("ix_stock_movements_reference", "org_id", "reference_type", "reference_id"),
        CheckConstraint("previous_level + quantity = new_level", name="ck_movement_levels_consistent"),
        CheckConstraint("new_level >= 0", name="ck_movement_new_level_non_negative"),
        CheckConstraint(_in_list("type", MovementType), name="ck_movement_type_valid"),
        CheckConstraint(_in_list("reference_type", ReferenceType), name="ck_movement_reference_type_valid"),
        CheckConstraint(_in_list("created_by_type", ActorType), name="ck_movement_actor_type_valid"),
    )
