# crm_inventory/models/inventory_items.py

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from crm_inventory.database import Base
from crm_inventory.models.organization import Organization


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Only mutated through crm_inventory.inventory.transactions
    stock_level = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=0)
    unit = Column(String(20), nullable=False, default="pcs")

    unit_price = Column(Numeric(12, 2), nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=True)

    category = Column(String(100), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_by_id = Column(String, nullable=True)
    created_by_type = Column(String(20), nullable=False, default="USER")

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    organization = relationship(Organization)

    __table_args__ = (
        UniqueConstraint("org_id", "sku", name="uq_inventory_org_sku"),
        Index("ix_inventory_items_org_active", "org_id", "is_active"),
        CheckConstraint("stock_level >= 0", name="ck_inventory_stock_non_negative"),
        CheckConstraint("reorder_level >= 0", name="ck_inventory_reorder_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_inventory_unit_price_non_negative"),
        CheckConstraint("cost_price IS NULL OR cost_price >= 0", name="ck_inventory_cost_price_non_negative"),
    )
