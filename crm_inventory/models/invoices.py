# crm_inventory/models/invoices.py

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
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
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.organization import Organization


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    VOID = "VOID"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)

    invoice_number = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    tax_rate = Column(Numeric(5, 2), nullable=True)
    discount_type = Column(String(20), nullable=True)
    discount_value = Column(Numeric(12, 2), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    amount_due = Column(Numeric(12, 2), nullable=False)

    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    created_by_id = Column(String, nullable=False)
    created_by_type = Column(String(20), nullable=False, default="USER")

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    organization = relationship(Organization)
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.sort_order",
    )

    __table_args__ = (
        UniqueConstraint("org_id", "invoice_number", name="uq_invoice_org_number"),
        Index("ix_invoices_org_created", "org_id", "created_at"),
        CheckConstraint("total >= 0", name="ck_invoice_total_non_negative"),
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)

    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    item_code = Column(String(100), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    # Optional link to stock; service lines leave it empty
    inventory_item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=True, index=True)
    deduct_from_stock = Column(Boolean, nullable=False, default=True)

    invoice = relationship("Invoice", back_populates="items")
    inventory_item = relationship(InventoryItem)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_item_price_non_negative"),
    )
