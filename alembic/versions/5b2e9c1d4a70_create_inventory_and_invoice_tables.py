"""create_inventory_and_invoice_tables

Revision ID: 5b2e9c1d4a70
Revises:
Create Date: 2026-10-19 09:12:44.118302
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b2e9c1d4a70'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MOVEMENT_TYPES = "'INITIAL', 'SALE', 'RETURN', 'RESTOCK', 'ADJUSTMENT', 'DAMAGE'"
REFERENCE_TYPES = "'INVOICE', 'MANUAL', 'IMPORT'"
ACTOR_TYPES = "'USER', 'AI_AGENT'"


def upgrade() -> None:
    """Upgrade schema."""

    # ORGANIZATIONS
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_organizations_id", "organizations", ["id"])
    op.create_index("ix_organizations_name", "organizations", ["name"], unique=True)

    # INVENTORY ITEMS
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stock_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(20), nullable=False, server_default="pcs"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("cost_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by_id", sa.String(), nullable=True),
        sa.Column("created_by_type", sa.String(20), nullable=False, server_default="USER"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("org_id", "sku", name="uq_inventory_org_sku"),
        sa.CheckConstraint("stock_level >= 0", name="ck_inventory_stock_non_negative"),
        sa.CheckConstraint("reorder_level >= 0", name="ck_inventory_reorder_non_negative"),
        sa.CheckConstraint("unit_price >= 0", name="ck_inventory_unit_price_non_negative"),
        sa.CheckConstraint("cost_price IS NULL OR cost_price >= 0", name="ck_inventory_cost_price_non_negative"),
    )
    op.create_index("ix_inventory_items_id", "inventory_items", ["id"])
    op.create_index("ix_inventory_items_org_id", "inventory_items", ["org_id"])
    op.create_index("ix_inventory_items_category", "inventory_items", ["category"])
    op.create_index("ix_inventory_items_org_active", "inventory_items", ["org_id", "is_active"])

    # STOCK MOVEMENTS
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), sa.ForeignKey("inventory_items.id"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_level", sa.Integer(), nullable=False),
        sa.Column("new_level", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(20), nullable=False),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.String(), nullable=False),
        sa.Column("created_by_type", sa.String(20), nullable=False, server_default="USER"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("previous_level + quantity = new_level", name="ck_movement_levels_consistent"),
        sa.CheckConstraint("new_level >= 0", name="ck_movement_new_level_non_negative"),
        sa.CheckConstraint(f"type IN ({MOVEMENT_TYPES})", name="ck_movement_type_valid"),
        sa.CheckConstraint(f"reference_type IN ({REFERENCE_TYPES})", name="ck_movement_reference_type_valid"),
        sa.CheckConstraint(f"created_by_type IN ({ACTOR_TYPES})", name="ck_movement_actor_type_valid"),
    )
    op.create_index("ix_stock_movements_id", "stock_movements", ["id"])
    op.create_index("ix_stock_movements_inventory_item_id", "stock_movements", ["inventory_item_id"])
    op.create_index("ix_stock_movements_created_at", "stock_movements", ["created_at"])
    op.create_index("ix_stock_movements_org_item", "stock_movements", ["org_id", "inventory_item_id"])
    op.create_index(
        "ix_stock_movements_reference",
        "stock_movements",
        ["org_id", "reference_type", "reference_id"],
    )

    # INVOICES
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invoice_number", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="DRAFT"),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("discount_type", sa.String(20), nullable=True),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("amount_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.String(), nullable=False),
        sa.Column("created_by_type", sa.String(20), nullable=False, server_default="USER"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("org_id", "invoice_number", name="uq_invoice_org_number"),
        sa.CheckConstraint("total >= 0", name="ck_invoice_total_non_negative"),
    )
    op.create_index("ix_invoices_id", "invoices", ["id"])
    op.create_index("ix_invoices_created_at", "invoices", ["created_at"])
    op.create_index("ix_invoices_org_created", "invoices", ["org_id", "created_at"])

    # INVOICE ITEMS
    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("item_code", sa.String(100), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inventory_item_id", sa.Integer(), sa.ForeignKey("inventory_items.id"), nullable=True),
        sa.Column("deduct_from_stock", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_item_quantity_positive"),
        sa.CheckConstraint("unit_price >= 0", name="ck_invoice_item_price_non_negative"),
    )
    op.create_index("ix_invoice_items_id", "invoice_items", ["id"])
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])
    op.create_index("ix_invoice_items_inventory_item_id", "invoice_items", ["inventory_item_id"])


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("stock_movements")
    op.drop_table("inventory_items")
    op.drop_table("organizations")
