from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import List, Literal

from crm_inventory.models.stock_movements import MovementType, ReferenceType


SKU_PATTERN = r"^[A-Za-z0-9_-]+$"


class InventoryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: str | None = Field(
        None,
        min_length=1,
        max_length=100,
        pattern=SKU_PATTERN,
        description="Generated as SKU-XXXX when omitted",
    )
    description: str | None = None

    stock_level: int = Field(0, ge=0, description="Initial stock, recorded as an INITIAL movement")
    reorder_level: int = Field(0, ge=0)
    unit: str = "pcs"

    unit_price: Decimal = Field(..., ge=0, lt=100_000_000)
    cost_price: Decimal | None = Field(None, ge=0, lt=100_000_000)

    category: str | None = Field(None, max_length=100)
    is_active: bool = True


class InventoryItemUpdate(BaseModel):
    # Stock level is changed through adjustments only
    name: str | None = Field(None, min_length=1, max_length=255)
    sku: str | None = Field(None, min_length=1, max_length=100, pattern=SKU_PATTERN)
    description: str | None = None
    reorder_level: int | None = Field(None, ge=0)
    unit: str | None = None
    unit_price: Decimal | None = Field(None, ge=0, lt=100_000_000)
    cost_price: Decimal | None = Field(None, ge=0, lt=100_000_000)
    category: str | None = Field(None, max_length=100)
    is_active: bool | None = None

    # Omitted means unchanged; these columns cannot be cleared
    @field_validator("name", "sku", "reorder_level", "unit", "unit_price", "is_active")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class InventoryItemResponse(BaseModel):
    id: int
    name: str
    sku: str
    description: str | None
    stock_level: int
    reorder_level: int
    unit: str
    unit_price: Decimal
    cost_price: Decimal | None
    category: str | None
    is_active: bool
    stock_status: str
    margin: Decimal | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class InventoryListResponse(BaseModel):
    items: List[InventoryItemResponse]
    pagination: Pagination


class InventoryStatsResponse(BaseModel):
    total_items: int
    out_of_stock: int
    low_stock: int
    in_stock: int
    total_value: Decimal


class StockAdjustmentRequest(BaseModel):
    quantity: int
    type: Literal["RESTOCK", "ADJUSTMENT", "DAMAGE"]
    reason: str = Field(..., min_length=1, max_length=500, description="Required for every manual adjustment")
    notes: str | None = Field(None, max_length=1000)

    @field_validator("quantity")
    @classmethod
    def quantity_not_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("Quantity cannot be zero")
        return value


class StockAdjustmentResponse(BaseModel):
    success: bool
    previous_level: int
    new_level: int
    adjustment: int
    type: str
    item: InventoryItemResponse | None


class StockMovementResponse(BaseModel):
    id: int
    inventory_item_id: int
    type: MovementType
    quantity: int
    previous_level: int
    new_level: int
    reference_type: ReferenceType
    reference_id: str | None
    reason: str | None
    notes: str | None
    created_by_id: str
    created_by_type: str
    created_at: datetime

    class Config:
        from_attributes = True


class MovementItemSummary(BaseModel):
    id: int
    name: str
    sku: str


class StockMovementListResponse(BaseModel):
    item: MovementItemSummary
    movements: List[StockMovementResponse]
    pagination: Pagination


class StockCheckLine(BaseModel):
    inventory_item_id: int
    quantity: Decimal = Field(..., ge=Decimal("0.01"))


class StockCheckRequest(BaseModel):
    items: List[StockCheckLine] = Field(..., min_length=1)


class StockCheckItemResponse(BaseModel):
    inventory_item_id: int
    name: str
    sku: str
    requested_quantity: Decimal
    available_stock: int
    sufficient: bool
    shortfall: Decimal | None = None

    class Config:
        from_attributes = True


class StockShortfallResponse(BaseModel):
    inventory_item_id: int
    name: str
    sku: str
    shortfall: Decimal

    class Config:
        from_attributes = True


class StockCheckResponse(BaseModel):
    valid: bool
    items: List[StockCheckItemResponse]
    insufficient_items: List[StockShortfallResponse]
    errors: List[str]
