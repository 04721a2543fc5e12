from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal


class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., ge=Decimal("0.01"))
    unit_price: Decimal = Field(..., ge=0)
    item_code: str | None = None
    sort_order: int | None = None

    # Inventory link, optional for service lines
    inventory_item_id: int | None = None
    deduct_from_stock: bool = True


class InvoiceCreate(BaseModel):
    items: List[InvoiceItemCreate] = Field(..., min_length=1)

    status: Literal["DRAFT", "SENT"] = "DRAFT"
    issue_date: date | None = None
    due_date: date
    currency: str = Field("USD", min_length=3, max_length=3)

    tax_rate: Decimal | None = Field(None, ge=0, le=100)
    discount_type: Literal["PERCENTAGE", "FIXED"] | None = None
    discount_value: Decimal | None = Field(None, ge=0)

    notes: str | None = None
    terms: str | None = None

    @model_validator(mode="after")
    def check_discount(self):
        if self.discount_type == "PERCENTAGE" and self.discount_value is not None and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class InvoiceItemResponse(BaseModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    item_code: str | None
    sort_order: int
    inventory_item_id: int | None
    deduct_from_stock: bool

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    status: str
    issue_date: date
    due_date: date
    currency: str
    tax_rate: Decimal | None
    discount_type: str | None
    discount_value: Decimal | None
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    notes: str | None
    terms: str | None
    created_at: datetime
    items: List[InvoiceItemResponse]

    class Config:
        from_attributes = True


class InvoiceCancelResponse(BaseModel):
    invoice: InvoiceResponse
    restored_items: int
