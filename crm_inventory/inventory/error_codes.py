from enum import Enum


class InventoryErrorCode(Enum):
    """Error codes for stock operations."""

    ITEM_NOT_FOUND = "item_not_found"
    ITEM_INACTIVE = "item_inactive"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NEGATIVE_STOCK = "negative_stock"
    INVALID_QUANTITY = "invalid_quantity"
    FRACTIONAL_QUANTITY = "fractional_quantity"
    INVALID_TYPE = "invalid_type"
    DUPLICATE_SKU = "duplicate_sku"


class InvoiceErrorCode(Enum):
    """Error codes for invoice operations."""

    NOT_FOUND = "not_found"
    INVALID_STATUS = "invalid_status"
    ALREADY_CLOSED = "already_closed"
