"""Exceptions raised by the stock engines and their callers.

Business outcomes (not found, insufficient stock) are returned as result
objects by the engines. The exceptions below exist so a caller can abort
the enclosing database transaction.
"""

from typing import TYPE_CHECKING

from crm_inventory.inventory.error_codes import InventoryErrorCode

if TYPE_CHECKING:
    from crm_inventory.inventory.transactions import StockDeductionResult


class StockDeductionError(Exception):
    """Raised to roll back an invoice whose stock deduction failed."""

    def __init__(self, result: "StockDeductionResult"):
        self.result = result
        self.code = result.error_code
        self.insufficient_stock = result.insufficient_stock
        super().__init__(result.error or "Stock deduction failed")


class StockConcurrencyError(Exception):
    """Raised when a guarded stock update matched no row.

    The row was re-validated under lock, so this only happens if another
    transaction changed the stock level without taking the lock. The
    enclosing transaction must be rolled back and the whole
    check-then-deduct sequence retried from scratch.
    """

    def __init__(self, inventory_item_id: int, quantity: int):
        self.inventory_item_id = inventory_item_id
        self.quantity = quantity
        super().__init__(
            f"Stock level of inventory item {inventory_item_id} changed concurrently "
            f"while applying a change of {quantity}"
        )


class InvalidStockQuantity(Exception):
    """Raised when a stock-deducting invoice line has a fractional quantity."""

    code = InventoryErrorCode.FRACTIONAL_QUANTITY

    def __init__(self, description: str, quantity):
        self.description = description
        self.quantity = quantity
        super().__init__(
            f'Quantity {quantity} for "{description}" must be a whole number '
            f"when the line deducts from stock"
        )


class StockAvailabilityError(Exception):
    """Raised when the pre-transaction availability check fails."""

    code = InventoryErrorCode.INSUFFICIENT_STOCK

    def __init__(self, check_result):
        self.check_result = check_result
        self.messages = check_result.error_messages()
        super().__init__("; ".join(self.messages) or "Insufficient stock")


class UnknownInventoryItem(Exception):
    """Raised when invoice lines link items the organization does not own."""

    code = InventoryErrorCode.ITEM_NOT_FOUND

    def __init__(self, item_ids):
        self.item_ids = list(item_ids)
        super().__init__(
            "Inventory item(s) not found: " + ", ".join(str(item_id) for item_id in self.item_ids)
        )
