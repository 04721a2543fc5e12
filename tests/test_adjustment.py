"""Tests for manual stock adjustments."""

import pytest

from crm_inventory.inventory.error_codes import InventoryErrorCode
from crm_inventory.inventory.transactions import adjust_stock
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.stock_movements import MovementType, StockMovement


def _stock(db, item_id):
    item = db.get(InventoryItem, item_id)
    db.refresh(item)
    return item.stock_level


def _manual_movements(db, item_id):
    return (
        db.query(StockMovement)
        .filter(
            StockMovement.inventory_item_id == item_id,
            StockMovement.reference_type == "MANUAL",
            StockMovement.type != "INITIAL",
        )
        .all()
    )


class TestAdjustStock:

    def test_restock(self, db, org, make_item, actor):
        item = make_item(stock_level=5)

        result = adjust_stock(db, org.id, item.id, 10, MovementType.RESTOCK, "Supplier delivery", actor)

        assert result.success is True
        assert result.previous_level == 5
        assert result.new_level == 15
        assert _stock(db, item.id) == 15

        movement = db.get(StockMovement, result.movement_id)
        assert movement.type == "RESTOCK"
        assert movement.quantity == 10
        assert movement.reason == "Supplier delivery"
        assert movement.reference_id is None

    def test_damage_to_exactly_zero(self, db, org, make_item, actor):
        item = make_item(stock_level=3)

        result = adjust_stock(db, org.id, item.id, -3, MovementType.DAMAGE, "Water damage", actor)

        assert result.success is True
        assert result.new_level == 0

    def test_below_zero_rejected(self, db, org, make_item, actor):
        item = make_item(stock_level=2)

        result = adjust_stock(db, org.id, item.id, -3, MovementType.DAMAGE, "Broken", actor)

        assert result.success is False
        assert result.error_code == InventoryErrorCode.NEGATIVE_STOCK
        assert result.error == "Cannot reduce stock below 0. Current: 2, Adjustment: -3"
        assert result.previous_level == 2
        assert result.new_level == 2
        assert result.attempted_level == -1
        assert _stock(db, item.id) == 2
        assert _manual_movements(db, item.id) == []

    def test_unknown_item(self, db, org, actor):
        result = adjust_stock(db, org.id, 999, 1, MovementType.RESTOCK, "Count", actor)

        assert result.success is False
        assert result.error_code == InventoryErrorCode.ITEM_NOT_FOUND
        assert result.previous_level == 0
        assert result.new_level == 0

    def test_other_tenant_item(self, db, org, other_org, make_item, actor):
        item = make_item(stock_level=4, organization=other_org)

        result = adjust_stock(db, org.id, item.id, 1, MovementType.RESTOCK, "Count", actor)

        assert result.error_code == InventoryErrorCode.ITEM_NOT_FOUND
        assert _stock(db, item.id) == 4

    def test_inactive_item(self, db, org, make_item, actor):
        item = make_item(stock_level=4, is_active=False)

        result = adjust_stock(db, org.id, item.id, 1, MovementType.RESTOCK, "Count", actor)

        assert result.success is False
        assert result.error_code == InventoryErrorCode.ITEM_INACTIVE
        assert result.error == "Cannot adjust stock for inactive item"
        assert _stock(db, item.id) == 4

    @pytest.mark.parametrize("movement_type", ["SALE", "RETURN", "INITIAL", "BOGUS"])
    def test_non_manual_types_rejected(self, db, org, make_item, actor, movement_type):
        item = make_item(stock_level=4)

        result = adjust_stock(db, org.id, item.id, 1, movement_type, "Count", actor)

        assert result.error_code == InventoryErrorCode.INVALID_TYPE
        assert _stock(db, item.id) == 4

    @pytest.mark.parametrize("quantity", [0, 1.5])
    def test_invalid_quantity_rejected(self, db, org, make_item, actor, quantity):
        item = make_item(stock_level=4)

        result = adjust_stock(db, org.id, item.id, quantity, MovementType.ADJUSTMENT, "Count", actor)

        assert result.error_code == InventoryErrorCode.INVALID_QUANTITY

    def test_ledger_replays_to_stock_level(self, db, org, make_item, actor):
        item = make_item(stock_level=5)

        adjust_stock(db, org.id, item.id, 7, MovementType.RESTOCK, "Delivery", actor)
        adjust_stock(db, org.id, item.id, -2, MovementType.DAMAGE, "Dropped", actor)
        adjust_stock(db, org.id, item.id, -1, MovementType.ADJUSTMENT, "Recount", actor, notes="Shelf B")

        movements = (
            db.query(StockMovement)
            .filter(StockMovement.inventory_item_id == item.id)
            .order_by(StockMovement.id)
            .all()
        )

        assert sum(m.quantity for m in movements) == _stock(db, item.id) == 9
        for before, after in zip(movements, movements[1:]):
            assert after.previous_level == before.new_level
