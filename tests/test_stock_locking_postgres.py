"""Row-lock behaviour of the deduction engine under real contention.

SQLite ignores FOR UPDATE, so these run only when TEST_POSTGRES_URL points
at a scratch PostgreSQL database.
"""

import os
import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from crm_inventory.database import Base
from crm_inventory.inventory.availability import StockRequest
from crm_inventory.inventory.error_codes import InventoryErrorCode
from crm_inventory.inventory.ledger import Actor, create_initial_stock_movement
from crm_inventory.inventory.transactions import deduct_stock_atomic
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.organization import Organization
from crm_inventory.models.stock_movements import StockMovement

POSTGRES_URL = os.getenv("TEST_POSTGRES_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not POSTGRES_URL, reason="TEST_POSTGRES_URL is not set"),
]


@pytest.fixture
def pg_sessions():
    engine = create_engine(POSTGRES_URL)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    try:
        yield Session
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def pg_item(pg_sessions):
    actor = Actor(id="user-1")

    with pg_sessions() as session:
        org = Organization(name="Acme Trading")
        session.add(org)
        session.flush()

        item = InventoryItem(
            org_id=org.id,
            name="Widget",
            sku="W-1",
            stock_level=5,
            unit_price=Decimal("25.00"),
            created_by_id=actor.id,
        )
        session.add(item)
        session.flush()
        create_initial_stock_movement(session, org.id, item.id, 5, actor)
        session.commit()

        return item


def test_second_invoice_waits_for_lock_and_sees_new_level(pg_sessions, pg_item):
    actor = Actor(id="user-1")
    outcome = {}

    first = pg_sessions()
    result = deduct_stock_atomic(first, pg_item.org_id, [StockRequest(pg_item.id, Decimal("4"))], 1, actor)
    assert result.success is True

    def competing_invoice():
        with pg_sessions() as second:
            outcome["result"] = deduct_stock_atomic(
                second, pg_item.org_id, [StockRequest(pg_item.id, Decimal("4"))], 2, actor
            )
            second.rollback()

    worker = threading.Thread(target=competing_invoice)
    worker.start()

    # Blocked on the row lock held by the first transaction
    worker.join(timeout=1)
    assert worker.is_alive()

    first.commit()
    first.close()
    worker.join(timeout=10)

    assert not worker.is_alive()
    assert outcome["result"].success is False
    assert outcome["result"].error_code == InventoryErrorCode.INSUFFICIENT_STOCK
    assert outcome["result"].insufficient_stock[0].available == 1

    with pg_sessions() as check:
        assert check.get(InventoryItem, pg_item.id).stock_level == 1
        assert check.query(StockMovement).filter(StockMovement.type == "SALE").count() == 1
