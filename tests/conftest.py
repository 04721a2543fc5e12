import os

# Settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crm_inventory.main import app
from crm_inventory.database import Base, get_db
from crm_inventory.core.audit import AuditSink, get_audit_sink
from crm_inventory.core.auth import AuthContext
from crm_inventory.core.jwt import create_access_token
from crm_inventory.core.rate_limiter import limiter
from crm_inventory.inventory.ledger import Actor, create_initial_stock_movement
from crm_inventory.models.inventory_items import InventoryItem
from crm_inventory.models.organization import Organization


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


class FakeAuditSink(AuditSink):
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def org(db):
    organization = Organization(name="Acme Trading")
    db.add(organization)
    db.commit()
    return organization


@pytest.fixture
def other_org(db):
    organization = Organization(name="Globex")
    db.add(organization)
    db.commit()
    return organization


@pytest.fixture
def actor():
    return Actor(id="user-1")


@pytest.fixture
def ctx(org):
    return AuthContext(org_id=org.id, user_id="user-1")


@pytest.fixture
def audit_sink():
    return FakeAuditSink()


@pytest.fixture
def make_item(db, org, actor):
    counter = {"n": 0}

    def _make_item(stock_level=10, reorder_level=2, organization=None, is_active=True, **kwargs):
        counter["n"] += 1
        owner = organization or org
        item = InventoryItem(
            org_id=owner.id,
            name=kwargs.pop("name", f"Item {counter['n']}"),
            sku=kwargs.pop("sku", f"ITEM-{counter['n']:03d}"),
            stock_level=stock_level,
            reorder_level=reorder_level,
            unit_price=kwargs.pop("unit_price", Decimal("25.00")),
            is_active=is_active,
            created_by_id=actor.id,
            **kwargs,
        )
        db.add(item)
        db.flush()
        create_initial_stock_movement(db, owner.id, item.id, stock_level, actor)
        db.commit()
        return item

    return _make_item


@pytest.fixture
def client(db, audit_sink):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_sink] = lambda: audit_sink
    limiter.reset()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_token(org_id, user_id="user-1", **claims):
    return create_access_token({"sub": user_id, "org_id": org_id, **claims})


@pytest.fixture
def auth_headers(org):
    return {"Authorization": f"Bearer {make_token(org.id)}"}


@pytest.fixture
def headers_for():
    def _headers_for(org_id, **claims):
        return {"Authorization": f"Bearer {make_token(org_id, **claims)}"}

    return _headers_for
