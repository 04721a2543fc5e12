# crm_inventory/models/organization.py

from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.sql import func

from crm_inventory.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)

    # Suspended tenants keep their data but cannot call the API
    is_suspended = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
