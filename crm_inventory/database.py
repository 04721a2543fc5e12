# crm_inventory/database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from crm_inventory.core.config import settings


engine_options = {
    "echo": settings.DATABASE_ECHO,
    "pool_pre_ping": True,
}

# Deductions rely on row locks (SELECT ... FOR UPDATE); READ COMMITTED is
# enough for that, SERIALIZABLE is accepted as well.
if settings.DATABASE_ISOLATION_LEVEL:
    engine_options["isolation_level"] = settings.DATABASE_ISOLATION_LEVEL

engine = create_engine(settings.DATABASE_URL, **engine_options)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
