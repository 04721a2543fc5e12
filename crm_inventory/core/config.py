# crm_inventory/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal

class Settings(BaseSettings):
    # App
    ENV: str = "development"
    DEBUG: bool = False

    # Security (tokens are issued by the identity provider)
    SECRET_KEY: str
    ALGORITHM: Literal["HS256", "HS384", "HS512"] = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Database
    DATABASE_URL: str
    DATABASE_ECHO: bool = False
    # e.g. "READ COMMITTED" or "SERIALIZABLE" on PostgreSQL
    DATABASE_ISOLATION_LEVEL: str | None = None

    # Audit sink
    AUDIT_WEBHOOK_URL: str | None = None
    AUDIT_WEBHOOK_TIMEOUT_SECONDS: float = 5.0

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Rate limits
    INVOICE_CREATE_RATE_LIMIT: str = "30/minute"
    STOCK_ADJUST_RATE_LIMIT: str = "60/minute"
    EXPORT_RATE_LIMIT: str = "10/minute"

    # Listing
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100



    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
    )


settings = Settings()
