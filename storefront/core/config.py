from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - JWT_SECRET (secret shared with the token issuer)

    Optional:
      - DATABASE_URL (defaults to a local SQLite file)
      - SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY (product image storage)
      - DELIVERY_CHARGE / FREE_DELIVERY_THRESHOLD (pricing rules)
    """

    PROJECT_NAME: str = "Storefront API"
    API_PREFIX: str = "/api"

    DATABASE_URL: str = "sqlite:///./storefront.db"

    # Token verification (issued elsewhere, verified here)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    AUTH_COOKIE_NAME: str = "token"

    # Pricing rules
    DELIVERY_CHARGE: Decimal = Decimal("50")
    FREE_DELIVERY_THRESHOLD: Decimal = Decimal("1000")

    # Decrement stock when a cart is converted into an order
    ORDER_RESERVE_INVENTORY: bool = True

    PRODUCTS_PAGE_SIZE: int = 10
    ORDERS_DEFAULT_LIMIT: int = 10

    # Product image storage
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    STORAGE_BUCKET: str = "assets"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:3001",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
