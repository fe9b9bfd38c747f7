import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field

PRODUCT_ACTIVE = "active"
PRODUCT_ARCHIVED = "archived"


class Product(SQLModel, table=True):
    """
    Catalog entry.

    `stock` is only ever decremented through the conditional update in
    ProductRepository.decrement_stock so it cannot go below zero.
    A product referenced by an order line is archived instead of deleted.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=100,
        index=True,
        description="Display name of the product",
    )

    description: str = Field(
        default="",
        description="Optional long description",
    )

    price: Decimal = Field(
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Unit price",
    )

    stock: int = Field(
        default=0,
        ge=0,
        description="How many units currently in stock",
    )

    category: str = Field(
        max_length=50,
        index=True,
    )

    # active | archived
    status: str = Field(
        default=PRODUCT_ACTIVE,
        index=True,
        description="Archived products stay readable but leave the storefront",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last modification timestamp (UTC)",
    )


class ProductImage(SQLModel, table=True):
    """
    Image reference returned by the storage service (url + filename).
    """

    __tablename__ = "product_images"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
        description="FK to products.id",
    )

    url: str = Field(description="Public URL of the stored image")
    filename: str = Field(description="Name of the stored object")

    sort_order: int = Field(
        default=0,
        ge=0,
        description="Ordering index within the gallery",
    )
