import uuid
from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Cart(SQLModel, table=True):
    """
    One cart per user, created lazily on the first add/sync.
    """

    __tablename__ = "carts"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: str = Field(
        unique=True,
        index=True,
        description="Opaque user id taken from the access token",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class CartLine(SQLModel, table=True):
    """
    Quantity-only entry of a cart.

    No price column: cart prices are always
    recomputed from the current Product row. Frozen prices live on
    OrderLine.

    product_id carries no foreign key so a hard-deleted product shows up
    as a "not found" pricing warning instead of blocking the delete.

    reserved_qty counts the units of `quantity` already taken out of
    Product.stock by a soft reservation (0 <= reserved_qty <= quantity).
    """

    __tablename__ = "cart_lines"
    __table_args__ = (UniqueConstraint("cart_id", "product_id"),)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
    )

    cart_id: uuid.UUID = Field(
        foreign_key="carts.id",
        index=True,
    )

    product_id: uuid.UUID = Field(index=True)

    quantity: int = Field(
        gt=0,
        description="Must be >= 1",
    )

    reserved_qty: int = Field(
        default=0,
        ge=0,
        description="Units of this line already taken from stock",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
