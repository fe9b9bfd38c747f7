import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field

ORDER_PENDING = "pending"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"


class Order(SQLModel, table=True):
    """
    Immutable record of a converted cart.

    Only `status` (and `updated_at`) change after creation; the money
    columns are computed once from OrderLine.price_at.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: str = Field(index=True)

    subtotal: Decimal = Field(max_digits=12, decimal_places=2)
    delivery_charge: Decimal = Field(max_digits=12, decimal_places=2)
    discount_percent: Decimal = Field(max_digits=5, decimal_places=2)
    discount_amount: Decimal = Field(max_digits=12, decimal_places=2)
    total: Decimal = Field(max_digits=12, decimal_places=2)

    payment_method: str | None = Field(
        default=None,
        description="Free-form tag; no payment is processed",
    )

    # pending | shipped | delivered
    status: str = Field(
        default=ORDER_PENDING,
        index=True,
        description="Order status lifecycle",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class OrderLine(SQLModel, table=True):
    """
    Line item inside an order with its price frozen at order time.
    """

    __tablename__ = "order_lines"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    # FK keeps referenced products from being hard-deleted
    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    position: int = Field(default=0, ge=0)

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    price_at: Decimal = Field(
        max_digits=12,
        decimal_places=2,
        description="Unit price captured when the order was placed",
    )
