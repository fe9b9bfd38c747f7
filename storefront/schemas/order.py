import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, Field, field_validator

from storefront.schemas.base import APIModel

OrderStatus = Literal["pending", "shipped", "delivered"]


class OrderCreate(APIModel):
    """
    Payload for creating an order from the current cart.

    User provides:
      - paymentMethod (optional tag, recorded only)

    Backend derives:
      - user from token
      - status = 'pending'
      - lines, prices and totals from the cart
    """

    model_config = ConfigDict(extra="forbid")

    payment_method: str | None = Field(default=None, max_length=50)

    @field_validator("payment_method")
    @classmethod
    def normalize_payment_method(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderLineRead(APIModel):
    """
    Representation of a single order line.
    """

    product: uuid.UUID
    qty: int
    price_at: float
    line_total: float


class OrderRead(APIModel):
    """
    Full order view including lines.
    """

    id: uuid.UUID
    user: str
    items: list[OrderLineRead]
    subtotal: float
    delivery_charge: float
    discount_percent: float
    discount_amount: float
    total: float
    payment_method: str | None
    status: OrderStatus
    created_at: datetime
    updated_at: datetime


class OrderCreatedResponse(APIModel):
    message: str = "Order created"
    order: OrderRead
    warnings: list[str] = []


class OrderPage(APIModel):
    orders: list[OrderRead]
    page: int
    limit: int
    total_orders: int
    total_pages: int


class OrderStatusUpdate(APIModel):
    """
    Admin/seller payload to advance order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
