import uuid

from pydantic import Field, field_validator

from storefront.schemas.base import APIModel, coerce_uuid


class CartItemAdd(APIModel):
    """
    Payload for POST /cart/items.
    """

    product_id: uuid.UUID
    qty: int = Field(ge=1)

    @field_validator("product_id", mode="before")
    @classmethod
    def valid_product_id(cls, v):
        return coerce_uuid(v, "product")


class CartSyncLine(CartItemAdd):
    """
    One entry of a client-side (pre-login) cart.
    """

    pass


class CartSync(APIModel):
    """
    Payload for POST /cart/sync.
    """

    items: list[CartSyncLine]


class CartItemUpdate(APIModel):
    """
    Payload for PATCH /cart/items/{productId}.

    quantity <= 0 removes the line.
    """

    quantity: int


class PricedProductRead(APIModel):
    id: uuid.UUID
    name: str
    price: float


class CartLineRead(APIModel):
    """
    A cart line priced against the current product price.
    """

    product: PricedProductRead
    qty: int
    line_total: float


class CartBreakdown(APIModel):
    """
    Full pricing breakdown returned by every cart endpoint.
    """

    items: list[CartLineRead]
    subtotal: float
    delivery_charge: float
    discount_percent: float
    discount_amount: float
    total_payable: float
    warnings: list[str] = []


class CartAddResponse(APIModel):
    cart: CartBreakdown
    reserved: bool = False


class CartSyncResponse(APIModel):
    merged: bool = True
    cart: CartBreakdown
    warnings: list[str]
    reserved: bool = False
