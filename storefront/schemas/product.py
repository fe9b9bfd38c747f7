import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict, Field, field_validator

from storefront.schemas.base import APIModel

ProductStatus = Literal["active", "archived"]


class ProductImageRef(APIModel):
    """
    Image reference as returned by the storage service.
    """

    url: str = Field(min_length=1)
    filename: str = Field(min_length=1)


class ProductCreate(APIModel):
    """
    Payload for creating a product.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=100)
    description: str = ""
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    stock: int = Field(ge=0)
    category: str = Field(max_length=50)
    images: list[ProductImageRef] = []

    @field_validator("name", "category")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class ProductUpdate(APIModel):
    """
    Partial update payload for products.
    All fields are optional; `images` replaces the whole list.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=100)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    stock: int | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, max_length=50)
    status: ProductStatus | None = None
    images: list[ProductImageRef] | None = None

    @field_validator("name", "category")
    @classmethod
    def not_empty(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class ProductRead(APIModel):
    """
    Product representation for clients.
    """

    id: uuid.UUID
    name: str
    description: str
    price: float
    stock: int
    category: str
    status: ProductStatus
    images: list[ProductImageRef]
    created_at: datetime
    updated_at: datetime


class ProductPage(APIModel):
    products: list[ProductRead]
    total: int
    page: int
    pages: int


class ProductDeleteResponse(APIModel):
    message: str
    product: ProductRead
