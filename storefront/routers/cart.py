import random

from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel import Session

from storefront.core.auth import Principal, get_current_principal
from storefront.database import get_session
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.base import parse_id
from storefront.schemas.cart import (
    CartAddResponse,
    CartBreakdown,
    CartItemAdd,
    CartItemUpdate,
    CartLineRead,
    CartSync,
    CartSyncResponse,
    PricedProductRead,
)
from storefront.services.cart_service import CartService
from storefront.services.inventory_service import InventoryService
from storefront.services.pricing import PricingBreakdown, get_discount_rng

router = APIRouter(prefix="/cart", tags=["Cart"])

cart_repo = CartRepository()
product_repo = ProductRepository()
inventory = InventoryService(product_repo)
service = CartService(cart_repo, product_repo, inventory)


def to_breakdown_dto(breakdown: PricingBreakdown) -> CartBreakdown:
    return CartBreakdown(
        items=[
            CartLineRead(
                product=PricedProductRead(
                    id=item.product.id,
                    name=item.product.name,
                    price=item.product.price,
                ),
                qty=item.qty,
                line_total=item.line_total,
            )
            for item in breakdown.items
        ],
        subtotal=breakdown.subtotal,
        delivery_charge=breakdown.delivery_charge,
        discount_percent=breakdown.discount_percent,
        discount_amount=breakdown.discount_amount,
        total_payable=breakdown.total_payable,
        warnings=breakdown.warnings,
    )


@router.get("", response_model=CartBreakdown)
def get_my_cart(
    discount: str | None = Query(default=None),
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    rng: random.Random = Depends(get_discount_rng),
):
    """
    Get the current user's cart, priced against live product data.

    - `discount` (0..100) pins the discount percent; anything else
      falls back to a random promotional discount.
    """
    breakdown = service.get_cart(session, principal.user_id, discount, rng)
    return to_breakdown_dto(breakdown)


@router.post("/items", response_model=CartAddResponse)
def add_item(
    payload: CartItemAdd,
    response: Response,
    reserve: bool = False,
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    rng: random.Random = Depends(get_discount_rng),
):
    """
    Add a product to the cart.

    - 201 when a new line is created, 200 when an existing line grows.
    - `reserve=true` also takes the quantity out of stock.
    """
    result = service.add_item(session, principal.user_id, payload, reserve, rng)
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return CartAddResponse(cart=to_breakdown_dto(result.breakdown), reserved=result.reserved)


@router.post("/sync", response_model=CartSyncResponse)
def sync_cart(
    payload: CartSync,
    reserve: bool = False,
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    rng: random.Random = Depends(get_discount_rng),
):
    """
    Merge a pre-login (client-side) cart into the stored cart.
    """
    result = service.sync(session, principal.user_id, payload, reserve, rng)
    return CartSyncResponse(
        cart=to_breakdown_dto(result.breakdown),
        warnings=result.warnings,
        reserved=result.reserved,
    )


@router.patch("/items/{product_id}", response_model=CartBreakdown)
def update_cart_item(
    product_id: str,
    payload: CartItemUpdate,
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    rng: random.Random = Depends(get_discount_rng),
):
    """
    Set the quantity of a line; quantity <= 0 removes it.
    """
    breakdown = service.update_quantity(
        session=session,
        user_id=principal.user_id,
        product_id=parse_id(product_id, "product"),
        payload=payload,
        rng=rng,
    )
    return to_breakdown_dto(breakdown)


@router.delete("/items/{product_id}", response_model=CartBreakdown)
def remove_cart_item(
    product_id: str,
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    rng: random.Random = Depends(get_discount_rng),
):
    """
    Remove a product from the cart.
    """
    breakdown = service.remove_item(
        session, principal.user_id, parse_id(product_id, "product"), rng
    )
    return to_breakdown_dto(breakdown)


@router.delete("", response_model=CartBreakdown)
def clear_cart(
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    """
    Clear the entire cart. Returns the empty breakdown.
    """
    return to_breakdown_dto(service.clear(session, principal.user_id))
