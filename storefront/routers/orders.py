import random

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from storefront.core.auth import Principal, get_current_principal, require_staff
from storefront.database import get_session
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.base import parse_id
from storefront.schemas.order import (
    OrderCreate,
    OrderCreatedResponse,
    OrderPage,
    OrderRead,
    OrderStatusUpdate,
)
from storefront.services.inventory_service import InventoryService
from storefront.services.order_service import OrderService
from storefront.services.pricing import get_discount_rng

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
cart_repo = CartRepository()
product_repo = ProductRepository()
inventory = InventoryService(product_repo)
service = OrderService(order_repo, cart_repo, product_repo, inventory)


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_order(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    rng: random.Random = Depends(get_discount_rng),
):
    """
    Convert the current user's cart into an order.

    - 400 'Cart is empty' when there is nothing to order.
    - 400 when any line is short on stock; nothing is changed then.
    """
    return service.create_order(session, principal, payload, rng)


@router.get("", response_model=OrderPage)
def list_orders(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    """
    Paginated orders, newest first.

    - role 'user': own orders only.
    - seller/admin: every order.
    """
    return service.list_orders(session, principal, page, limit)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: str,
    session: Session = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    """
    Get a single order with its lines.
    """
    return service.get_order(session, principal, parse_id(order_id, "order"))


@router.patch(
    "/{order_id}/status",
    response_model=OrderRead,
    dependencies=[Depends(require_staff)],
)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Advance order status (seller/admin only).
    """
    return service.update_status(session, parse_id(order_id, "order"), payload)
