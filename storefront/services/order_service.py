import logging
import math
import random
import uuid

from sqlmodel import Session

from storefront.core.auth import Principal
from storefront.core.config import get_settings
from storefront.core.errors import EmptyCart, Forbidden, OrderNotFound, ValidationError
from storefront.models.order import (
    ORDER_DELIVERED,
    ORDER_PENDING,
    ORDER_SHIPPED,
    Order,
    OrderLine,
)
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.order import (
    OrderCreate,
    OrderCreatedResponse,
    OrderLineRead,
    OrderPage,
    OrderRead,
    OrderStatusUpdate,
)
from storefront.services.inventory_service import InventoryService
from storefront.services.pricing import compute_breakdown, round2, snapshot_of

logger = logging.getLogger(__name__)

settings = get_settings()

# Forward-only lifecycle
NEXT_STATUS: dict[str, str] = {
    ORDER_PENDING: ORDER_SHIPPED,
    ORDER_SHIPPED: ORDER_DELIVERED,
}


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Convert the caller's cart into an immutable Order
      - Freeze unit prices (price_at) at creation time
      - Reserve stock for every line (all or nothing)
      - Clear the cart after success
      - Role-aware reads and forward-only status changes
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        inventory: InventoryService,
    ):
        self.order_repo = order_repo
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.inventory = inventory

    # -------- Creation --------

    def create_order(
        self,
        session: Session,
        principal: Principal,
        payload: OrderCreate,
        rng: random.Random | None = None,
    ) -> OrderCreatedResponse:
        """
        Convert the caller's cart into an Order.

        Steps:
          1. Load cart lines; EmptyCart if there are none.
          2. Resolve current products; missing ones are skipped with a
             warning. EmptyCart if nothing is left.
          3. Check stock for every line, then take it line by line
             (when ORDER_RESERVE_INVENTORY is on). Units a line already
             holds from a soft reservation are not taken again.
          4. Price with a fresh random discount and freeze price_at.
          5. Insert Order + OrderLines, empty the cart, commit once.

        Any failure rolls back the whole transaction, including stock
        already taken for earlier lines.
        """
        cart = self.cart_repo.get_for_user(session, principal.user_id)
        cart_lines = self.cart_repo.list_lines(session, cart.id) if cart else []
        if not cart_lines:
            raise EmptyCart()

        products = self.product_repo.get_many(
            session, [ln.product_id for ln in cart_lines]
        )

        def lookup(product_id: uuid.UUID):
            product = products.get(product_id)
            return snapshot_of(product) if product else None

        breakdown = compute_breakdown(
            [(ln.product_id, ln.quantity) for ln in cart_lines],
            lookup,
            delivery_charge=settings.DELIVERY_CHARGE,
            free_delivery_threshold=settings.FREE_DELIVERY_THRESHOLD,
            rng=rng,
        )
        if not breakdown.items:
            raise EmptyCart()

        try:
            if settings.ORDER_RESERVE_INVENTORY:
                held = {ln.product_id: ln.reserved_qty for ln in cart_lines}
                demand = [
                    (item.product.id, item.qty - held.get(item.product.id, 0))
                    for item in breakdown.items
                    if item.qty > held.get(item.product.id, 0)
                ]
                self.inventory.ensure_available(products, demand)
                for product_id, qty in demand:
                    self.inventory.reserve(session, product_id, qty)

            order = Order(
                user_id=principal.user_id,
                subtotal=breakdown.subtotal,
                delivery_charge=breakdown.delivery_charge,
                discount_percent=breakdown.discount_percent,
                discount_amount=breakdown.discount_amount,
                total=breakdown.total_payable,
                payment_method=payload.payment_method,
                status=ORDER_PENDING,
            )
            order = self.order_repo.create_order(session, order)

            lines = [
                OrderLine(
                    order_id=order.id,
                    product_id=item.product.id,
                    position=position,
                    quantity=item.qty,
                    price_at=item.product.price,
                )
                for position, item in enumerate(breakdown.items)
            ]
            lines = self.order_repo.create_lines(session, lines)

            self.cart_repo.clear_lines(session, cart.id)
            self.cart_repo.touch(session, cart)

            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(order)
        logger.info(
            "Order %s created for user %s (%s line(s), total %s)",
            order.id,
            principal.user_id,
            len(lines),
            order.total,
        )

        return OrderCreatedResponse(
            order=self._build_order_dto(order, lines),
            warnings=breakdown.warnings,
        )

    # -------- Reads --------

    def get_order(
        self,
        session: Session,
        principal: Principal,
        order_id: uuid.UUID,
    ) -> OrderRead:
        """
        Single order with lines.

        - 404 if the order does not exist
        - 403 if a plain user asks for someone else's order
        """
        order = self._get_visible_order(session, principal, order_id)
        lines = self.order_repo.list_lines_for_order(session, order.id)
        return self._build_order_dto(order, lines)

    def list_orders(
        self,
        session: Session,
        principal: Principal,
        page: int = 1,
        limit: int | None = None,
    ) -> OrderPage:
        """
        Newest-first page of orders: own orders for users, every order for
        sellers and admins.
        """
        limit = limit or settings.ORDERS_DEFAULT_LIMIT
        owner = None if principal.is_staff else principal.user_id

        orders = self.order_repo.list_orders(
            session,
            user_id=owner,
            skip=(page - 1) * limit,
            limit=limit,
        )
        total_orders = self.order_repo.count(session, user_id=owner)
        lines_by_order = self.order_repo.list_lines_for_orders(
            session, [o.id for o in orders]
        )

        return OrderPage(
            orders=[self._build_order_dto(o, lines_by_order[o.id]) for o in orders],
            page=page,
            limit=limit,
            total_orders=total_orders,
            total_pages=math.ceil(total_orders / limit),
        )

    # -------- Staff operations --------

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
    ) -> OrderRead:
        """
        Advance an order one step along pending -> shipped -> delivered.

        Setting the current status again is a no-op; any other move
        (backwards or skipping a step) raises 400.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise OrderNotFound()

        current = order.status
        new = payload.status

        if current != new:
            if NEXT_STATUS.get(current) != new:
                raise ValidationError(f"Invalid status transition: {current} -> {new}")
            order.status = new
            self.order_repo.update_order(session, order)
            session.commit()
            session.refresh(order)
            logger.info("Order %s moved %s -> %s", order.id, current, new)

        lines = self.order_repo.list_lines_for_order(session, order.id)
        return self._build_order_dto(order, lines)

    # -------- Helpers --------

    def _get_visible_order(
        self,
        session: Session,
        principal: Principal,
        order_id: uuid.UUID,
    ) -> Order:
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise OrderNotFound()
        if not principal.is_staff and order.user_id != principal.user_id:
            raise Forbidden()
        return order

    def _build_order_dto(self, order: Order, lines: list[OrderLine]) -> OrderRead:
        """
        Compose OrderRead from ORM rows. Line totals are derived from the
        frozen price_at, never from the current product price.
        """
        return OrderRead(
            id=order.id,
            user=order.user_id,
            items=[
                OrderLineRead(
                    product=ln.product_id,
                    qty=ln.quantity,
                    price_at=ln.price_at,
                    line_total=round2(ln.price_at * ln.quantity),
                )
                for ln in lines
            ],
            subtotal=order.subtotal,
            delivery_charge=order.delivery_charge,
            discount_percent=order.discount_percent,
            discount_amount=order.discount_amount,
            total=order.total,
            payment_method=order.payment_method,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
