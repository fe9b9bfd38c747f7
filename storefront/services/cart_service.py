import logging
import random
import uuid
from dataclasses import dataclass, field

from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.core.errors import (
    CartNotFound,
    InsufficientStock,
    ItemNotFound,
    OutOfStock,
    ProductNotFound,
    ProductUnavailable,
)
from storefront.models.cart import Cart, CartLine
from storefront.models.product import PRODUCT_ACTIVE, Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartItemAdd, CartItemUpdate, CartSync
from storefront.services.inventory_service import InventoryService
from storefront.services.pricing import (
    PricingBreakdown,
    compute_breakdown,
    empty_breakdown,
    snapshot_of,
)

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass
class AddItemResult:
    breakdown: PricingBreakdown
    created: bool
    reserved: bool = False


@dataclass
class SyncResult:
    breakdown: PricingBreakdown
    warnings: list[str] = field(default_factory=list)
    reserved: bool = False


class CartService:
    """
    Business logic for cart operations.

    Responsibilities:
      - keep the cart a quantity-only ledger (no prices stored)
      - validate product existence/status and stock on add
      - merge client-side carts on sync, capping at stock
      - optional soft reservation of stock (reserve=true)
      - return a freshly priced breakdown after every mutation

    Each mutating operation commits exactly once, so a soft reservation
    and the cart change it belongs to land together.
    """

    def __init__(
        self,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        inventory: InventoryService,
    ):
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.inventory = inventory

    # ---- internal helpers ----

    def _get_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if not product:
            raise ProductNotFound()
        if product.status != PRODUCT_ACTIVE:
            raise ProductUnavailable()
        return product

    def _get_cart(self, session: Session, user_id: str) -> Cart:
        cart = self.cart_repo.get_for_user(session, user_id)
        if not cart:
            raise CartNotFound()
        return cart

    def _release_held(self, session: Session, line: CartLine, keep: int) -> None:
        """
        Give back reserved units of `line` beyond `keep`.

        A hold on a product that no longer exists is simply dropped.
        """
        excess = line.reserved_qty - max(keep, 0)
        if excess <= 0:
            return
        if self.product_repo.get_by_id(session, line.product_id) is not None:
            self.inventory.release(session, line.product_id, excess)
        line.reserved_qty -= excess

    def _drop_line(self, session: Session, line: CartLine) -> None:
        self._release_held(session, line, keep=0)
        self.cart_repo.delete_line(session, line)

    def _price(
        self,
        session: Session,
        cart: Cart | None,
        discount_override=None,
        rng: random.Random | None = None,
    ) -> PricingBreakdown:
        """
        Price the cart against current product rows.
        """
        if cart is None:
            return empty_breakdown()

        lines = self.cart_repo.list_lines(session, cart.id)
        products = self.product_repo.get_many(session, [ln.product_id for ln in lines])

        def lookup(product_id: uuid.UUID):
            product = products.get(product_id)
            return snapshot_of(product) if product else None

        return compute_breakdown(
            [(ln.product_id, ln.quantity) for ln in lines],
            lookup,
            delivery_charge=settings.DELIVERY_CHARGE,
            free_delivery_threshold=settings.FREE_DELIVERY_THRESHOLD,
            discount_override=discount_override,
            rng=rng,
        )

    # ---- public operations ----

    def get_cart(
        self,
        session: Session,
        user_id: str,
        discount_override=None,
        rng: random.Random | None = None,
    ) -> PricingBreakdown:
        """
        Current breakdown; all-zero when the user has no cart yet.
        """
        cart = self.cart_repo.get_for_user(session, user_id)
        return self._price(session, cart, discount_override, rng)

    def add_item(
        self,
        session: Session,
        user_id: str,
        payload: CartItemAdd,
        reserve: bool = False,
        rng: random.Random | None = None,
    ) -> AddItemResult:
        """
        Add `qty` of a product, creating the cart and the line as needed.

        Rules:
          - product must exist and be active
          - existing quantity + qty <= stock, where units this line
            already holds count as available
          - with `reserve`, exactly `qty` units are taken from stock
        """
        product = self._get_product(session, payload.product_id)

        try:
            cart = self.cart_repo.get_or_create(session, user_id)
            line = self.cart_repo.get_line(session, cart.id, product.id)
            available = product.stock + (line.reserved_qty if line else 0)

            if payload.qty > available:
                raise OutOfStock("Not enough stock")

            created = line is None
            if line is None:
                line = CartLine(cart_id=cart.id, product_id=product.id, quantity=payload.qty)
            else:
                new_qty = line.quantity + payload.qty
                if new_qty > available:
                    raise OutOfStock("Exceeds available stock")
                line.quantity = new_qty

            if reserve:
                self.inventory.reserve(session, product.id, payload.qty)
                line.reserved_qty += payload.qty

            self.cart_repo.save_line(session, line)
            self.cart_repo.touch(session, cart)
            session.commit()
        except Exception:
            session.rollback()
            raise

        return AddItemResult(
            breakdown=self._price(session, cart, rng=rng),
            created=created,
            reserved=reserve,
        )

    def sync(
        self,
        session: Session,
        user_id: str,
        payload: CartSync,
        reserve: bool = False,
        rng: random.Random | None = None,
    ) -> SyncResult:
        """
        Merge a client-side cart into the stored one.

        Each incoming line is handled on its own: a missing or archived
        product, or a failed reservation, only produces a warning.
        Quantities add to what is already in the cart and are capped at
        what this line can have (current stock plus the units it already
        holds); a cap of 0 leaves the product out of the cart.
        With `reserve`, only the quantity actually added is reserved.
        """
        warnings: list[str] = []

        try:
            cart = self.cart_repo.get_or_create(session, user_id)

            for item in payload.items:
                product = self.product_repo.get_by_id(session, item.product_id)
                if not product:
                    warnings.append(f"Product {item.product_id} not found")
                    continue
                if product.status != PRODUCT_ACTIVE:
                    warnings.append(f"Product {product.name} is no longer available")
                    continue

                line = self.cart_repo.get_line(session, cart.id, product.id)
                previous = line.quantity if line else 0
                cap = max(product.stock + (line.reserved_qty if line else 0), 0)

                final_qty = previous + item.qty
                if final_qty > cap:
                    final_qty = cap
                    warnings.append(f"Product {product.name} quantity capped at {cap}")

                if final_qty <= 0:
                    if line is not None:
                        self._drop_line(session, line)
                    continue

                delta = final_qty - previous
                reserved_now = 0
                if reserve and delta > 0:
                    try:
                        self.inventory.reserve(session, product.id, delta)
                    except InsufficientStock as exc:
                        warnings.append(exc.message)
                        continue
                    reserved_now = delta

                if line is None:
                    line = CartLine(cart_id=cart.id, product_id=product.id, quantity=final_qty)
                else:
                    self._release_held(session, line, keep=final_qty)
                    line.quantity = final_qty
                line.reserved_qty += reserved_now
                self.cart_repo.save_line(session, line)

            self.cart_repo.touch(session, cart)
            session.commit()
        except Exception:
            session.rollback()
            raise

        if warnings:
            logger.warning("Cart sync for user %s: %s", user_id, "; ".join(warnings))

        return SyncResult(
            breakdown=self._price(session, cart, rng=rng),
            warnings=warnings,
            reserved=reserve,
        )

    def update_quantity(
        self,
        session: Session,
        user_id: str,
        product_id: uuid.UUID,
        payload: CartItemUpdate,
        rng: random.Random | None = None,
    ) -> PricingBreakdown:
        """
        Set a line's quantity verbatim; quantity <= 0 removes the line.

        No stock check here: stock is enforced on add and at order time.
        Reserved units above the new quantity go back to stock.
        """
        cart = self._get_cart(session, user_id)
        line = self.cart_repo.get_line(session, cart.id, product_id)
        if not line:
            raise ItemNotFound()

        try:
            if payload.quantity <= 0:
                self._drop_line(session, line)
            else:
                self._release_held(session, line, keep=payload.quantity)
                line.quantity = payload.quantity
                self.cart_repo.save_line(session, line)

            self.cart_repo.touch(session, cart)
            session.commit()
        except Exception:
            session.rollback()
            raise

        return self._price(session, cart, rng=rng)

    def remove_item(
        self,
        session: Session,
        user_id: str,
        product_id: uuid.UUID,
        rng: random.Random | None = None,
    ) -> PricingBreakdown:
        cart = self._get_cart(session, user_id)
        line = self.cart_repo.get_line(session, cart.id, product_id)
        if not line:
            raise ItemNotFound()

        try:
            self._drop_line(session, line)
            self.cart_repo.touch(session, cart)
            session.commit()
        except Exception:
            session.rollback()
            raise

        return self._price(session, cart, rng=rng)

    def clear(self, session: Session, user_id: str) -> PricingBreakdown:
        """
        Remove every line, releasing held stock; the (empty) cart itself
        is kept.
        """
        cart = self._get_cart(session, user_id)

        try:
            for line in self.cart_repo.list_lines(session, cart.id):
                self._release_held(session, line, keep=0)
            self.cart_repo.clear_lines(session, cart.id)
            self.cart_repo.touch(session, cart)
            session.commit()
        except Exception:
            session.rollback()
            raise

        return empty_breakdown()
