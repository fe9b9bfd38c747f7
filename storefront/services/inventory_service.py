import logging
import uuid

from sqlmodel import Session

from storefront.core.errors import InsufficientStock, ProductNotFound
from storefront.models.product import Product
from storefront.repositories.product_repo import ProductRepository

logger = logging.getLogger(__name__)


class InventoryService:
    """
    Stock reservation primitives.

    Reservations use a conditional UPDATE (decrement only if enough is
    left), so two concurrent reservations on the same product can never
    drive stock below zero. Nothing here commits: reservations join the
    caller's transaction and are undone by its rollback.
    """

    def __init__(self, product_repo: ProductRepository):
        self.product_repo = product_repo

    def reserve(self, session: Session, product_id: uuid.UUID, qty: int) -> None:
        """
        Take `qty` units of stock.

        Raises:
            InsufficientStock: fewer than `qty` units are left.
            ProductNotFound: the product row no longer exists.
        """
        if qty <= 0:
            return

        if self.product_repo.decrement_stock(session, product_id, qty):
            logger.info("Reserved %s unit(s) of product %s", qty, product_id)
            return

        product = self.product_repo.get_by_id(session, product_id)
        if product is None:
            raise ProductNotFound()
        raise InsufficientStock(f"Insufficient stock for product {product.name}")

    def release(self, session: Session, product_id: uuid.UUID, qty: int) -> None:
        """Give `qty` units back to stock."""
        if qty <= 0:
            return
        if not self.product_repo.increment_stock(session, product_id, qty):
            raise ProductNotFound()
        logger.info("Released %s unit(s) of product %s", qty, product_id)

    @staticmethod
    def ensure_available(
        products: dict[uuid.UUID, Product],
        demand: list[tuple[uuid.UUID, int]],
    ) -> None:
        """
        Check every requested quantity against current stock before any
        reservation is attempted.
        """
        for product_id, qty in demand:
            product = products[product_id]
            if product.stock < qty:
                raise InsufficientStock(f"Insufficient stock for product {product.name}")
