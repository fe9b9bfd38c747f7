import uuid
from datetime import datetime, timezone

from sqlalchemy import delete
from sqlmodel import Session, select

from storefront.models.cart import Cart, CartLine


class CartRepository:
    """
    Data access layer for carts and cart_lines.

    NOTE:
      - No commits here; a cart mutation may be paired with a stock
        reservation, so the service commits both together.
    """

    # ---- Carts ----

    def get_for_user(self, session: Session, user_id: str) -> Cart | None:
        stmt = select(Cart).where(Cart.user_id == user_id)
        return session.exec(stmt).first()

    def create_for_user(self, session: Session, user_id: str) -> Cart:
        cart = Cart(user_id=user_id)
        session.add(cart)
        session.flush()
        return cart

    def get_or_create(self, session: Session, user_id: str) -> Cart:
        return self.get_for_user(session, user_id) or self.create_for_user(
            session, user_id
        )

    def touch(self, session: Session, cart: Cart) -> None:
        cart.updated_at = datetime.now(timezone.utc)
        session.add(cart)

    # ---- Lines ----

    def list_lines(self, session: Session, cart_id: uuid.UUID) -> list[CartLine]:
        stmt = (
            select(CartLine)
            .where(CartLine.cart_id == cart_id)
            .order_by(CartLine.created_at)
        )
        return list(session.exec(stmt).all())

    def get_line(
        self, session: Session, cart_id: uuid.UUID, product_id: uuid.UUID
    ) -> CartLine | None:
        stmt = select(CartLine).where(
            CartLine.cart_id == cart_id, CartLine.product_id == product_id
        )
        return session.exec(stmt).first()

    def save_line(self, session: Session, line: CartLine) -> CartLine:
        session.add(line)
        session.flush()
        return line

    def delete_line(self, session: Session, line: CartLine) -> None:
        session.delete(line)
        session.flush()

    def clear_lines(self, session: Session, cart_id: uuid.UUID) -> None:
        session.exec(delete(CartLine).where(CartLine.cart_id == cart_id))
        session.flush()
