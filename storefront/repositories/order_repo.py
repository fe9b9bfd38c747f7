import uuid
from datetime import datetime, timezone

from sqlalchemy import func
from sqlmodel import Session, select

from storefront.models.order import Order, OrderLine


class OrderRepository:
    """
    Data access layer for orders and order_lines.

    NOTE:
      - No commits here; order creation is a multi-step transaction.
        The service is responsible for calling session.commit().
    """

    # ---- Orders ----

    def list_orders(
        self,
        session: Session,
        user_id: str | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Order]:
        """
        Newest-first page of orders; all users when `user_id` is None.
        """
        stmt = select(Order)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def count(self, session: Session, user_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(Order)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        return session.exec(stmt).one()

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()  # Assign PK
        session.refresh(order)
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        order.updated_at = datetime.now(timezone.utc)
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    # ---- Order lines ----

    def list_lines_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderLine]:
        stmt = (
            select(OrderLine)
            .where(OrderLine.order_id == order_id)
            .order_by(OrderLine.position)
        )
        return list(session.exec(stmt).all())

    def list_lines_for_orders(
        self,
        session: Session,
        order_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[OrderLine]]:
        grouped: dict[uuid.UUID, list[OrderLine]] = {oid: [] for oid in order_ids}
        if not order_ids:
            return grouped
        stmt = (
            select(OrderLine)
            .where(OrderLine.order_id.in_(order_ids))
            .order_by(OrderLine.position)
        )
        for line in session.exec(stmt).all():
            grouped[line.order_id].append(line)
        return grouped

    def create_lines(
        self,
        session: Session,
        lines: list[OrderLine],
    ) -> list[OrderLine]:
        session.add_all(lines)
        session.flush()
        for line in lines:
            session.refresh(line)
        return lines

    def product_has_orders(self, session: Session, product_id: uuid.UUID) -> bool:
        stmt = select(OrderLine.id).where(OrderLine.product_id == product_id).limit(1)
        return session.exec(stmt).first() is not None
