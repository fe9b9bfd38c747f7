import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, func, literal, or_, update
from sqlmodel import Session, select

from storefront.models.product import PRODUCT_ACTIVE, Product, ProductImage

SORT_ORDERS = {
    "price:asc": (Product.price.asc(), Product.created_at.desc()),
    "price:desc": (Product.price.desc(), Product.created_at.desc()),
    "newest": (Product.created_at.desc(),),
}


class ProductRepository:
    """
    Data access layer for Product & ProductImage.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    """

    # ----- Products -----

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def get_many(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        stmt = select(Product).where(Product.id.in_(product_ids))
        return {p.id: p for p in session.exec(stmt).all()}

    def search(
        self,
        session: Session,
        *,
        text: str | None = None,
        name_contains: str | None = None,
        category: str | None = None,
        price_min: Decimal | None = None,
        price_max: Decimal | None = None,
        sort: str = "newest",
        skip: int = 0,
        limit: int = 10,
        only_active: bool = True,
    ) -> tuple[list[Product], int]:
        """
        Filtered, sorted page of products plus the total match count.

        `text` is a word match over name/description/category;
        `name_contains` is a case-insensitive substring match on name.
        """
        conditions = []
        if only_active:
            conditions.append(Product.status == PRODUCT_ACTIVE)
        if text:
            conditions.append(self._text_condition(session, text))
        if name_contains:
            conditions.append(
                Product.name.icontains(name_contains, autoescape=True)
            )
        if category:
            conditions.append(Product.category == category)
        if price_min is not None:
            conditions.append(Product.price >= price_min)
        if price_max is not None:
            conditions.append(Product.price <= price_max)

        count_stmt = select(func.count()).select_from(Product).where(*conditions)
        total = session.exec(count_stmt).one()

        stmt = (
            select(Product)
            .where(*conditions)
            .order_by(*SORT_ORDERS[sort])
            .offset(skip)
            .limit(limit)
        )
        return list(session.exec(stmt).all()), total

    @staticmethod
    def _text_condition(session: Session, text: str):
        document = (
            literal(" ")
            + Product.name
            + " "
            + Product.description
            + " "
            + Product.category
            + " "
        )
        if session.get_bind().dialect.name == "postgresql":
            return func.to_tsvector("english", document).op("@@")(
                func.plainto_tsquery("english", text)
            )

        # Whole-word match for engines without a text index
        terms = re.findall(r"\w+", text.lower())
        if not terms:
            return literal(False)
        lowered = func.lower(document, type_=String)
        return or_(*(lowered.like(f"% {term} %") for term in terms))

    def create(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def update(self, session: Session, product: Product) -> Product:
        product.updated_at = datetime.now(timezone.utc)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def delete(self, session: Session, product: Product) -> None:
        session.delete(product)
        session.commit()

    # ----- Stock counters -----
    # No commits here: reservations are part of the caller's transaction.

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> bool:
        """
        Atomically take `quantity` units if at least that many are in stock.

        Returns False (and changes nothing) when stock is insufficient
        or the product does not exist.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(
                stock=Product.stock - quantity,
                updated_at=datetime.now(timezone.utc),
            )
        )
        result = session.exec(stmt)
        return result.rowcount == 1

    def increment_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        quantity: int,
    ) -> bool:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(
                stock=Product.stock + quantity,
                updated_at=datetime.now(timezone.utc),
            )
        )
        result = session.exec(stmt)
        return result.rowcount == 1

    # ----- Product images -----

    def list_images_for_product(
        self,
        session: Session,
        product_id: uuid.UUID,
    ) -> list[ProductImage]:
        stmt = (
            select(ProductImage)
            .where(ProductImage.product_id == product_id)
            .order_by(ProductImage.sort_order)
        )
        return list(session.exec(stmt).all())

    def list_images_for_products(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[ProductImage]]:
        grouped: dict[uuid.UUID, list[ProductImage]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return grouped
        stmt = (
            select(ProductImage)
            .where(ProductImage.product_id.in_(product_ids))
            .order_by(ProductImage.sort_order)
        )
        for image in session.exec(stmt).all():
            grouped[image.product_id].append(image)
        return grouped

    def create_images(
        self,
        session: Session,
        images: list[ProductImage],
    ) -> list[ProductImage]:
        session.add_all(images)
        session.commit()
        for image in images:
            session.refresh(image)
        return images

    def delete_images(
        self,
        session: Session,
        images: list[ProductImage],
    ) -> None:
        for image in images:
            session.delete(image)
        session.commit()
