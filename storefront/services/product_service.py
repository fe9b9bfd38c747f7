import logging
import math
import uuid
from decimal import Decimal
from typing import Iterable

from sqlmodel import Session

from storefront.core.auth import Principal
from storefront.core.config import get_settings
from storefront.core.errors import ProductNotFound, ValidationError
from storefront.core.storage_utils import ImageStorage
from storefront.models.product import PRODUCT_ARCHIVED, Product, ProductImage
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import SORT_ORDERS, ProductRepository
from storefront.schemas.product import (
    ProductCreate,
    ProductDeleteResponse,
    ProductImageRef,
    ProductPage,
    ProductRead,
    ProductUpdate,
)

logger = logging.getLogger(__name__)

settings = get_settings()

# Queries shorter than this never fall back to substring matching
FALLBACK_MIN_QUERY_LENGTH = 3


class ProductService:
    """
    Business logic for Product & ProductImage.

    Responsibilities:
      - catalog search with pagination and sorting
      - archive-instead-of-delete for products referenced by orders
      - image upload orchestration with the storage service
      - seller/admin-only writes (enforced at router via require_staff)
    """

    def __init__(self, repo: ProductRepository, order_repo: OrderRepository):
        self.repo = repo
        self.order_repo = order_repo

    # ----- Helpers -----

    def _get(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.repo.get_by_id(session, product_id)
        if not product:
            raise ProductNotFound()
        return product

    def _to_read(self, product: Product, images: list[ProductImage]) -> ProductRead:
        return ProductRead(
            id=product.id,
            name=product.name,
            description=product.description,
            price=product.price,
            stock=product.stock,
            category=product.category,
            status=product.status,
            images=[ProductImageRef(url=img.url, filename=img.filename) for img in images],
            created_at=product.created_at,
            updated_at=product.updated_at,
        )

    def _build_read(self, session: Session, product: Product) -> ProductRead:
        return self._to_read(product, self.repo.list_images_for_product(session, product.id))

    @staticmethod
    def _image_rows(
        product_id: uuid.UUID,
        refs: Iterable[ProductImageRef],
        start: int = 0,
    ) -> list[ProductImage]:
        return [
            ProductImage(
                product_id=product_id,
                url=ref.url,
                filename=ref.filename,
                sort_order=start + idx,
            )
            for idx, ref in enumerate(refs)
        ]

    # ----- Reads -----

    def list_products(
        self,
        session: Session,
        q: str | None = None,
        category: str | None = None,
        price_min: Decimal | None = None,
        price_max: Decimal | None = None,
        sort: str = "newest",
        page: int = 1,
    ) -> ProductPage:
        """
        One page of active products.

        `q` is first matched word by word against name, description and
        category. If that finds nothing and `q` is longer than two
        characters, the name is searched for `q` as a substring instead.
        """
        if sort not in SORT_ORDERS:
            raise ValidationError(
                f"Invalid sort option. Allowed: {', '.join(SORT_ORDERS)}"
            )

        page_size = settings.PRODUCTS_PAGE_SIZE
        q = (q or "").strip() or None
        filters = dict(
            category=category,
            price_min=price_min,
            price_max=price_max,
            sort=sort,
            skip=(page - 1) * page_size,
            limit=page_size,
        )

        products, total = self.repo.search(session, text=q, **filters)
        if total == 0 and q and len(q) >= FALLBACK_MIN_QUERY_LENGTH:
            products, total = self.repo.search(session, name_contains=q, **filters)

        images = self.repo.list_images_for_products(session, [p.id for p in products])
        return ProductPage(
            products=[self._to_read(p, images[p.id]) for p in products],
            total=total,
            page=page,
            pages=math.ceil(total / page_size),
        )

    def get_product(self, session: Session, product_id: uuid.UUID) -> ProductRead:
        return self._build_read(session, self._get(session, product_id))

    # ----- Writes -----

    def create_product(self, session: Session, payload: ProductCreate) -> ProductRead:
        product = Product(
            name=payload.name,
            description=payload.description,
            price=payload.price,
            stock=payload.stock,
            category=payload.category,
        )
        product = self.repo.create(session, product)
        if payload.images:
            self.repo.create_images(session, self._image_rows(product.id, payload.images))
        return self._build_read(session, product)

    def update_product(
        self,
        session: Session,
        product_id: uuid.UUID,
        payload: ProductUpdate,
    ) -> ProductRead:
        """
        Partial update of a product.

        - `images`, when present, replaces the whole gallery.
        """
        product = self._get(session, product_id)

        changes = payload.model_dump(exclude_unset=True, exclude={"images"})
        for key, value in changes.items():
            if value is not None:
                setattr(product, key, value)

        if payload.images is not None:
            self.repo.delete_images(session, self.repo.list_images_for_product(session, product.id))
            self.repo.create_images(session, self._image_rows(product.id, payload.images))

        product = self.repo.update(session, product)
        return self._build_read(session, product)

    def delete_product(
        self,
        session: Session,
        product_id: uuid.UUID,
        actor: Principal,
        storage: ImageStorage | None = None,
    ) -> ProductDeleteResponse:
        """
        Archive the product if any order references it, otherwise delete
        it together with its images.

        Storage cleanup after a hard delete is best-effort: a failure is
        logged and does not undo the delete.
        """
        product = self._get(session, product_id)

        if self.order_repo.product_has_orders(session, product.id):
            product.status = PRODUCT_ARCHIVED
            product = self.repo.update(session, product)
            logger.info("Product %s archived by %s", product.name, actor.role.value)
            return ProductDeleteResponse(
                message="Product archived because it is referenced by existing orders",
                product=self._build_read(session, product),
            )

        images = self.repo.list_images_for_product(session, product.id)
        snapshot = self._to_read(product, images)
        urls = [img.url for img in images]

        self.repo.delete_images(session, images)
        self.repo.delete(session, product)
        logger.info("Product %s deleted by %s", snapshot.name, actor.role.value)

        if storage is not None:
            for url in urls:
                try:
                    storage.delete_public_url(url)
                except Exception:
                    logger.warning("Could not remove stored image %s", url, exc_info=True)

        return ProductDeleteResponse(message="Product deleted", product=snapshot)

    def upload_images(
        self,
        session: Session,
        product_id: uuid.UUID,
        files: Iterable[tuple[str, bytes]],
        storage: ImageStorage,
    ) -> ProductRead:
        """
        Upload images and append them to the gallery.

        Args:
            files: iterable of (original_filename, file_bytes)
        """
        product = self._get(session, product_id)
        next_order = len(self.repo.list_images_for_product(session, product.id))

        refs: list[ProductImageRef] = []
        for original_name, file_bytes in files:
            url, filename = storage.upload(file_bytes, original_name)
            refs.append(ProductImageRef(url=url, filename=filename))

        self.repo.create_images(session, self._image_rows(product.id, refs, next_order))
        return self._build_read(session, product)
