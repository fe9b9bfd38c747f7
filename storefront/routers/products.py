from decimal import Decimal

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlmodel import Session

from storefront.core.auth import Principal, require_staff
from storefront.core.errors import ValidationError
from storefront.core.storage_utils import ImageStorage, get_image_storage
from storefront.database import get_session
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.base import parse_id
from storefront.schemas.product import (
    ProductCreate,
    ProductDeleteResponse,
    ProductPage,
    ProductRead,
    ProductUpdate,
)
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])

repo = ProductRepository()
order_repo = OrderRepository()
service = ProductService(repo, order_repo)


# -------- Public endpoints --------


@router.get("", response_model=ProductPage)
def list_products(
    q: str | None = None,
    category: str | None = None,
    price_min: Decimal | None = Query(default=None, ge=0),
    price_max: Decimal | None = Query(default=None, ge=0),
    sort: str = "newest",
    page: int = Query(default=1, ge=1),
    session: Session = Depends(get_session),
):
    """
    List active products, 10 per page.

    - `q`: word search over name/description/category.
    - `sort`: price:asc | price:desc | newest.
    """
    return service.list_products(
        session,
        q=q,
        category=category,
        price_min=price_min,
        price_max=price_max,
        sort=sort,
        page=page,
    )


@router.get("/{product_id}", response_model=ProductRead)
def get_product(
    product_id: str,
    session: Session = Depends(get_session),
):
    """
    Get a single product by id (archived products included).
    """
    return service.get_product(session, parse_id(product_id, "product"))


# -------- Seller/admin endpoints --------


@router.post(
    "",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff)],
)
def create_product(
    payload: ProductCreate,
    session: Session = Depends(get_session),
):
    return service.create_product(session, payload)


@router.patch(
    "/{product_id}",
    response_model=ProductRead,
    dependencies=[Depends(require_staff)],
)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
):
    """
    Partial update; `images` replaces the whole gallery.
    """
    return service.update_product(session, parse_id(product_id, "product"), payload)


@router.delete("/{product_id}", response_model=ProductDeleteResponse)
def delete_product(
    product_id: str,
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_staff),
    storage: ImageStorage = Depends(get_image_storage),
):
    """
    Delete a product, or archive it if orders reference it.
    """
    return service.delete_product(
        session, parse_id(product_id, "product"), principal, storage
    )


@router.post(
    "/{product_id}/images",
    response_model=ProductRead,
    dependencies=[Depends(require_staff)],
    summary="Upload one or more images for a product",
)
def upload_product_images(
    product_id: str,
    files: list[UploadFile] = File(...),
    session: Session = Depends(get_session),
    storage: ImageStorage = Depends(get_image_storage),
):
    """
    Upload images and append them to the product gallery.
    """
    pid = parse_id(product_id, "product")
    if not files:
        raise ValidationError("No files uploaded")

    payload: list[tuple[str, bytes]] = []
    for f in files:
        payload.append((f.filename or "image", f.file.read()))

    return service.upload_images(session, pid, payload, storage)
