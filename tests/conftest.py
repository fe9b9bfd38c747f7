import os

# Settings are read once at import time; point them at an in-memory DB first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel

from storefront.core.storage_utils import get_image_storage
from storefront.database import engine
from storefront.main import app
from storefront.models.product import Product, ProductImage
from storefront.services.pricing import get_discount_rng

FIXED_DISCOUNT = 10


class FixedRng(random.Random):
    """Always draws the same promotional discount."""

    def randint(self, a, b):
        return FIXED_DISCOUNT


class FakeStorage:
    def __init__(self):
        self.uploaded: list[str] = []
        self.deleted: list[str] = []

    def upload(self, file_bytes: bytes, original_name: str) -> tuple[str, str]:
        filename = f"stored_{original_name}"
        self.uploaded.append(filename)
        return f"https://cdn.test/products/{filename}", filename

    def delete_public_url(self, url: str) -> None:
        self.deleted.append(url)


def make_token(user_id="user-1", role="user", expires_in=timedelta(hours=1), **claims):
    payload = {"exp": datetime.now(timezone.utc) + expires_in, **claims}
    if user_id is not None:
        payload["userId"] = user_id
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


def auth(user_id="user-1", role="user") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


def seed_product(**fields) -> Product:
    images = fields.pop("images", [])
    data = {
        "name": "Widget",
        "description": "",
        "price": Decimal("100.00"),
        "stock": 10,
        "category": "general",
    }
    data.update(fields)
    with Session(engine) as session:
        product = Product(**data)
        session.add(product)
        session.flush()
        for idx, (url, filename) in enumerate(images):
            session.add(
                ProductImage(product_id=product.id, url=url, filename=filename, sort_order=idx)
            )
        session.commit()
        session.refresh(product)
        session.expunge(product)
        return product


def read_product(product_id) -> Product | None:
    with Session(engine) as session:
        product = session.get(Product, product_id)
        if product is not None:
            session.expunge(product)
        return product


@pytest.fixture(autouse=True)
def _reset_db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(storage):
    app.dependency_overrides[get_discount_rng] = lambda: FixedRng()
    app.dependency_overrides[get_image_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session
