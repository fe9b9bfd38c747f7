"""Cart endpoints: add, sync, get, update, remove, clear."""

import uuid
from decimal import Decimal

import pytest
from sqlmodel import Session

from conftest import auth, read_product, seed_product
from storefront.core.errors import InsufficientStock
from storefront.database import engine
from storefront.models.product import PRODUCT_ARCHIVED, Product
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartItemAdd
from storefront.services.cart_service import CartService
from storefront.services.inventory_service import InventoryService

ZERO_CART = {
    "items": [],
    "subtotal": 0,
    "deliveryCharge": 0,
    "discountPercent": 0,
    "discountAmount": 0,
    "totalPayable": 0,
    "warnings": [],
}


def _add(client, product_id, qty, headers=None, **params):
    return client.post(
        "/api/cart/items",
        json={"productId": str(product_id), "qty": qty},
        headers=headers or auth(),
        params=params,
    )


def _sync(client, items, headers=None, **params):
    return client.post(
        "/api/cart/sync",
        json={"items": [{"productId": str(pid), "qty": qty} for pid, qty in items]},
        headers=headers or auth(),
        params=params,
    )


class TestGetCart:
    def test_no_cart_returns_zero_breakdown(self, client):
        res = client.get("/api/cart", headers=auth())
        assert res.status_code == 200
        assert res.json() == ZERO_CART

    def test_breakdown_uses_current_price(self, client, db):
        product = seed_product(price=Decimal("100.00"))
        _add(client, product.id, 2)

        row = db.get(Product, product.id)
        row.price = Decimal("120.00")
        db.add(row)
        db.commit()

        body = client.get("/api/cart", headers=auth()).json()
        assert body["items"][0]["product"]["price"] == 120.0
        assert body["items"][0]["lineTotal"] == 240.0
        assert body["subtotal"] == 240.0

    def test_discount_override_is_stable(self, client):
        product = seed_product(price=Decimal("19.99"))
        _add(client, product.id, 3)

        first = client.get("/api/cart", params={"discount": "25"}, headers=auth()).json()
        second = client.get("/api/cart", params={"discount": "25"}, headers=auth()).json()
        assert first == second
        assert first["discountPercent"] == 25
        # 59.97 * 25% = 14.9925
        assert first["discountAmount"] == 14.99
        assert first["totalPayable"] == 94.98

    def test_invalid_override_falls_back_to_random_discount(self, client):
        product = seed_product(price=Decimal("100.00"))
        _add(client, product.id, 1)

        body = client.get("/api/cart", params={"discount": "150"}, headers=auth()).json()
        assert body["discountPercent"] == 10

    def test_deleted_product_is_skipped_with_warning(self, client, db):
        kept = seed_product(name="Kept")
        gone = seed_product(name="Gone")
        _add(client, kept.id, 1)
        _add(client, gone.id, 1)

        db.delete(db.get(Product, gone.id))
        db.commit()

        body = client.get("/api/cart", headers=auth()).json()
        assert [i["product"]["name"] for i in body["items"]] == ["Kept"]
        assert body["warnings"] == [f"Product {gone.id} not found, skipped"]

    def test_carts_are_per_user(self, client):
        product = seed_product()
        _add(client, product.id, 1, headers=auth("alice"))

        res = client.get("/api/cart", headers=auth("bob"))
        assert res.json() == ZERO_CART


class TestAddItem:
    def test_new_line_returns_201_with_breakdown(self, client):
        product = seed_product(price=Decimal("100.00"), stock=5)
        res = _add(client, product.id, 2)

        assert res.status_code == 201
        body = res.json()
        assert body["reserved"] is False
        cart = body["cart"]
        assert cart["items"][0]["qty"] == 2
        assert cart["subtotal"] == 200.0
        assert cart["deliveryCharge"] == 50.0
        assert cart["discountPercent"] == 10
        assert cart["discountAmount"] == 20.0
        assert cart["totalPayable"] == 230.0

    def test_existing_line_is_incremented_with_200(self, client):
        product = seed_product(stock=5)
        _add(client, product.id, 2)
        res = _add(client, product.id, 1)

        assert res.status_code == 200
        assert res.json()["cart"]["items"][0]["qty"] == 3

    def test_second_product_is_a_new_line(self, client):
        a = seed_product(name="A")
        b = seed_product(name="B")
        _add(client, a.id, 1)
        res = _add(client, b.id, 1)

        assert res.status_code == 201
        assert len(res.json()["cart"]["items"]) == 2

    def test_not_enough_stock(self, client):
        product = seed_product(stock=2)
        res = _add(client, product.id, 3)
        assert res.status_code == 400
        assert res.json() == {"message": "Not enough stock"}

    def test_increment_beyond_stock(self, client):
        product = seed_product(stock=3)
        _add(client, product.id, 2)
        res = _add(client, product.id, 2)

        assert res.status_code == 400
        assert res.json() == {"message": "Exceeds available stock"}
        body = client.get("/api/cart", headers=auth()).json()
        assert body["items"][0]["qty"] == 2

    def test_unknown_product(self, client):
        res = _add(client, uuid.uuid4(), 1)
        assert res.status_code == 404
        assert res.json() == {"message": "Product not found"}

    def test_malformed_product_id(self, client):
        res = _add(client, "not-a-uuid", 1)
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid product id"

    def test_quantity_must_be_positive(self, client):
        product = seed_product()
        res = _add(client, product.id, 0)
        assert res.status_code == 400

    def test_archived_product_rejected(self, client):
        product = seed_product(status=PRODUCT_ARCHIVED)
        res = _add(client, product.id, 1)
        assert res.status_code == 400
        assert res.json() == {"message": "Product is archived"}

    def test_reserve_takes_stock(self, client):
        product = seed_product(stock=5)
        res = _add(client, product.id, 2, reserve="true")

        assert res.status_code == 201
        assert res.json()["reserved"] is True
        assert read_product(product.id).stock == 3

    def test_reserve_on_increment_takes_only_added_quantity(self, client):
        product = seed_product(stock=5)
        _add(client, product.id, 1, reserve="true")
        _add(client, product.id, 2, reserve="true")
        assert read_product(product.id).stock == 2

    def test_without_reserve_stock_is_untouched(self, client):
        product = seed_product(stock=5)
        _add(client, product.id, 2)
        assert read_product(product.id).stock == 5

    def test_units_held_by_the_line_count_as_available(self, client):
        product = seed_product(stock=5)
        _add(client, product.id, 3, reserve="true")
        res = _add(client, product.id, 2, reserve="true")

        assert res.status_code == 200
        assert res.json()["cart"]["items"][0]["qty"] == 5
        assert read_product(product.id).stock == 0

    def test_held_units_do_not_stretch_the_limit(self, client):
        product = seed_product(stock=5)
        _add(client, product.id, 3, reserve="true")
        res = _add(client, product.id, 3, reserve="true")

        assert res.status_code == 400
        assert res.json() == {"message": "Exceeds available stock"}
        assert read_product(product.id).stock == 2


class TestSync:
    def test_creates_cart_from_items(self, client):
        a = seed_product(name="A", stock=5)
        b = seed_product(name="B", stock=5)
        res = _sync(client, [(a.id, 1), (b.id, 2)])

        assert res.status_code == 200
        body = res.json()
        assert body["merged"] is True
        assert body["warnings"] == []
        assert body["reserved"] is False
        assert {i["product"]["name"]: i["qty"] for i in body["cart"]["items"]} == {
            "A": 1,
            "B": 2,
        }

    def test_merges_with_existing_lines(self, client):
        product = seed_product(stock=10)
        _add(client, product.id, 2)
        body = _sync(client, [(product.id, 3)]).json()
        assert body["cart"]["items"][0]["qty"] == 5

    def test_caps_at_stock_with_warning(self, client):
        product = seed_product(name="Mug", stock=4)
        _add(client, product.id, 3)
        body = _sync(client, [(product.id, 5)]).json()

        assert body["cart"]["items"][0]["qty"] == 4
        assert body["warnings"] == ["Product Mug quantity capped at 4"]

    def test_zero_stock_drops_line(self, client):
        product = seed_product(name="Gone", stock=0)
        body = _sync(client, [(product.id, 2)]).json()

        assert body["cart"]["items"] == []
        assert body["warnings"] == ["Product Gone quantity capped at 0"]

    def test_missing_product_warns_and_continues(self, client):
        product = seed_product(stock=5)
        ghost = uuid.uuid4()
        body = _sync(client, [(ghost, 1), (product.id, 1)]).json()

        assert body["warnings"] == [f"Product {ghost} not found"]
        assert len(body["cart"]["items"]) == 1

    def test_archived_product_warns_and_is_skipped(self, client):
        product = seed_product(name="Old", status=PRODUCT_ARCHIVED)
        body = _sync(client, [(product.id, 1)]).json()

        assert body["cart"]["items"] == []
        assert body["warnings"] == ["Product Old is no longer available"]

    def test_reserve_takes_only_delta(self, client):
        product = seed_product(stock=10)
        _add(client, product.id, 2)
        body = _sync(client, [(product.id, 3)], reserve="true").json()

        assert body["reserved"] is True
        assert read_product(product.id).stock == 7

    def test_reserve_with_cap(self, client):
        product = seed_product(stock=4)
        _sync(client, [(product.id, 9)], reserve="true")
        assert read_product(product.id).stock == 0

    def test_reserved_line_keeps_its_units(self, client):
        product = seed_product(stock=5)
        _add(client, product.id, 3, reserve="true")
        body = _sync(client, [(product.id, 1)], reserve="true").json()

        assert body["warnings"] == []
        assert body["cart"]["items"][0]["qty"] == 4
        assert read_product(product.id).stock == 1

    def test_cap_counts_units_already_held(self, client, db):
        product = seed_product(name="Lamp", stock=5)
        _add(client, product.id, 3, reserve="true")
        row = db.get(Product, product.id)
        row.stock = 0
        db.add(row)
        db.commit()

        body = _sync(client, [(product.id, 2)], reserve="true").json()

        assert body["warnings"] == ["Product Lamp quantity capped at 3"]
        assert body["cart"]["items"][0]["qty"] == 3
        assert read_product(product.id).stock == 0

    def test_malformed_id_rejected(self, client):
        res = _sync(client, [("bad", 1)])
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid product id"

    def test_items_must_be_a_list(self, client):
        res = client.post("/api/cart/sync", json={"items": "nope"}, headers=auth())
        assert res.status_code == 400


class TestUpdateQuantity:
    def test_sets_quantity_verbatim(self, client):
        product = seed_product(stock=2)
        _add(client, product.id, 1)

        # no stock check on update
        res = client.patch(
            f"/api/cart/items/{product.id}", json={"quantity": 7}, headers=auth()
        )
        assert res.status_code == 200
        assert res.json()["items"][0]["qty"] == 7

    def test_zero_removes_line(self, client):
        product = seed_product()
        _add(client, product.id, 1)

        res = client.patch(
            f"/api/cart/items/{product.id}", json={"quantity": 0}, headers=auth()
        )
        assert res.status_code == 200
        assert res.json()["items"] == []

    def test_no_cart(self, client):
        res = client.patch(
            f"/api/cart/items/{uuid.uuid4()}", json={"quantity": 1}, headers=auth()
        )
        assert res.status_code == 404
        assert res.json() == {"message": "Cart not found"}

    def test_item_not_in_cart(self, client):
        product = seed_product()
        _add(client, product.id, 1)

        res = client.patch(
            f"/api/cart/items/{uuid.uuid4()}", json={"quantity": 1}, headers=auth()
        )
        assert res.status_code == 404
        assert res.json() == {"message": "Item not found in cart"}

    def test_malformed_id(self, client):
        res = client.patch("/api/cart/items/xyz", json={"quantity": 1}, headers=auth())
        assert res.status_code == 400
        assert res.json() == {"message": "Invalid product id"}


class TestRemoveItem:
    def test_removes_line(self, client):
        a = seed_product(name="A")
        b = seed_product(name="B")
        _add(client, a.id, 1)
        _add(client, b.id, 1)

        res = client.delete(f"/api/cart/items/{a.id}", headers=auth())
        assert res.status_code == 200
        assert [i["product"]["name"] for i in res.json()["items"]] == ["B"]

    def test_no_cart_vs_missing_item(self, client):
        pid = uuid.uuid4()
        res = client.delete(f"/api/cart/items/{pid}", headers=auth())
        assert res.json() == {"message": "Cart not found"}

        product = seed_product()
        _add(client, product.id, 1)
        res = client.delete(f"/api/cart/items/{pid}", headers=auth())
        assert res.status_code == 404
        assert res.json() == {"message": "Item not found in cart"}

    def test_malformed_id(self, client):
        res = client.delete("/api/cart/items/123", headers=auth())
        assert res.status_code == 400


class TestClearCart:
    def test_clears_all_lines(self, client):
        product = seed_product()
        _add(client, product.id, 2)

        res = client.delete("/api/cart", headers=auth())
        assert res.status_code == 200
        assert res.json() == ZERO_CART
        assert client.get("/api/cart", headers=auth()).json() == ZERO_CART

    def test_no_cart(self, client):
        res = client.delete("/api/cart", headers=auth())
        assert res.status_code == 404
        assert res.json() == {"message": "Cart not found"}


class TestHeldStockIsReleased:
    def _reserved_cart(self, client, stock=5, qty=3):
        product = seed_product(stock=stock)
        _add(client, product.id, qty, reserve="true")
        assert read_product(product.id).stock == stock - qty
        return product

    def test_lowering_quantity_returns_the_excess(self, client):
        product = self._reserved_cart(client)
        client.patch(f"/api/cart/items/{product.id}", json={"quantity": 1}, headers=auth())
        assert read_product(product.id).stock == 4

    def test_raising_quantity_takes_nothing(self, client):
        product = self._reserved_cart(client)
        client.patch(f"/api/cart/items/{product.id}", json={"quantity": 7}, headers=auth())
        assert read_product(product.id).stock == 2

    def test_zero_quantity_returns_everything(self, client):
        product = self._reserved_cart(client)
        client.patch(f"/api/cart/items/{product.id}", json={"quantity": 0}, headers=auth())
        assert read_product(product.id).stock == 5

    def test_remove_returns_everything(self, client):
        product = self._reserved_cart(client)
        res = client.delete(f"/api/cart/items/{product.id}", headers=auth())
        assert res.status_code == 200
        assert read_product(product.id).stock == 5

    def test_clear_returns_everything(self, client):
        a = self._reserved_cart(client)
        b = seed_product(stock=4)
        _add(client, b.id, 2)

        assert client.delete("/api/cart", headers=auth()).status_code == 200
        assert read_product(a.id).stock == 5
        assert read_product(b.id).stock == 4

    def test_hold_on_deleted_product_is_dropped(self, client, db):
        product = self._reserved_cart(client)
        db.delete(db.get(Product, product.id))
        db.commit()

        res = client.delete(f"/api/cart/items/{product.id}", headers=auth())
        assert res.status_code == 200
        assert res.json()["items"] == []


class FailingSecondRelease(InventoryService):
    def __init__(self, product_repo):
        super().__init__(product_repo)
        self.calls = 0

    def release(self, session, product_id, qty):
        self.calls += 1
        if self.calls > 1:
            raise RuntimeError("release failed")
        super().release(session, product_id, qty)


class TestFailedMutationRollsBack:
    def test_clear_keeps_lines_and_stock(self, client, db):
        a = seed_product(name="A", stock=5)
        b = seed_product(name="B", stock=5)
        _add(client, a.id, 3, reserve="true")
        _add(client, b.id, 2, reserve="true")
        products = ProductRepository()
        service = CartService(CartRepository(), products, FailingSecondRelease(products))

        with pytest.raises(RuntimeError):
            service.clear(db, "user-1")

        assert read_product(a.id).stock == 2
        assert read_product(b.id).stock == 3
        assert len(client.get("/api/cart", headers=auth()).json()["items"]) == 2


class TestConcurrentAdds:
    """
    Two adds racing on the same line: the later save wins and one
    increment is lost, but every reservation goes through the conditional
    stock update, so stock is never oversold.
    """

    def _service(self):
        products = ProductRepository()
        return CartService(CartRepository(), products, InventoryService(products))

    def _stale_line(self, session, service, product_id):
        cart = service.cart_repo.get_for_user(session, "user-1")
        return service.cart_repo.get_line(session, cart.id, product_id)

    def test_last_save_wins(self, client):
        product = seed_product(stock=10)
        _add(client, product.id, 1, reserve="true")
        service = self._service()
        payload = CartItemAdd(product_id=product.id, qty=1)

        with Session(engine) as first, Session(engine) as second:
            assert self._stale_line(second, service, product.id).quantity == 1

            service.add_item(first, "user-1", payload, reserve=True)
            service.add_item(second, "user-1", payload, reserve=True)

        cart = client.get("/api/cart", headers=auth()).json()
        assert cart["items"][0]["qty"] == 2
        assert read_product(product.id).stock == 7

    def test_stock_never_goes_negative(self, client):
        product = seed_product(stock=2)
        _add(client, product.id, 1, reserve="true")
        service = self._service()
        payload = CartItemAdd(product_id=product.id, qty=1)

        with Session(engine) as first, Session(engine) as second:
            self._stale_line(second, service, product.id)
            assert second.get(Product, product.id).stock == 1

            service.add_item(first, "user-1", payload, reserve=True)
            with pytest.raises(InsufficientStock):
                service.add_item(second, "user-1", payload, reserve=True)

        assert read_product(product.id).stock == 0
        cart = client.get("/api/cart", headers=auth()).json()
        assert cart["items"][0]["qty"] == 2
