"""Pricing engine: rounding, delivery threshold, discount resolution."""

import random
import uuid
from decimal import Decimal

import pytest

from storefront.services.pricing import (
    ProductSnapshot,
    compute_breakdown,
    empty_breakdown,
    parse_discount_override,
    resolve_discount_percent,
    round2,
)

DELIVERY = Decimal("50")
THRESHOLD = Decimal("1000")


def _snapshot(price: str, name="Item") -> ProductSnapshot:
    return ProductSnapshot(id=uuid.uuid4(), name=name, price=Decimal(price))


def _price(products, quantities, override=None, rng=None):
    catalog = {p.id: p for p in products}
    lines = [(p.id, qty) for p, qty in zip(products, quantities)]
    return compute_breakdown(
        lines,
        catalog.get,
        delivery_charge=DELIVERY,
        free_delivery_threshold=THRESHOLD,
        discount_override=override,
        rng=rng or random.Random(1),
    )


class TestRounding:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2.345", "2.35"),
            ("2.344", "2.34"),
            ("0.005", "0.01"),
            ("-2.345", "-2.35"),
            (10, "10.00"),
        ],
    )
    def test_half_away_from_zero(self, value, expected):
        assert round2(Decimal(str(value))) == Decimal(expected)

    def test_line_total_rounded_per_line(self):
        item = _snapshot("0.335")
        breakdown = _price([item], [3], override=0)
        # price is used as given; 1.005 rounds up to 1.01
        assert breakdown.items[0].line_total == Decimal("1.01")

    def test_subtotal_is_sum_of_rounded_lines(self):
        a, b = _snapshot("1.115"), _snapshot("2.225")
        breakdown = _price([a, b], [1, 1], override=0)
        assert breakdown.subtotal == round2(a.price) + round2(b.price)


class TestDelivery:
    def test_charged_below_threshold(self):
        breakdown = _price([_snapshot("999.99")], [1], override=0)
        assert breakdown.delivery_charge == Decimal("50.00")
        assert breakdown.total_payable == Decimal("1049.99")

    def test_free_exactly_at_threshold(self):
        breakdown = _price([_snapshot("1000.00")], [1], override=0)
        assert breakdown.delivery_charge == Decimal("0.00")
        assert breakdown.total_payable == Decimal("1000.00")

    def test_free_above_threshold(self):
        breakdown = _price([_snapshot("600")], [2], override=0)
        assert breakdown.delivery_charge == Decimal("0.00")


class TestDiscount:
    @pytest.mark.parametrize("raw", [0, "0", 15.5, "100", Decimal("42.5")])
    def test_valid_override_used_verbatim(self, raw):
        assert resolve_discount_percent(raw, random.Random(0)) == Decimal(str(raw))

    @pytest.mark.parametrize("raw", [None, "abc", "-1", "100.01", "NaN", "inf", True, ""])
    def test_invalid_override_is_ignored(self, raw):
        assert parse_discount_override(raw) is None

    def test_random_discount_within_bounds(self):
        rng = random.Random(1234)
        draws = {resolve_discount_percent(None, rng) for _ in range(200)}
        assert min(draws) >= 5
        assert max(draws) <= 15
        assert all(d == d.to_integral_value() for d in draws)

    def test_discount_amount_rounded(self):
        breakdown = _price([_snapshot("33.33")], [1], override="12.5")
        # 33.33 * 12.5% = 4.16625
        assert breakdown.discount_amount == Decimal("4.17")
        assert breakdown.total_payable == Decimal("79.16")

    def test_total_never_negative(self):
        breakdown = _price([_snapshot("2000")], [1], override=100)
        assert breakdown.discount_amount == Decimal("2000.00")
        assert breakdown.total_payable == Decimal("0.00")

    def test_same_override_same_result(self):
        item = _snapshot("123.45")
        first = _price([item], [3], override=7, rng=random.Random(1))
        second = _price([item], [3], override=7, rng=random.Random(99))
        assert first == second


class TestMissingProducts:
    def test_missing_product_skipped_with_warning(self):
        present = _snapshot("10")
        ghost = uuid.uuid4()
        breakdown = compute_breakdown(
            [(present.id, 1), (ghost, 2)],
            {present.id: present}.get,
            delivery_charge=DELIVERY,
            free_delivery_threshold=THRESHOLD,
            discount_override=0,
        )
        assert [i.product.id for i in breakdown.items] == [present.id]
        assert breakdown.warnings == [f"Product {ghost} not found, skipped"]

    def test_all_missing_gives_zero_breakdown(self):
        ghost = uuid.uuid4()
        breakdown = compute_breakdown(
            [(ghost, 1)],
            lambda _: None,
            delivery_charge=DELIVERY,
            free_delivery_threshold=THRESHOLD,
        )
        assert breakdown.items == []
        assert breakdown.subtotal == Decimal("0")
        assert breakdown.delivery_charge == Decimal("0")
        assert breakdown.discount_percent == Decimal("0")
        assert breakdown.total_payable == Decimal("0")
        assert len(breakdown.warnings) == 1

    def test_empty_breakdown(self):
        breakdown = empty_breakdown()
        assert breakdown.items == []
        assert breakdown.warnings == []
        assert breakdown.total_payable == Decimal("0")
