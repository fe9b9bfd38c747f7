"""
Cart/order pricing.

Pure functions over already-loaded product data: callers resolve products
first and pass a lookup, so nothing in here touches the database.

Rounding is half-away-from-zero to cents and happens at every step
(line total, subtotal, discount amount, total), not only at the end.
"""

import random
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Promotional discount drawn when no valid override is supplied
RANDOM_DISCOUNT_MIN = 5
RANDOM_DISCOUNT_MAX = 15


def round2(value) -> Decimal:
    """Round to 2 decimal places, ties away from zero (2.345 -> 2.35)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ProductSnapshot:
    """The slice of a product that pricing needs."""

    id: uuid.UUID
    name: str
    price: Decimal


@dataclass(frozen=True)
class PricedLine:
    product: ProductSnapshot
    qty: int
    line_total: Decimal


@dataclass
class PricingBreakdown:
    items: list[PricedLine] = field(default_factory=list)
    subtotal: Decimal = ZERO
    delivery_charge: Decimal = ZERO
    discount_percent: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_payable: Decimal = ZERO
    warnings: list[str] = field(default_factory=list)


def empty_breakdown(warnings: list[str] | None = None) -> PricingBreakdown:
    return PricingBreakdown(warnings=list(warnings or []))


def parse_discount_override(raw) -> Decimal | None:
    """
    Return the override as a Decimal if it is a number within [0, 100],
    otherwise None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value < 0 or value > 100:
        return None
    return value


def resolve_discount_percent(override, rng: random.Random) -> Decimal:
    """
    A valid override is used verbatim; anything else draws a random
    whole percentage in [RANDOM_DISCOUNT_MIN, RANDOM_DISCOUNT_MAX].
    """
    parsed = parse_discount_override(override)
    if parsed is not None:
        return parsed
    return Decimal(rng.randint(RANDOM_DISCOUNT_MIN, RANDOM_DISCOUNT_MAX))


def compute_breakdown(
    lines: Iterable[tuple[uuid.UUID, int]],
    lookup: Callable[[uuid.UUID], ProductSnapshot | None],
    *,
    delivery_charge: Decimal,
    free_delivery_threshold: Decimal,
    discount_override=None,
    rng: random.Random | None = None,
) -> PricingBreakdown:
    """
    Price `(product_id, qty)` pairs.

    Lines whose product cannot be resolved are skipped and reported in
    `warnings` rather than failing the whole computation. When no line
    can be priced the result is the all-zero breakdown.
    """
    items: list[PricedLine] = []
    warnings: list[str] = []

    for product_id, qty in lines:
        product = lookup(product_id)
        if product is None:
            warnings.append(f"Product {product_id} not found, skipped")
            continue
        items.append(
            PricedLine(
                product=product,
                qty=qty,
                line_total=round2(product.price * qty),
            )
        )

    if not items:
        return empty_breakdown(warnings)

    subtotal = round2(sum((item.line_total for item in items), ZERO))
    delivery = ZERO if subtotal >= free_delivery_threshold else round2(delivery_charge)

    discount_percent = resolve_discount_percent(discount_override, rng or random.Random())
    discount_amount = round2(subtotal * discount_percent / 100)

    total_payable = round2(max(ZERO, subtotal + delivery - discount_amount))

    return PricingBreakdown(
        items=items,
        subtotal=subtotal,
        delivery_charge=delivery,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        total_payable=total_payable,
        warnings=warnings,
    )


def snapshot_of(product) -> ProductSnapshot:
    """Build a ProductSnapshot from a Product row."""
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        price=round2(product.price),
    )


_discount_rng = random.Random()


def get_discount_rng() -> random.Random:
    """FastAPI dependency for the promotional-discount RNG; tests pin it."""
    return _discount_rng
