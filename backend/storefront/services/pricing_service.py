# Overview: Server-side cart pricing, discount eligibility and delivery fee resolution.

"""
Pricing & Discount Resolver

Client-submitted prices and delivery fees are never trusted. The cart is
priced from a fresh catalog snapshot:

    subtotal = sum(quantity * effective unit price)
    total    = max(0, subtotal - discount + delivery fee)

compute_quote() is pure: it takes snapshots and plain values and either
returns a Quote or raises an OrderError. quote_cart() does the reads
(catalog, shipping method/city, discount code) and then calls it. Nothing in
this module writes to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from ..errors import OrderError, ValidationError
from ..extensions import db
from ..models import City, DiscountCode, ShippingMethod
from ..models.promotions import DISCOUNT_FIXED, DISCOUNT_PERCENT
from storefront.time_utils import as_utc_naive, utcnow
from .catalog_service import ProductSnapshot, load_snapshots


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    color: str | None = None
    size: str | None = None


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    variant_id: int | None = None
    color: str | None = None
    size: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class DiscountTerms:
    """Plain copy of a DiscountCode row, as read at checkout time."""
    id: int
    code: str
    discount_type: str
    value: int
    enabled: bool = True
    min_order_amount_cents: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    usage_limit: int | None = None
    used_count: int = 0

    @classmethod
    def from_model(cls, row: DiscountCode) -> "DiscountTerms":
        return cls(
            id=row.id,
            code=row.code,
            discount_type=row.discount_type,
            value=row.value,
            enabled=bool(row.enabled),
            min_order_amount_cents=row.min_order_amount_cents,
            valid_from=row.valid_from,
            valid_until=row.valid_until,
            usage_limit=row.usage_limit,
            used_count=row.used_count or 0,
        )


@dataclass(frozen=True)
class DeliveryQuote:
    fee_cents: int
    shipping_method_id: int | None = None
    city_id: int | None = None
    city_name: str | None = None


@dataclass(frozen=True)
class Quote:
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    delivery_fee_cents: int
    discount_amount_cents: int
    total_cents: int
    discount: DiscountTerms | None = None

    @property
    def discount_code(self) -> str | None:
        return self.discount.code if self.discount else None


def normalize_discount_code(code: str | None) -> str | None:
    if code is None:
        return None
    code = str(code).strip().upper()
    return code or None


# =============================================================================
# PURE PRICING
# =============================================================================

def _discount_error(message: str, code: str, reason: str, discount: DiscountTerms, **extra) -> OrderError:
    details = {"reason": reason, "discount_code": discount.code}
    details.update(extra)
    return OrderError(message, code, details=details)


def discount_amount(discount: DiscountTerms, subtotal_cents: int, now: datetime | None = None) -> int:
    """
    Check eligibility and return the discount in cents.

    The amount never exceeds the subtotal. Raises OrderError naming the
    specific reason when the code cannot be applied.
    """
    now = as_utc_naive(now) if now is not None else utcnow()

    if not discount.enabled:
        raise _discount_error("Invalid discount code", "INVALID_DISCOUNT_CODE", "invalid", discount)

    valid_from = as_utc_naive(discount.valid_from)
    valid_until = as_utc_naive(discount.valid_until)
    if valid_from is not None and now < valid_from:
        raise _discount_error(
            "Discount code is not valid yet", "DISCOUNT_CODE_NOT_YET_VALID", "not_yet_valid", discount
        )
    if valid_until is not None and now > valid_until:
        raise _discount_error("Discount code has expired", "DISCOUNT_CODE_EXPIRED", "expired", discount)

    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        raise _discount_error(
            "Discount code has reached its usage limit",
            "DISCOUNT_CODE_EXPIRED",
            "usage_limit_reached",
            discount,
        )

    if discount.min_order_amount_cents is not None and subtotal_cents < discount.min_order_amount_cents:
        raise _discount_error(
            "Order subtotal is below the discount minimum",
            "DISCOUNT_MIN_NOT_MET",
            "min_not_met",
            discount,
            min_order_amount_cents=discount.min_order_amount_cents,
            subtotal_cents=subtotal_cents,
        )

    value = max(discount.value, 0)
    if discount.discount_type == DISCOUNT_PERCENT:
        # Nearest cent, half-up
        amount = (subtotal_cents * value + 50) // 100
    elif discount.discount_type == DISCOUNT_FIXED:
        amount = value
    else:
        raise _discount_error("Invalid discount code", "INVALID_DISCOUNT_CODE", "invalid", discount)

    return min(amount, subtotal_cents)


def _price_line(line: CartLine, product: ProductSnapshot) -> PricedLine:
    variant = None
    if product.has_variants:
        if not (line.color or line.size):
            raise OrderError(
                f"Choose a color and size for {product.name}",
                "VARIANT_REQUIRED",
                details={"product_id": product.id, "product_name": product.name},
            )
        variant = product.variant(line.color, line.size)
        if variant is None:
            raise OrderError(
                f"{product.name} is not available in the selected color/size",
                "INVALID_VARIANT",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "color": line.color,
                    "size": line.size,
                },
            )

    return PricedLine(
        product_id=product.id,
        product_name=product.name,
        quantity=line.quantity,
        unit_price_cents=product.effective_price_cents,
        variant_id=variant.id if variant else None,
        color=variant.color if variant else line.color,
        size=variant.size if variant else line.size,
    )


def _check_availability(priced: list[PricedLine], snapshots: dict[int, ProductSnapshot]) -> None:
    requested: dict[int, int] = {}
    requested_by_variant: dict[int, int] = {}
    for line in priced:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        if line.variant_id is not None:
            requested_by_variant[line.variant_id] = (
                requested_by_variant.get(line.variant_id, 0) + line.quantity
            )

    for product_id, quantity in requested.items():
        product = snapshots[product_id]
        available = product.available_quantity
        if quantity > available:
            raise OrderError(
                f"{product.name} is out of stock (requested {quantity}, available {available})",
                "OUT_OF_STOCK",
                details={
                    "product_id": product_id,
                    "product_name": product.name,
                    "requested": quantity,
                    "available": available,
                },
            )

        for variant in product.variants:
            wanted = requested_by_variant.get(variant.id, 0)
            if wanted > variant.available_quantity:
                raise OrderError(
                    f"{product.name} ({variant.color} / {variant.size}) is out of stock "
                    f"(requested {wanted}, available {variant.available_quantity})",
                    "OUT_OF_STOCK",
                    details={
                        "product_id": product_id,
                        "product_name": product.name,
                        "color": variant.color,
                        "size": variant.size,
                        "requested": wanted,
                        "available": variant.available_quantity,
                    },
                )


def compute_quote(
    lines: list[CartLine],
    snapshots: dict[int, ProductSnapshot],
    *,
    delivery_fee_cents: int = 0,
    discount: DiscountTerms | None = None,
    now: datetime | None = None,
) -> Quote:
    """Price a cart against catalog snapshots. Pure; raises OrderError on any inconsistency."""
    if not lines:
        raise ValidationError("Order must contain at least one item")

    for line in lines:
        if line.quantity < 1:
            raise OrderError(
                "Quantity must be at least 1",
                "INVALID_QUANTITY",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )

    missing = sorted({line.product_id for line in lines} - set(snapshots))
    if missing:
        raise OrderError(
            "One or more products are no longer available",
            "PRODUCT_UNAVAILABLE",
            details={"product_ids": missing},
        )

    priced = [_price_line(line, snapshots[line.product_id]) for line in lines]
    _check_availability(priced, snapshots)

    subtotal = sum(line.line_total_cents for line in priced)
    fee = max(delivery_fee_cents or 0, 0)

    quote = Quote(
        lines=tuple(priced),
        subtotal_cents=subtotal,
        delivery_fee_cents=fee,
        discount_amount_cents=0,
        total_cents=subtotal + fee,
        discount=None,
    )
    return apply_discount(quote, discount, now) if discount else quote


def apply_discount(quote: Quote, discount: DiscountTerms, now: datetime | None = None) -> Quote:
    """Return a copy of an undiscounted quote with the discount applied."""
    amount = discount_amount(discount, quote.subtotal_cents, now)
    return replace(
        quote,
        discount_amount_cents=amount,
        total_cents=max(quote.subtotal_cents - amount + quote.delivery_fee_cents, 0),
        discount=discount,
    )


# =============================================================================
# READERS
# =============================================================================

def resolve_delivery_fee(shipping_method_id: int | None, city_id: int | None) -> DeliveryQuote:
    """
    Delivery fee, in order of precedence:
    1. enabled shipping method (its per-city price when the city has one)
    2. the city's configured delivery fee
    3. zero
    """
    city = db.session.get(City, city_id) if city_id is not None else None

    if shipping_method_id is not None:
        method = (
            db.session.query(ShippingMethod)
            .filter_by(id=shipping_method_id, enabled=True)
            .first()
        )
        if method is None:
            raise OrderError(
                "Shipping method is not available",
                "INVALID_SHIPPING_METHOD",
                details={"shipping_method_id": shipping_method_id},
            )
        fee = method.price_for_city(city.id if city else None)
    elif city is not None:
        fee = city.delivery_fee_cents
    else:
        fee = 0

    return DeliveryQuote(
        fee_cents=max(fee or 0, 0),
        shipping_method_id=shipping_method_id,
        city_id=city.id if city else None,
        city_name=city.name if city else None,
    )


def find_discount_code(code: str) -> DiscountTerms:
    normalized = normalize_discount_code(code)
    row = None
    if normalized:
        row = (
            db.session.query(DiscountCode)
            .filter(db.func.upper(DiscountCode.code) == normalized)
            .first()
        )
    if row is None:
        raise OrderError(
            "Invalid discount code",
            "INVALID_DISCOUNT_CODE",
            details={"reason": "invalid", "discount_code": normalized},
        )
    return DiscountTerms.from_model(row)


def quote_cart(
    lines: list[CartLine],
    *,
    discount_code: str | None = None,
    shipping_method_id: int | None = None,
    city_id: int | None = None,
    now: datetime | None = None,
) -> tuple[Quote, DeliveryQuote]:
    """Read live catalog/shipping/discount state and price the cart."""
    snapshots = load_snapshots(line.product_id for line in lines)
    delivery = resolve_delivery_fee(shipping_method_id, city_id)
    quote = compute_quote(lines, snapshots, delivery_fee_cents=delivery.fee_cents, now=now)

    # Catalog problems are reported before discount problems.
    if normalize_discount_code(discount_code):
        quote = apply_discount(quote, find_discount_code(discount_code), now)
    return quote, delivery
