# Overview: Order intake (checkout) and order reads.

"""
Order Intake Validator

Turns a raw checkout payload into a persisted Order + Payment:

1. parse + shape-check the payload (no reads)
2. resolve identity: authenticated user, or guest name + valid email
3. check the payment method is enabled in settings
4. price the cart from live catalog state (pricing_service)
5. in ONE transaction: claim a discount use (conditional increment),
   insert the order, its items and its UNPAID payment
6. after commit, queue notification emails (best-effort)

Either everything in step 5 commits or nothing does; there is no partial
order. Stored prices and totals are internally consistent:
    total_cents == sum(item.line_total_cents) - discount_amount_cents + delivery_fee_cents
(floored at zero).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ForbiddenError, NotFoundError, OrderError
from ..extensions import db
from ..models import City, DiscountCode, Order, OrderItem, Payment, User
from ..models.orders import ORDER_PENDING, ORDER_STATUSES, PAYMENT_METHODS, PAYMENT_UNPAID
from ..validation import CheckoutRequest, StructuredAddress, is_valid_email, parse_checkout
from .concurrency import begin_write, run_with_retry
from .idempotency_service import build_record, find_response
from .notification_service import notify_order_placed
from .pricing_service import DiscountTerms, Quote, quote_cart
from .settings_service import ensure_payment_method_available


@dataclass(frozen=True)
class CustomerIdentity:
    user_id: int | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None


def resolve_identity(request: CheckoutRequest, actor: User | None) -> CustomerIdentity:
    if actor is not None:
        return CustomerIdentity(user_id=actor.id)

    if not request.guest_name:
        raise OrderError("Name is required for guest checkout", "GUEST_NAME_REQUIRED")
    if not is_valid_email(request.guest_email):
        raise OrderError("A valid email is required for guest checkout", "GUEST_EMAIL_REQUIRED")

    return CustomerIdentity(
        guest_name=request.guest_name,
        guest_email=request.guest_email,
        guest_phone=request.guest_phone,
    )


def _resolve_city_id(request: CheckoutRequest) -> int | None:
    """Explicit city_id wins; otherwise match the structured address city by name."""
    if request.city_id is not None:
        return request.city_id
    address = request.shipping_address
    if isinstance(address, StructuredAddress):
        city = (
            db.session.query(City)
            .filter(func.lower(City.name) == address.city.lower())
            .first()
        )
        return city.id if city else None
    return None


def _claim_discount_use(discount: DiscountTerms) -> None:
    """Increment used_count only while under the usage limit."""
    stmt = update(DiscountCode).where(DiscountCode.id == discount.id)
    if discount.usage_limit is not None:
        stmt = stmt.where(DiscountCode.used_count < DiscountCode.usage_limit)
    result = db.session.execute(
        stmt.values(used_count=DiscountCode.used_count + 1),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount != 1:
        raise OrderError(
            "Discount code has reached its usage limit",
            "DISCOUNT_CODE_EXPIRED",
            details={"reason": "usage_limit_reached", "discount_code": discount.code},
        )


def _build_order(
    request: CheckoutRequest,
    identity: CustomerIdentity,
    quote: Quote,
    city_id: int | None,
    city_name: str | None,
) -> Order:
    address = request.shipping_address
    if isinstance(address, StructuredAddress) and city_name:
        address = address.with_city(city_name)
    if city_name is None and isinstance(address, StructuredAddress):
        city_name = address.city

    order = Order(
        status=ORDER_PENDING,
        subtotal_cents=quote.subtotal_cents,
        delivery_fee_cents=quote.delivery_fee_cents,
        discount_code=quote.discount_code,
        discount_amount_cents=quote.discount_amount_cents,
        total_cents=quote.total_cents,
        payment_method=request.payment_method,
        user_id=identity.user_id,
        guest_name=identity.guest_name,
        guest_email=identity.guest_email,
        guest_phone=identity.guest_phone,
        shipping_address=address.to_dict() if address else None,
        city_id=city_id,
        city_name=city_name,
        shipping_method_id=request.shipping_method_id,
        special_instructions=request.special_instructions,
    )
    order.items = [
        OrderItem(
            position=i,
            product_id=line.product_id,
            product_name=line.product_name,
            variant_id=line.variant_id,
            color=line.color,
            size=line.size,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
        )
        for i, line in enumerate(quote.lines)
    ]
    order.payment = Payment(method=request.payment_method, status=PAYMENT_UNPAID)
    return order


def create_order(
    payload: dict,
    actor: User | None = None,
    *,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Order:
    """
    Validate a checkout payload and persist Order + Payment.

    Raises OrderError (with a stable code) on any validation, availability or
    discount failure; nothing is written in that case.
    """
    request = parse_checkout(payload)
    identity = resolve_identity(request, actor)
    ensure_payment_method_available(request.payment_method)

    def _op():
        begin_write()
        city_id = _resolve_city_id(request)
        quote, delivery = quote_cart(
            request.lines,
            discount_code=request.discount_code,
            shipping_method_id=request.shipping_method_id,
            city_id=city_id,
            now=now,
        )
        if quote.discount is not None:
            _claim_discount_use(quote.discount)

        order = _build_order(request, identity, quote, delivery.city_id, delivery.city_name)
        db.session.add(order)
        db.session.flush()

        if idempotency_key:
            db.session.add(build_record(
                idempotency_key,
                order.id,
                201,
                {"order": order.to_dict()},
                user_id=identity.user_id,
                guest_email=identity.guest_email,
            ))

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s created (%s, total=%s)", order.id, order.payment_method, order.total_cents
    )
    notify_order_placed(order)
    return order


def _payload_email(payload) -> str | None:
    """Guest email as parse_checkout resolves it, without validating the rest."""
    if not isinstance(payload, dict):
        return None
    for field in ("guest_email", "email"):
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return None


def place_order(payload: dict, actor: User | None = None, idempotency_key: str | None = None) -> tuple[dict, int]:
    """
    Checkout entry point used by the API: replays the stored response for a
    known Idempotency-Key, otherwise creates the order.

    A key is only replayed for the identity that created it (same user, or
    same guest email); anyone else gets IDEMPOTENCY_KEY_REUSED.
    """
    user_id = actor.id if actor is not None else None
    guest_email = None if actor is not None else _payload_email(payload)

    if idempotency_key:
        cached = find_response(idempotency_key, user_id, guest_email)
        if cached:
            return cached

    try:
        order = create_order(payload, actor, idempotency_key=idempotency_key)
    except IntegrityError:
        # Same key committed by a concurrent request
        if idempotency_key:
            cached = find_response(idempotency_key, user_id, guest_email)
            if cached:
                return cached
        raise

    return {"order": order.to_dict()}, 201


# =============================================================================
# READS
# =============================================================================

def authorize_order_access(order: Order, actor: User | None, guest_email: str | None = None) -> None:
    """
    Admins see every order, users their own, guests need the order email.

    A guest lookup with the wrong email reports NOT_FOUND so order ids cannot
    be enumerated.
    """
    if actor is not None:
        if actor.is_admin or order.user_id == actor.id:
            return
        raise ForbiddenError("You do not have access to this order")

    if order.user_id is None:
        email = (guest_email or "").strip().lower()
        if email and order.guest_email and email == order.guest_email.lower():
            return
        raise NotFoundError()

    raise ForbiddenError("You do not have access to this order")


def get_order(order_id: int, actor: User | None = None, guest_email: str | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError()
    authorize_order_access(order, actor, guest_email)
    return order


def list_orders(
    actor: User,
    *,
    page: int = 1,
    per_page: int | None = None,
    status: str | None = None,
    payment_method: str | None = None,
) -> dict:
    """Newest first. Admins list all orders, customers only their own."""
    default_per_page = current_app.config.get("ORDERS_PER_PAGE_DEFAULT", 20)
    max_per_page = current_app.config.get("ORDERS_PER_PAGE_MAX", 100)
    page = max(page or 1, 1)
    per_page = min(max(per_page or default_per_page, 1), max_per_page)

    q = db.session.query(Order)
    if not actor.is_admin:
        q = q.filter(Order.user_id == actor.id)
    if status:
        status = status.upper()
        if status not in ORDER_STATUSES:
            raise OrderError(f"Invalid status filter: {status}", "VALIDATION_ERROR")
        q = q.filter(Order.status == status)
    if payment_method:
        payment_method = payment_method.upper()
        if payment_method not in PAYMENT_METHODS:
            raise OrderError(f"Invalid payment method filter: {payment_method}", "VALIDATION_ERROR")
        q = q.filter(Order.payment_method == payment_method)

    total = q.count()
    orders = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "orders": [o.to_dict() for o in orders],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }
