# Overview: Order status state machine; drives stock changes through the inventory guard.

"""
Order Status State Machine

    PENDING -> CONFIRMED -> SHIPPED -> DELIVERED
    PENDING | CONFIRMED -> CANCELLED

- CONFIRMED decrements stock for every line (all or nothing).
- CANCELLED restores stock only when the order was CONFIRMED.
- DELIVERED and CANCELLED are terminal.

The order row is re-read (and locked) for every transition; the status write
and any stock writes commit in the same transaction. An illegal target is
rejected before any stock is touched.
"""

from __future__ import annotations

from ..errors import NotFoundError, OrderError, ValidationError
from ..extensions import db
from ..models import Order
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    ORDER_SHIPPED,
    ORDER_STATUSES,
)
from storefront.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .inventory_service import decrement_stock, restore_stock


TRANSITIONS: dict[str, frozenset[str]] = {
    ORDER_PENDING: frozenset({ORDER_CONFIRMED, ORDER_CANCELLED}),
    ORDER_CONFIRMED: frozenset({ORDER_SHIPPED, ORDER_CANCELLED}),
    ORDER_SHIPPED: frozenset({ORDER_DELIVERED}),
    ORDER_DELIVERED: frozenset(),
    ORDER_CANCELLED: frozenset(),
}

_TIMESTAMP_FIELDS = {
    ORDER_CONFIRMED: "confirmed_at",
    ORDER_SHIPPED: "shipped_at",
    ORDER_DELIVERED: "delivered_at",
    ORDER_CANCELLED: "cancelled_at",
}


def parse_status(value) -> str:
    status = str(value or "").strip().upper()
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status: {value}. Must be one of {list(ORDER_STATUSES)}",
            details={"status": value},
        )
    return status


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _load_order_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError()
    return order


def transition_locked(order: Order, target: str, actor_user_id: int | None = None) -> Order:
    """
    Apply one transition to an order already loaded inside a write transaction.

    Does not commit.
    """
    current = order.status
    if not can_transition(current, target):
        if target == ORDER_CANCELLED:
            raise OrderError(
                f"Cannot cancel an order with status {current}",
                "CANCEL_NOT_ALLOWED",
                details={"from": current, "to": target},
            )
        raise OrderError(
            f"Cannot change order status from {current} to {target}",
            "INVALID_STATUS_TRANSITION",
            details={"from": current, "to": target},
        )

    if target == ORDER_CONFIRMED:
        decrement_stock(order.items)
    elif target == ORDER_CANCELLED and current == ORDER_CONFIRMED:
        restore_stock(order.items)

    order.status = target
    setattr(order, _TIMESTAMP_FIELDS[target], utcnow())
    order.status_changed_by_user_id = actor_user_id
    return order


def update_order_status(order_id: int, status, actor_user_id: int | None = None) -> Order:
    """Move an order to `status`, applying inventory side effects atomically."""
    target = parse_status(status)

    def _op():
        begin_write()
        order = _load_order_locked(order_id)
        transition_locked(order, target, actor_user_id)
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, actor_user_id: int | None = None) -> Order:
    """Cancel a PENDING or CONFIRMED order; restores stock if it was confirmed."""
    return update_order_status(order_id, ORDER_CANCELLED, actor_user_id)
