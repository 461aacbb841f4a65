# Overview: Payment proof and approval for manual-transfer (InstaPay) orders.

"""
Payment side-channel

- attach_proof: customer (or admin) attaches an InstaPay transfer reference;
  the payment moves to PENDING_APPROVAL.
- review_payment: admin approves or rejects the proof. Approval marks the
  payment PAID and, when the order is still PENDING, confirms it through the
  status state machine in the same transaction, so a stock conflict leaves
  both the payment and the order untouched. Rejection resets the payment to
  UNPAID and clears the proof so the customer can upload again.
"""

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, OrderError
from ..extensions import db
from ..models import Order, Payment, User
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_PENDING,
    ORDER_CONFIRMED,
    PAYMENT_INSTAPAY,
    PAYMENT_PAID,
    PAYMENT_PENDING_APPROVAL,
    PAYMENT_UNPAID,
)
from storefront.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .order_service import authorize_order_access
from .order_status_service import transition_locked


def _load_locked(order_id: int) -> tuple[Order, Payment]:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError()
    payment = lock_for_update(db.session.query(Payment).filter_by(order_id=order_id)).first()
    if not payment:
        raise NotFoundError("Payment not found for this order")
    return order, payment


def _require_instapay(payment: Payment) -> None:
    if payment.method != PAYMENT_INSTAPAY:
        raise OrderError(
            "Only InstaPay payments accept proofs and approval",
            "INSTAPAY_ONLY",
            details={"payment_method": payment.method},
        )


def attach_proof(
    order_id: int,
    proof_url: str,
    actor: User | None = None,
    guest_email: str | None = None,
) -> Payment:
    proof_url = (proof_url or "").strip()
    if not proof_url:
        raise OrderError("Payment proof is required", "PROOF_REQUIRED")
    if len(proof_url) > 512:
        raise OrderError("Payment proof reference is too long", "VALIDATION_ERROR")

    def _op():
        begin_write()
        order, payment = _load_locked(order_id)
        authorize_order_access(order, actor, guest_email)
        _require_instapay(payment)

        if order.status == ORDER_CANCELLED:
            raise ConflictError("Order is cancelled", "ORDER_CANCELLED")
        if payment.status == PAYMENT_PAID:
            raise ConflictError("Payment is already confirmed", "PAYMENT_ALREADY_PAID")

        payment.proof_url = proof_url
        payment.status = PAYMENT_PENDING_APPROVAL
        db.session.commit()
        return payment

    return run_with_retry(_op)


def review_payment(order_id: int, approved: bool, actor_user_id: int | None = None) -> Payment:
    def _op():
        begin_write()
        order, payment = _load_locked(order_id)
        _require_instapay(payment)

        if not approved:
            if payment.status == PAYMENT_PAID:
                raise ConflictError("Payment is already confirmed", "PAYMENT_ALREADY_PAID")
            payment.status = PAYMENT_UNPAID
            payment.proof_url = None
            payment.approved_at = None
            payment.approved_by_user_id = None
            db.session.commit()
            return payment

        if payment.status == PAYMENT_PAID:
            raise ConflictError("Payment is already confirmed", "PAYMENT_ALREADY_PAID")
        if order.status == ORDER_CANCELLED:
            raise ConflictError("Order is cancelled", "ORDER_CANCELLED")

        if order.status == ORDER_PENDING:
            transition_locked(order, ORDER_CONFIRMED, actor_user_id)

        payment.status = PAYMENT_PAID
        payment.approved_at = utcnow()
        payment.approved_by_user_id = actor_user_id
        db.session.commit()
        return payment

    return run_with_retry(_op)
