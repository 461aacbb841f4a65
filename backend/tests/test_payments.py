"""
InstaPay proof and approval tests.
"""

import pytest

from storefront.errors import OrderError
from storefront.models import Order, Payment, Product
from storefront.models.orders import (
    ORDER_CONFIRMED,
    ORDER_PENDING,
    PAYMENT_PAID,
    PAYMENT_PENDING_APPROVAL,
    PAYMENT_UNPAID,
)
from storefront.services import order_service, payment_service
from storefront.services.order_status_service import cancel_order, update_order_status


@pytest.fixture
def instapay_order(db_session, make_product, guest_checkout):
    product = make_product(stock=3)
    order = order_service.create_order(guest_checkout(product.id, 2, payment_method="INSTAPAY"))
    return order, product


class TestAttachProof:
    def test_guest_attaches_proof(self, db_session, instapay_order):
        order, _ = instapay_order
        payment = payment_service.attach_proof(order.id, " https://img.example/proof.png ", guest_email="SARA@example.com")
        assert payment.status == PAYMENT_PENDING_APPROVAL
        assert payment.proof_url == "https://img.example/proof.png"

    def test_wrong_guest_email_hides_order(self, db_session, instapay_order):
        order, _ = instapay_order
        with pytest.raises(OrderError) as exc:
            payment_service.attach_proof(order.id, "ref-123", guest_email="someone@example.com")
        assert exc.value.code == "NOT_FOUND"

    def test_proof_required(self, db_session, instapay_order):
        order, _ = instapay_order
        with pytest.raises(OrderError) as exc:
            payment_service.attach_proof(order.id, "   ", guest_email="sara@example.com")
        assert exc.value.code == "PROOF_REQUIRED"

    def test_cod_rejected(self, db_session, make_product, guest_checkout):
        product = make_product()
        order = order_service.create_order(guest_checkout(product.id))
        with pytest.raises(OrderError) as exc:
            payment_service.attach_proof(order.id, "ref-123", guest_email="sara@example.com")
        assert exc.value.code == "INSTAPAY_ONLY"

    def test_cancelled_order_rejected(self, db_session, instapay_order):
        order, _ = instapay_order
        cancel_order(order.id)
        with pytest.raises(OrderError) as exc:
            payment_service.attach_proof(order.id, "ref-123", guest_email="sara@example.com")
        assert exc.value.code == "ORDER_CANCELLED"
        assert exc.value.status_code == 409


class TestReviewPayment:
    def test_approval_confirms_order_and_takes_stock(self, db_session, instapay_order, admin_user):
        order, product = instapay_order
        payment_service.attach_proof(order.id, "ref-123", guest_email="sara@example.com")

        payment = payment_service.review_payment(order.id, approved=True, actor_user_id=admin_user.id)

        assert payment.status == PAYMENT_PAID
        assert payment.approved_by_user_id == admin_user.id
        assert payment.approved_at is not None
        assert db_session.get(Order, order.id).status == ORDER_CONFIRMED
        assert db_session.get(Product, product.id).stock == 1

    def test_approval_of_confirmed_order_keeps_stock(self, db_session, instapay_order, admin_user):
        order, product = instapay_order
        update_order_status(order.id, "CONFIRMED")

        payment_service.review_payment(order.id, approved=True, actor_user_id=admin_user.id)

        assert db_session.get(Product, product.id).stock == 1

    def test_stock_conflict_leaves_payment_unpaid(self, db_session, instapay_order, admin_user):
        order, product = instapay_order
        product.stock = 1
        db_session.commit()

        with pytest.raises(OrderError) as exc:
            payment_service.review_payment(order.id, approved=True, actor_user_id=admin_user.id)

        assert exc.value.code == "OUT_OF_STOCK_CONFIRMATION"
        assert db_session.query(Payment).filter_by(order_id=order.id).one().status == PAYMENT_UNPAID
        assert db_session.get(Order, order.id).status == ORDER_PENDING

    def test_rejection_resets_proof(self, db_session, instapay_order, admin_user):
        order, _ = instapay_order
        payment_service.attach_proof(order.id, "ref-123", guest_email="sara@example.com")

        payment = payment_service.review_payment(order.id, approved=False, actor_user_id=admin_user.id)

        assert payment.status == PAYMENT_UNPAID
        assert payment.proof_url is None
        assert db_session.get(Order, order.id).status == ORDER_PENDING

    def test_paid_payment_is_final(self, db_session, instapay_order, admin_user):
        order, _ = instapay_order
        payment_service.review_payment(order.id, approved=True, actor_user_id=admin_user.id)

        with pytest.raises(OrderError) as exc:
            payment_service.review_payment(order.id, approved=False, actor_user_id=admin_user.id)
        assert exc.value.code == "PAYMENT_ALREADY_PAID"

        with pytest.raises(OrderError) as exc:
            payment_service.attach_proof(order.id, "ref-456", guest_email="sara@example.com")
        assert exc.value.code == "PAYMENT_ALREADY_PAID"
