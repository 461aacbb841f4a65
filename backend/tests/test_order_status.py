"""
Order status state machine + inventory guard tests.

Verifies:
- Stock moves only on confirmation and on cancellation of a confirmed order
- A failed confirmation leaves stock and status untouched (all or nothing)
- Cancel after confirm restores exactly what confirm took
- Terminal states reject every transition
"""

import pytest

from storefront.errors import OrderError
from storefront.models import Order, Product, ProductVariant
from storefront.models.orders import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    ORDER_SHIPPED,
)
from storefront.services import order_service
from storefront.services.order_status_service import (
    TRANSITIONS,
    can_transition,
    cancel_order,
    update_order_status,
)


def _stock(db_session, product_id):
    return db_session.get(Product, product_id).stock


def _variant_stock(db_session, variant_id):
    return db_session.get(ProductVariant, variant_id).stock


class TestTransitionTable:
    @pytest.mark.parametrize("current,target", [
        (ORDER_PENDING, ORDER_CONFIRMED),
        (ORDER_PENDING, ORDER_CANCELLED),
        (ORDER_CONFIRMED, ORDER_SHIPPED),
        (ORDER_CONFIRMED, ORDER_CANCELLED),
        (ORDER_SHIPPED, ORDER_DELIVERED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (ORDER_PENDING, ORDER_SHIPPED),
        (ORDER_PENDING, ORDER_DELIVERED),
        (ORDER_CONFIRMED, ORDER_PENDING),
        (ORDER_SHIPPED, ORDER_CANCELLED),
        (ORDER_DELIVERED, ORDER_CANCELLED),
        (ORDER_CANCELLED, ORDER_CONFIRMED),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_terminal_states(self):
        assert TRANSITIONS[ORDER_DELIVERED] == frozenset()
        assert TRANSITIONS[ORDER_CANCELLED] == frozenset()


class TestConfirmation:
    def test_sell_out_then_second_order_fails(self, db_session, make_product, guest_checkout):
        product = make_product(price_cents=10000, stock=5)
        first = order_service.create_order(guest_checkout(product.id, 5))
        second = order_service.create_order(guest_checkout(product.id, 1))
        assert first.total_cents == 50000

        update_order_status(first.id, "CONFIRMED")
        assert _stock(db_session, product.id) == 0

        with pytest.raises(OrderError) as exc:
            update_order_status(second.id, "CONFIRMED")
        assert exc.value.code == "OUT_OF_STOCK_CONFIRMATION"
        assert exc.value.status_code == 409
        assert exc.value.details["available"] == 0

        db_session.expire_all()
        assert db_session.get(Order, second.id).status == ORDER_PENDING

    def test_confirmation_is_all_or_nothing(self, db_session, make_product):
        scarf = make_product(name="Scarf", stock=10)
        belt = make_product(name="Belt", stock=10)
        order = order_service.create_order({
            "items": [
                {"product_id": scarf.id, "quantity": 4},
                {"product_id": belt.id, "quantity": 6},
            ],
            "guest_name": "Sara",
            "guest_email": "sara@example.com",
        })

        # Another channel sells belts after the order was placed
        belt.stock = 5
        db_session.commit()

        with pytest.raises(OrderError) as exc:
            update_order_status(order.id, "CONFIRMED")

        assert exc.value.details["product_name"] == "Belt"
        assert _stock(db_session, scarf.id) == 10
        assert _stock(db_session, belt.id) == 5
        assert db_session.get(Order, order.id).status == ORDER_PENDING

    def test_confirm_sets_timestamp_and_actor(self, db_session, make_product, admin_user, guest_checkout):
        product = make_product()
        order = order_service.create_order(guest_checkout(product.id))

        confirmed = update_order_status(order.id, "confirmed", admin_user.id)

        assert confirmed.status == ORDER_CONFIRMED
        assert confirmed.confirmed_at is not None
        assert confirmed.status_changed_by_user_id == admin_user.id

    def test_variant_stock_decremented(self, db_session, make_product, guest_checkout):
        product = make_product(stock=0, variants=[("Black", "M", 3), ("Navy", "M", 3)])
        payload = guest_checkout(product.id, 2)
        payload["items"][0].update(color="Black", size="M")
        order = order_service.create_order(payload)
        variant_id = order.items[0].variant_id

        update_order_status(order.id, "CONFIRMED")

        variants = {v.color: v.stock for v in db_session.query(ProductVariant).filter_by(product_id=product.id)}
        assert variants == {"Black": 1, "Navy": 3}
        assert _variant_stock(db_session, variant_id) == 1
        assert _stock(db_session, product.id) == 0

    def test_flagged_variant_blocks_confirmation(self, db_session, make_product, guest_checkout):
        product = make_product(stock=0, variants=[("Black", "M", 3)])
        payload = guest_checkout(product.id, 1)
        payload["items"][0].update(color="Black", size="M")
        order = order_service.create_order(payload)

        variant = db_session.query(ProductVariant).filter_by(product_id=product.id).one()
        variant.out_of_stock = True
        db_session.commit()

        with pytest.raises(OrderError) as exc:
            update_order_status(order.id, "CONFIRMED")
        assert exc.value.code == "OUT_OF_STOCK_CONFIRMATION"
        assert _variant_stock(db_session, variant.id) == 3


class TestCancellation:
    def test_cancel_pending_restores_nothing(self, db_session, make_product, guest_checkout):
        product = make_product(stock=5)
        order = order_service.create_order(guest_checkout(product.id, 3))

        cancelled = cancel_order(order.id)

        assert cancelled.status == ORDER_CANCELLED
        assert cancelled.cancelled_at is not None
        assert _stock(db_session, product.id) == 5

    def test_cancel_confirmed_restores_stock(self, db_session, make_product, guest_checkout):
        product = make_product(stock=5)
        order = order_service.create_order(guest_checkout(product.id, 3))

        update_order_status(order.id, "CONFIRMED")
        assert _stock(db_session, product.id) == 2

        cancel_order(order.id)
        assert _stock(db_session, product.id) == 5

    def test_cancel_confirmed_variant_restores_same_row(self, db_session, make_product, guest_checkout):
        product = make_product(stock=7, variants=[("Black", "M", 3), ("Black", "L", 4)])
        payload = guest_checkout(product.id, 2)
        payload["items"][0].update(color="Black", size="L")
        order = order_service.create_order(payload)
        variant_id = order.items[0].variant_id

        update_order_status(order.id, "CONFIRMED")
        assert _variant_stock(db_session, variant_id) == 2
        cancel_order(order.id)

        variants = {v.size: v.stock for v in db_session.query(ProductVariant).filter_by(product_id=product.id)}
        assert variants == {"M": 3, "L": 4}
        assert _stock(db_session, product.id) == 7

    def test_cancel_after_variant_deleted_logs_warning(self, db_session, make_product, guest_checkout, caplog):
        product = make_product(stock=4, variants=[("Black", "M", 4)])
        payload = guest_checkout(product.id, 1)
        payload["items"][0].update(color="Black", size="M")
        order = order_service.create_order(payload)
        update_order_status(order.id, "CONFIRMED")

        variant_id = order.items[0].variant_id
        db_session.query(ProductVariant).filter_by(id=variant_id).delete(synchronize_session=False)
        db_session.commit()

        with caplog.at_level("WARNING", logger="storefront.services.inventory_service"):
            cancelled = cancel_order(order.id)

        assert cancelled.status == ORDER_CANCELLED
        assert "Stock not restored" in caplog.text
        assert f"variant {variant_id}" in caplog.text

    @pytest.mark.parametrize("path", [
        ["CONFIRMED", "SHIPPED"],
        ["CONFIRMED", "SHIPPED", "DELIVERED"],
        ["CANCELLED"],
    ])
    def test_cancel_not_allowed(self, db_session, make_product, guest_checkout, path):
        product = make_product(stock=5)
        order = order_service.create_order(guest_checkout(product.id))
        for status in path:
            update_order_status(order.id, status)
        stock_before = _stock(db_session, product.id)

        with pytest.raises(OrderError) as exc:
            cancel_order(order.id)

        assert exc.value.code == "CANCEL_NOT_ALLOWED"
        assert _stock(db_session, product.id) == stock_before


class TestInvalidTransitions:
    def test_unknown_status(self, db_session, make_product, guest_checkout):
        product = make_product()
        order = order_service.create_order(guest_checkout(product.id))
        with pytest.raises(OrderError) as exc:
            update_order_status(order.id, "LOST")
        assert exc.value.code == "VALIDATION_ERROR"

    def test_skip_ahead_rejected_without_stock_change(self, db_session, make_product, guest_checkout):
        product = make_product(stock=5)
        order = order_service.create_order(guest_checkout(product.id, 2))
        with pytest.raises(OrderError) as exc:
            update_order_status(order.id, "SHIPPED")
        assert exc.value.code == "INVALID_STATUS_TRANSITION"
        assert _stock(db_session, product.id) == 5

    def test_cancelled_is_terminal(self, db_session, make_product, guest_checkout):
        product = make_product(stock=5)
        order = order_service.create_order(guest_checkout(product.id))
        cancel_order(order.id)
        with pytest.raises(OrderError) as exc:
            update_order_status(order.id, "CONFIRMED")
        assert exc.value.code == "INVALID_STATUS_TRANSITION"
        assert _stock(db_session, product.id) == 5

    def test_missing_order(self, db_session):
        with pytest.raises(OrderError) as exc:
            update_order_status(424242, "CONFIRMED")
        assert exc.value.code == "NOT_FOUND"
        assert exc.value.status_code == 404

    def test_full_lifecycle(self, db_session, make_product, guest_checkout):
        product = make_product(stock=5)
        order = order_service.create_order(guest_checkout(product.id, 2))
        for status in ("CONFIRMED", "SHIPPED", "DELIVERED"):
            order = update_order_status(order.id, status)
        assert order.status == ORDER_DELIVERED
        assert order.shipped_at is not None
        assert order.delivered_at is not None
        assert _stock(db_session, product.id) == 3
