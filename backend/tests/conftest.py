"""
Pytest fixtures for storefront order engine tests.

Provides the app on an in-memory database, a per-test table wipe, catalog
factories and bearer-token headers.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import (
    City,
    DiscountCode,
    Product,
    ProductVariant,
    ShippingMethod,
    ShippingMethodCityPrice,
    StoreSettings,
    User,
)
from storefront.models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from storefront.models.promotions import DISCOUNT_PERCENT
from storefront.services import session_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'NOTIFICATIONS_SYNC': True,
    'ADMIN_NOTIFICATION_EMAIL': 'admin@store.test',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(price_cents=..., stock=..., variants=[(color, size, stock), ...])."""
    def _make(name="Linen Scarf", price_cents=10000, stock=10, discount_price_cents=None,
              status="ACTIVE", variants=None):
        product = Product(
            name_en=name,
            price_cents=price_cents,
            discount_price_cents=discount_price_cents,
            stock=stock,
            status=status,
        )
        db_session.add(product)
        db_session.flush()
        for color, size, variant_stock in variants or []:
            db_session.add(ProductVariant(product_id=product.id, color=color, size=size, stock=variant_stock))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_city(db_session):
    def _make(name="Cairo", delivery_fee_cents=5000):
        city = City(name=name, delivery_fee_cents=delivery_fee_cents)
        db_session.add(city)
        db_session.commit()
        return city

    return _make


@pytest.fixture(scope='function')
def make_shipping_method(db_session):
    def _make(name="Express", price_cents=8000, enabled=True, city_prices=None):
        method = ShippingMethod(name_en=name, price_cents=price_cents, enabled=enabled)
        db_session.add(method)
        db_session.flush()
        for city_id, city_price in (city_prices or {}).items():
            db_session.add(ShippingMethodCityPrice(
                shipping_method_id=method.id, city_id=city_id, price_cents=city_price,
            ))
        db_session.commit()
        return method

    return _make


@pytest.fixture(scope='function')
def make_discount(db_session):
    def _make(code="SAVE10", discount_type=DISCOUNT_PERCENT, value=10, **fields):
        discount = DiscountCode(code=code, discount_type=discount_type, value=value, **fields)
        db_session.add(discount)
        db_session.commit()
        return discount

    return _make


@pytest.fixture(scope='function')
def store_settings(db_session):
    """Settings row with both payment methods enabled; tests flip flags as needed."""
    settings = StoreSettings(cod_enabled=True, instapay_enabled=True, instapay_number="01000000000")
    db_session.add(settings)
    db_session.commit()
    return settings


def _make_user(db_session, email, name, role):
    user = User(email=email, name=name, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin@store.test", "Store Admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def customer_user(db_session):
    return _make_user(db_session, "mona@example.com", "Mona Customer", ROLE_CUSTOMER)


@pytest.fixture(scope='function')
def other_customer(db_session):
    return _make_user(db_session, "karim@example.com", "Karim Customer", ROLE_CUSTOMER)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    _, token = session_service.create_session(customer_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def other_headers(other_customer):
    _, token = session_service.create_session(other_customer.id)
    return auth_headers(token)


def guest_payload(product_id, quantity=1, **extra):
    payload = {
        "items": [{"product_id": product_id, "quantity": quantity}],
        "guest_name": "Sara Guest",
        "guest_email": "sara@example.com",
        "payment_method": "COD",
    }
    payload.update(extra)
    return payload


@pytest.fixture(scope='function')
def guest_checkout():
    """Factory for a minimal valid guest checkout payload."""
    return guest_payload
