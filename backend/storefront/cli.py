# Overview: Flask CLI command groups for bootstrap and operations.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# - Set FLASK_APP to storefront (PowerShell: $env:FLASK_APP="storefront").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; production uses `flask db upgrade`).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system purge-idempotency
#   Delete expired Idempotency-Key records.
#
# Users:
# - python -m flask users create --email admin@store.local --name "Admin" --role ADMIN
# - python -m flask users issue-token --email admin@store.local
#   Print a bearer token for API calls.
#
# Catalog / checkout data:
# - python -m flask catalog seed-demo
#   Idempotent demo products, cities, shipping methods and settings.
# - python -m flask discounts create --code WELCOME10 --type PERCENT --value 10 --usage-limit 100

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    City,
    DiscountCode,
    Product,
    ProductVariant,
    ShippingMethod,
    ShippingMethodCityPrice,
    StoreSettings,
    User,
)
from .models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from .models.promotions import DISCOUNT_FIXED, DISCOUNT_PERCENT
from .services import idempotency_service, session_service
from .services.pricing_service import normalize_discount_code
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and maintenance commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset.')
@with_appcontext
def reset_db(yes):
    if not yes:
        raise click.UsageError("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@system_group.command('purge-idempotency')
@with_appcontext
def purge_idempotency():
    count = idempotency_service.purge_expired()
    click.echo(f"Deleted {count} expired idempotency record(s).")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--name', prompt=True)
@click.option('--role', type=click.Choice([ROLE_ADMIN, ROLE_CUSTOMER]), default=ROLE_CUSTOMER)
@click.option('--phone', default=None)
@with_appcontext
def create_user(email, name, role, phone):
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise click.ClickException(f"User {email} already exists")
    user = User(email=email, name=name.strip(), role=role, phone=phone)
    db.session.add(user)
    db.session.commit()
    click.echo(f"Created user {user.id} ({email}, {role})")


@users_group.command('issue-token')
@click.option('--email', required=True)
@with_appcontext
def issue_token(email):
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User {email} not found")
    _, token = session_service.create_session(user.id)
    click.echo(token)


@click.group('catalog')
def catalog_group():
    """Catalog and checkout reference data."""


@catalog_group.command('seed-demo')
@with_appcontext
def seed_demo():
    if db.session.query(StoreSettings).first() is None:
        db.session.add(StoreSettings(cod_enabled=True, instapay_enabled=True, instapay_number="01000000000"))

    cities = {}
    for name, fee in (("Cairo", 5000), ("Giza", 5000), ("Alexandria", 7500)):
        city = db.session.query(City).filter_by(name=name).first()
        if city is None:
            city = City(name=name, delivery_fee_cents=fee)
            db.session.add(city)
        cities[name] = city
    db.session.flush()

    if db.session.query(ShippingMethod).count() == 0:
        standard = ShippingMethod(name_en="Standard", name_ar="عادي", min_days=3, max_days=5,
                                  price_cents=6000, sort_order=0)
        express = ShippingMethod(name_en="Express", name_ar="سريع", min_days=1, max_days=2,
                                 price_cents=12000, sort_order=1)
        db.session.add_all([standard, express])
        db.session.flush()
        db.session.add(ShippingMethodCityPrice(
            shipping_method_id=standard.id, city_id=cities["Cairo"].id, price_cents=4000,
        ))

    if db.session.query(Product).count() == 0:
        db.session.add(Product(name_en="Linen Scarf", name_ar="وشاح كتان", price_cents=25000, stock=40))
        abaya = Product(name_en="Classic Abaya", name_ar="عباية كلاسيك", price_cents=120000,
                        discount_price_cents=99000, stock=0)
        db.session.add(abaya)
        db.session.flush()
        for color in ("Black", "Navy"):
            for size in ("S", "M", "L"):
                db.session.add(ProductVariant(product_id=abaya.id, color=color, size=size, stock=5))

    db.session.commit()
    click.echo("Demo catalog ready.")


@click.group('discounts')
def discounts_group():
    """Discount code management."""


@discounts_group.command('create')
@click.option('--code', required=True)
@click.option('--type', 'discount_type', type=click.Choice([DISCOUNT_PERCENT, DISCOUNT_FIXED]), required=True)
@click.option('--value', type=int, required=True, help='Percent (1-100) or cents.')
@click.option('--min-order', 'min_order_amount_cents', type=int, default=None, help='Minimum subtotal in cents.')
@click.option('--valid-from', default=None, help='ISO-8601 datetime.')
@click.option('--valid-until', default=None, help='ISO-8601 datetime.')
@click.option('--usage-limit', type=int, default=None)
@with_appcontext
def create_discount(code, discount_type, value, min_order_amount_cents, valid_from, valid_until, usage_limit):
    code = normalize_discount_code(code)
    if not code:
        raise click.UsageError("--code cannot be blank")
    if discount_type == DISCOUNT_PERCENT and not 1 <= value <= 100:
        raise click.UsageError("PERCENT value must be between 1 and 100")
    if value < 0:
        raise click.UsageError("--value must be >= 0")
    if db.session.query(DiscountCode).filter_by(code=code).first():
        raise click.ClickException(f"Discount code {code} already exists")

    discount = DiscountCode(
        code=code,
        discount_type=discount_type,
        value=value,
        min_order_amount_cents=min_order_amount_cents,
        valid_from=parse_iso_datetime(valid_from),
        valid_until=parse_iso_datetime(valid_until),
        usage_limit=usage_limit,
    )
    db.session.add(discount)
    db.session.commit()
    click.echo(f"Created discount code {code}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(discounts_group)
