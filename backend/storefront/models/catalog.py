from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


PRODUCT_STATUS_ACTIVE = "ACTIVE"
PRODUCT_STATUS_INACTIVE = "INACTIVE"
PRODUCT_STATUS_DRAFT = "DRAFT"


class Product(db.Model):
    """
    Product master data (inventory-relevant fields).

    PRICING: price_cents is the list price. discount_price_cents is honored only
    when positive and lower than the list price (see effective_price_cents).

    STOCK: Products without variants track a single flat `stock` counter.
    Products with variants track stock per color/size row in product_variants;
    the flat counter is not used for them.

    Stock is only mutated by the inventory guard (order confirmation and
    cancellation of confirmed orders).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_deleted", "status", "deleted_at"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name_en = db.Column(db.String(255), nullable=False)
    name_ar = db.Column(db.String(255), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    discount_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE)

    # Soft delete: historical order items keep their denormalized name
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "ProductVariant",
        backref="product",
        lazy=True,
        order_by="ProductVariant.id",
    )

    @property
    def display_name(self) -> str:
        return self.name_en or self.name_ar or "Product"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": {"en": self.name_en, "ar": self.name_ar},
            "price_cents": self.price_cents,
            "discount_price_cents": self.discount_price_cents,
            "stock": self.stock,
            "status": self.status,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "variants": [v.to_dict() for v in self.variants],
        }


class ProductVariant(db.Model):
    """Per color/size inventory row for a product."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "color", "size", name="uq_product_variants_color_size"),
        db.CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    color = db.Column(db.String(64), nullable=False, default="")
    size = db.Column(db.String(32), nullable=False, default="")
    stock = db.Column(db.Integer, nullable=False, default=0)

    # Manual override: when true the row counts as unavailable whatever its stock
    out_of_stock = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color": self.color,
            "size": self.size,
            "stock": self.stock,
            "out_of_stock": self.out_of_stock,
        }


class City(db.Model):
    """Delivery destination with its default delivery fee."""
    __tablename__ = "cities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "delivery_fee_cents": self.delivery_fee_cents}


class ShippingMethod(db.Model):
    """
    Shipping method with a default price and optional per-city prices.

    When the customer's city has a row in city_prices that price wins,
    otherwise price_cents applies.
    """
    __tablename__ = "shipping_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name_en = db.Column(db.String(128), nullable=False)
    name_ar = db.Column(db.String(128), nullable=True)
    min_days = db.Column(db.Integer, nullable=True)
    max_days = db.Column(db.Integer, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    enabled = db.Column(db.Boolean, nullable=False, default=True, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    city_prices = db.relationship("ShippingMethodCityPrice", backref="shipping_method", lazy=True)

    def price_for_city(self, city_id: int | None) -> int:
        if city_id is not None:
            for row in self.city_prices:
                if row.city_id == city_id:
                    return row.price_cents
        return self.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": {"en": self.name_en, "ar": self.name_ar},
            "estimated_days": {"min": self.min_days, "max": self.max_days},
            "price_cents": self.price_cents,
            "enabled": self.enabled,
            "city_prices": [
                {"city_id": row.city_id, "price_cents": row.price_cents}
                for row in self.city_prices
            ],
        }


class ShippingMethodCityPrice(db.Model):
    __tablename__ = "shipping_method_city_prices"
    __table_args__ = (
        db.UniqueConstraint("shipping_method_id", "city_id", name="uq_shipping_city_price"),
    )

    id = db.Column(db.Integer, primary_key=True)
    shipping_method_id = db.Column(db.Integer, db.ForeignKey("shipping_methods.id"), nullable=False, index=True)
    city_id = db.Column(db.Integer, db.ForeignKey("cities.id"), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
