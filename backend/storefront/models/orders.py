from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


ORDER_PENDING = "PENDING"
ORDER_CONFIRMED = "CONFIRMED"
ORDER_SHIPPED = "SHIPPED"
ORDER_DELIVERED = "DELIVERED"
ORDER_CANCELLED = "CANCELLED"

ORDER_STATUSES = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_SHIPPED, ORDER_DELIVERED, ORDER_CANCELLED)

PAYMENT_COD = "COD"
PAYMENT_INSTAPAY = "INSTAPAY"

PAYMENT_METHODS = (PAYMENT_COD, PAYMENT_INSTAPAY)

PAYMENT_UNPAID = "UNPAID"
PAYMENT_PENDING_APPROVAL = "PENDING_APPROVAL"
PAYMENT_PAID = "PAID"


class Order(db.Model):
    """
    One checkout that passed validation.

    Money fields are fixed at creation:
        total_cents = subtotal_cents - discount_amount_cents + delivery_fee_cents
    and subtotal_cents is the sum of the items' line totals. Nothing here is
    recomputed from live catalog prices.

    IDENTITY: user_id for authenticated checkouts, guest_* fields otherwise.
    Never both.

    LIFECYCLE: status is only written by the order status service. Orders are
    never deleted; CANCELLED is terminal.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_code = db.Column(db.String(64), nullable=True)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)

    # Customer identity (mutually exclusive)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    guest_name = db.Column(db.String(255), nullable=True)
    guest_email = db.Column(db.String(255), nullable=True, index=True)
    guest_phone = db.Column(db.String(64), nullable=True)

    # {"kind": "freeform", "text": ...} or {"kind": "structured", "street": ..., ...}
    shipping_address = db.Column(db.JSON, nullable=True)
    city_id = db.Column(db.Integer, db.ForeignKey("cities.id"), nullable=True)
    # Display name resolved once at creation
    city_name = db.Column(db.String(128), nullable=True)
    shipping_method_id = db.Column(db.Integer, db.ForeignKey("shipping_methods.id"), nullable=True)
    special_instructions = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status_changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.position")
    payment = db.relationship("Payment", backref="order", uselist=False, lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def customer_email(self) -> str | None:
        if self.user is not None:
            return self.user.email
        return self.guest_email

    @property
    def customer_name(self) -> str | None:
        if self.user is not None:
            return self.user.name
        return self.guest_name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "discount_code": self.discount_code,
            "discount_amount_cents": self.discount_amount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "user_id": self.user_id,
            "guest": None if self.user_id else {
                "name": self.guest_name,
                "email": self.guest_email,
                "phone": self.guest_phone,
            },
            "shipping_address": self.shipping_address,
            "city_id": self.city_id,
            "city_name": self.city_name,
            "shipping_method_id": self.shipping_method_id,
            "special_instructions": self.special_instructions,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "shipped_at": to_utc_z(self.shipped_at) if self.shipped_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "payment": self.payment.to_dict() if self.payment else None,
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Immutable order line with the unit price locked in at checkout."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_order_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    # Weak reference: the product may be soft-deleted later
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    # Set when the line consumed a specific variant
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "variant_id": self.variant_id,
            "color": self.color,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    One-to-one payment record for an order.

    STATUS: UNPAID -> PENDING_APPROVAL (InstaPay proof attached) -> PAID.
    A rejected InstaPay proof sends the payment back to UNPAID.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)

    method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=PAYMENT_UNPAID, index=True)

    # Proof-of-payment reference for manual transfers (InstaPay)
    proof_url = db.Column(db.String(512), nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "status": self.status,
            "proof_url": self.proof_url,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approved_by_user_id": self.approved_by_user_id,
        }


class IdempotencyRecord(db.Model):
    """
    Stored response for an order-creation request carrying an Idempotency-Key.

    Persisted (not in-process) so every worker sees the same keys. A key only
    replays for the identity that created it: the same user_id, or for guest
    checkouts the same email (stored as a SHA-256 hash).
    """
    __tablename__ = "idempotency_records"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, unique=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    guest_email_hash = db.Column(db.String(64), nullable=True)
    status_code = db.Column(db.Integer, nullable=False)
    response_body = db.Column(db.JSON, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
