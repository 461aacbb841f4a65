from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


DISCOUNT_PERCENT = "PERCENT"
DISCOUNT_FIXED = "FIXED"


class DiscountCode(db.Model):
    """
    Checkout discount code.

    value: 1-100 for PERCENT, cents for FIXED.
    used_count never exceeds usage_limit when a limit is set; the increment is a
    conditional UPDATE executed in the same transaction that creates the order.
    """
    __tablename__ = "discount_codes"
    __table_args__ = (
        db.Index("ix_discount_codes_enabled_window", "enabled", "valid_from", "valid_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored upper-case; lookups normalize the same way
    code = db.Column(db.String(64), nullable=False, unique=True)

    discount_type = db.Column(db.String(16), nullable=False)  # PERCENT, FIXED
    value = db.Column(db.Integer, nullable=False)

    min_order_amount_cents = db.Column(db.Integer, nullable=True)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @db.validates("code")
    def _normalize_code(self, key, value):
        return value.strip().upper() if isinstance(value, str) else value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "type": self.discount_type,
            "value": self.value,
            "min_order_amount_cents": self.min_order_amount_cents,
            "valid_from": to_utc_z(self.valid_from) if self.valid_from else None,
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "enabled": self.enabled,
        }
