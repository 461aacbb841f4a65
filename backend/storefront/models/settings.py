from __future__ import annotations

from ..extensions import db


class StoreSettings(db.Model):
    """
    Storefront-wide settings consumed by checkout.

    Single-row table. When no row exists every payment method is enabled.
    """
    __tablename__ = "store_settings"

    id = db.Column(db.Integer, primary_key=True)
    cod_enabled = db.Column(db.Boolean, nullable=False, default=True)
    instapay_enabled = db.Column(db.Boolean, nullable=False, default=True)
    instapay_number = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
