# Overview: Storefront settings lookups consumed by checkout.

from __future__ import annotations

from ..errors import OrderError
from ..extensions import db
from ..models import StoreSettings
from ..models.orders import PAYMENT_COD, PAYMENT_INSTAPAY


PAYMENT_METHOD_LABELS = {
    PAYMENT_COD: {"en": "Cash on Delivery", "ar": "الدفع عند الاستلام"},
    PAYMENT_INSTAPAY: {"en": "InstaPay", "ar": "إنستا باي"},
}


def get_settings() -> StoreSettings | None:
    return db.session.query(StoreSettings).order_by(StoreSettings.id).first()


def enabled_payment_methods() -> list[str]:
    """Payment methods currently accepted at checkout (both when unset)."""
    settings = get_settings()
    if settings is None:
        return [PAYMENT_COD, PAYMENT_INSTAPAY]

    methods = []
    if settings.cod_enabled:
        methods.append(PAYMENT_COD)
    if settings.instapay_enabled:
        methods.append(PAYMENT_INSTAPAY)
    return methods


def ensure_payment_method_available(method: str) -> None:
    enabled = enabled_payment_methods()
    if method not in enabled:
        raise OrderError(
            f"Payment method {method} is not available",
            "PAYMENT_NOT_AVAILABLE",
            details={"payment_method": method, "enabled": enabled},
        )


def public_payment_methods() -> list[dict]:
    settings = get_settings()
    instapay_number = (settings.instapay_number or "").strip() if settings else ""

    result = []
    for method in enabled_payment_methods():
        entry = {"id": method, "name": PAYMENT_METHOD_LABELS[method]}
        if method == PAYMENT_INSTAPAY and instapay_number:
            entry["instapay_number"] = instapay_number
        result.append(entry)
    return result
