# Overview: Request payload parsing for checkout; normalizes client JSON into typed values.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from .errors import OrderError, ValidationError
from .models.orders import PAYMENT_COD, PAYMENT_METHODS
from .services.pricing_service import CartLine, normalize_discount_code


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MAX_LINES = 100
MAX_QUANTITY = 10_000


@dataclass(frozen=True)
class FreeformAddress:
    text: str

    def to_dict(self) -> dict:
        return {"kind": "freeform", "text": self.text}


@dataclass(frozen=True)
class StructuredAddress:
    street: str
    city: str
    apartment: str = ""
    postal_code: str = ""
    country: str = "Egypt"

    def with_city(self, city: str) -> "StructuredAddress":
        return StructuredAddress(
            street=self.street,
            city=city,
            apartment=self.apartment,
            postal_code=self.postal_code,
            country=self.country,
        )

    def to_dict(self) -> dict:
        return {
            "kind": "structured",
            "street": self.street,
            "apartment": self.apartment,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
        }


Address = Union[FreeformAddress, StructuredAddress]


@dataclass(frozen=True)
class CheckoutRequest:
    lines: list[CartLine]
    payment_method: str = PAYMENT_COD
    shipping_address: Address | None = None
    city_id: int | None = None
    shipping_method_id: int | None = None
    discount_code: str | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    special_instructions: str | None = None


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value))


def _clean_str(value: Any, *, max_length: int | None = None, name: str = "value") -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return value or None


def parse_int(value: Any, name: str, *, code: str = "VALIDATION_ERROR") -> int:
    """Strict integer coercion: rejects bools, floats and non-digit strings."""
    if isinstance(value, bool):
        raise OrderError(f"{name} must be an integer", code)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if re.fullmatch(r"-?\d+", stripped):
            return int(stripped)
    raise OrderError(f"{name} must be an integer", code)


def parse_optional_int(value: Any, name: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_int(value, name)


def parse_address(raw: Any) -> Address | None:
    """Accept a free-text address or a structured object; return one tagged value."""
    if raw is None:
        return None
    if isinstance(raw, str):
        text = raw.strip()
        return FreeformAddress(text) if text else None
    if not isinstance(raw, dict):
        raise ValidationError("shipping_address must be a string or an object")

    street = _clean_str(raw.get("street", raw.get("address")), max_length=255, name="shipping_address.street")
    city = _clean_str(raw.get("city"), max_length=128, name="shipping_address.city")
    if not street or not city:
        raise ValidationError("shipping_address requires street and city")

    return StructuredAddress(
        street=street,
        city=city,
        apartment=_clean_str(raw.get("apartment"), max_length=64, name="shipping_address.apartment") or "",
        postal_code=_clean_str(raw.get("postal_code", raw.get("postalCode")), max_length=32,
                               name="shipping_address.postal_code") or "",
        country=_clean_str(raw.get("country"), max_length=64, name="shipping_address.country") or "Egypt",
    )


def _parse_line(raw: Any, index: int) -> CartLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    product_id = raw.get("product_id", raw.get("product"))
    if product_id is None:
        raise ValidationError(f"items[{index}].product_id is required")
    product_id = parse_int(product_id, f"items[{index}].product_id")

    quantity = parse_int(raw.get("quantity"), f"items[{index}].quantity", code="INVALID_QUANTITY")
    if quantity < 1 or quantity > MAX_QUANTITY:
        raise OrderError(
            f"items[{index}].quantity must be between 1 and {MAX_QUANTITY}",
            "INVALID_QUANTITY",
            details={"product_id": product_id, "quantity": quantity},
        )

    return CartLine(
        product_id=product_id,
        quantity=quantity,
        color=_clean_str(raw.get("color"), max_length=64, name=f"items[{index}].color"),
        size=_clean_str(raw.get("size"), max_length=32, name=f"items[{index}].size"),
    )


def parse_checkout(payload: Any) -> CheckoutRequest:
    """
    Validate + normalize a checkout payload.

    Accepts both the guest_* fields and the first_name/last_name/email/phone
    contact fields. Item prices and delivery_fee are ignored.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    if len(items) > MAX_LINES:
        raise ValidationError(f"items cannot contain more than {MAX_LINES} lines")
    lines = [_parse_line(raw, i) for i, raw in enumerate(items)]

    method = payload.get("payment_method")
    if method is None:
        method = PAYMENT_COD
    method = str(method).strip().upper()
    if method not in PAYMENT_METHODS:
        raise OrderError(
            f"Invalid payment method: {payload.get('payment_method')}",
            "INVALID_PAYMENT_METHOD",
            details={"allowed": list(PAYMENT_METHODS)},
        )

    guest_name = _clean_str(payload.get("guest_name"), max_length=255, name="guest_name")
    if not guest_name:
        first = _clean_str(payload.get("first_name"), max_length=120, name="first_name") or ""
        last = _clean_str(payload.get("last_name"), max_length=120, name="last_name") or ""
        guest_name = f"{first} {last}".strip() or None

    guest_email = (
        _clean_str(payload.get("guest_email"), max_length=255, name="guest_email")
        or _clean_str(payload.get("email"), max_length=255, name="email")
    )
    guest_phone = (
        _clean_str(payload.get("guest_phone"), max_length=64, name="guest_phone")
        or _clean_str(payload.get("phone"), max_length=64, name="phone")
    )

    return CheckoutRequest(
        lines=lines,
        payment_method=method,
        shipping_address=parse_address(payload.get("shipping_address")),
        city_id=parse_optional_int(payload.get("city_id"), "city_id"),
        shipping_method_id=parse_optional_int(payload.get("shipping_method_id"), "shipping_method_id"),
        discount_code=normalize_discount_code(payload.get("discount_code")),
        guest_name=guest_name,
        guest_email=guest_email.lower() if guest_email else None,
        guest_phone=guest_phone,
        special_instructions=_clean_str(payload.get("special_instructions"), max_length=2000,
                                        name="special_instructions"),
    )
