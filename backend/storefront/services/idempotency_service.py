# Overview: Idempotency-Key support for order creation.

"""
A client may send an Idempotency-Key header with order creation. The first
successful response is stored with the order (same transaction) and replayed
for repeats of the key until it expires.

A stored response is only replayed to the identity that created it. Any other
caller reusing the key gets IDEMPOTENCY_KEY_REUSED (409) and never sees the
stored order.
"""

from __future__ import annotations

import hashlib
from datetime import timedelta

from flask import current_app

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import IdempotencyRecord
from storefront.time_utils import as_utc_naive, utcnow


def normalize_key(raw: str | None) -> str | None:
    key = (raw or "").strip()
    if not key:
        return None
    max_length = current_app.config.get("IDEMPOTENCY_KEY_MAX_LENGTH", 128)
    if len(key) > max_length:
        raise ValidationError(f"Idempotency-Key must be at most {max_length} characters")
    return key


def hash_email(email: str | None) -> str | None:
    email = (email or "").strip().lower()
    if not email:
        return None
    return hashlib.sha256(email.encode("utf-8")).hexdigest()


def expiry():
    return utcnow() + timedelta(hours=current_app.config.get("IDEMPOTENCY_TTL_HOURS", 24))


def build_record(
    key: str,
    order_id: int,
    status_code: int,
    body: dict,
    *,
    user_id: int | None = None,
    guest_email: str | None = None,
) -> IdempotencyRecord:
    return IdempotencyRecord(
        key=key,
        order_id=order_id,
        user_id=user_id,
        guest_email_hash=None if user_id is not None else hash_email(guest_email),
        status_code=status_code,
        response_body=body,
        expires_at=expiry(),
    )


def _same_owner(record: IdempotencyRecord, user_id: int | None, guest_email: str | None) -> bool:
    if record.user_id is not None or user_id is not None:
        return record.user_id == user_id
    email_hash = hash_email(guest_email)
    return email_hash is not None and email_hash == record.guest_email_hash


def find_response(
    key: str,
    user_id: int | None = None,
    guest_email: str | None = None,
) -> tuple[dict, int] | None:
    """
    Return (body, status) stored for a live key. Expired keys are purged.

    Raises ConflictError (IDEMPOTENCY_KEY_REUSED) when the key belongs to a
    different identity.
    """
    record = db.session.query(IdempotencyRecord).filter_by(key=key).first()
    if record is None:
        return None
    if as_utc_naive(record.expires_at) <= utcnow():
        db.session.delete(record)
        db.session.commit()
        return None
    if not _same_owner(record, user_id, guest_email):
        raise ConflictError(
            "Idempotency-Key was already used for a different checkout",
            "IDEMPOTENCY_KEY_REUSED",
        )
    return record.response_body, record.status_code


def purge_expired() -> int:
    count = (
        db.session.query(IdempotencyRecord)
        .filter(IdempotencyRecord.expires_at <= utcnow())
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return count
