# backend/storefront/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded waits so an unreachable or locked database fails fast (503)
    DB_CONNECT_TIMEOUT_SECONDS = int(os.environ.get("DB_CONNECT_TIMEOUT_SECONDS", "10"))
    DB_POOL_TIMEOUT_SECONDS = int(os.environ.get("DB_POOL_TIMEOUT_SECONDS", "10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Outbound email
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "log")  # log | smtp
    MAIL_FROM = os.environ.get("MAIL_FROM", "orders@storefront.local")
    SMTP_HOST = os.environ.get("SMTP_HOST", "localhost")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "25"))
    ADMIN_NOTIFICATION_EMAIL = os.environ.get("ADMIN_NOTIFICATION_EMAIL")
    NOTIFICATION_WORKERS = int(os.environ.get("NOTIFICATION_WORKERS", "2"))
    NOTIFICATIONS_SYNC = False

    # Checkout idempotency
    IDEMPOTENCY_TTL_HOURS = int(os.environ.get("IDEMPOTENCY_TTL_HOURS", "24"))
    IDEMPOTENCY_KEY_MAX_LENGTH = 128

    ORDERS_PER_PAGE_DEFAULT = 20
    ORDERS_PER_PAGE_MAX = 100


def engine_options(config: dict) -> dict:
    """Build SQLALCHEMY_ENGINE_OPTIONS from the timeout settings."""
    uri = config.get("SQLALCHEMY_DATABASE_URI") or ""
    connect_timeout = config.get("DB_CONNECT_TIMEOUT_SECONDS", 10)

    if uri.startswith("sqlite"):
        # sqlite3 "timeout" is the busy wait on a locked database file
        return {"connect_args": {"timeout": connect_timeout}}

    options = {
        "pool_pre_ping": True,
        "pool_timeout": config.get("DB_POOL_TIMEOUT_SECONDS", 10),
    }
    if uri.startswith("postgresql"):
        options["connect_args"] = {"connect_timeout": connect_timeout}
    return options
