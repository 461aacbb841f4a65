# Overview: Outbound email queue for order notifications (best-effort, never blocks checkout).

"""
Order notifications.

Emails are built as plain OutboundEmail values while the order is still
attached to the session, then handed to a NotificationQueue. The queue runs
the configured sender on a small thread pool (or inline when
NOTIFICATIONS_SYNC is set). Sender failures are logged and swallowed: the
outcome of an order request never depends on email delivery.
"""

from __future__ import annotations

import atexit
import logging
import smtplib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from email.message import EmailMessage

from flask import current_app

from ..models import Order


logger = logging.getLogger(__name__)

EXTENSION_KEY = "notifications"


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    body: str
    kind: str = "generic"


class LogEmailSender:
    """Development sender: writes the message to the log."""

    def send(self, message: OutboundEmail) -> None:
        logger.info("Email (%s) to %s: %s", message.kind, message.to, message.subject)


class SmtpEmailSender:
    def __init__(self, host: str, port: int, sender: str, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.sender = sender
        self.timeout = timeout

    def send(self, message: OutboundEmail) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content(message.body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.send_message(msg)


class NotificationQueue:
    def __init__(self, sender, *, workers: int = 2, sync: bool = False):
        self.sender = sender
        self.sync = sync
        self._executor = None if sync else ThreadPoolExecutor(
            max_workers=max(workers, 1),
            thread_name_prefix="notifications",
        )

    def _deliver(self, message: OutboundEmail) -> None:
        try:
            self.sender.send(message)
        except Exception:
            logger.exception("Failed to send %s email to %s", message.kind, message.to)

    def enqueue(self, message: OutboundEmail) -> None:
        if self._executor is None:
            self._deliver(message)
            return
        self._executor.submit(self._deliver, message)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def build_sender(config: dict):
    if config.get("MAIL_BACKEND") == "smtp":
        return SmtpEmailSender(
            host=config.get("SMTP_HOST", "localhost"),
            port=int(config.get("SMTP_PORT", 25)),
            sender=config.get("MAIL_FROM", "orders@storefront.local"),
        )
    return LogEmailSender()


def init_app(app, sender=None) -> NotificationQueue:
    queue = NotificationQueue(
        sender or build_sender(app.config),
        workers=app.config.get("NOTIFICATION_WORKERS", 2),
        sync=bool(app.config.get("NOTIFICATIONS_SYNC")),
    )
    app.extensions[EXTENSION_KEY] = queue
    atexit.register(queue.shutdown)
    return queue


def get_queue() -> NotificationQueue:
    return current_app.extensions[EXTENSION_KEY]


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f} EGP"


def order_placed_messages(order: Order, admin_email: str | None = None) -> list[OutboundEmail]:
    lines = [
        f"- {item.product_name} x{item.quantity}: {_money(item.line_total_cents)}"
        for item in order.items
    ]
    summary = "\n".join(lines + [
        f"Subtotal: {_money(order.subtotal_cents)}",
        f"Discount: -{_money(order.discount_amount_cents)}",
        f"Delivery: {_money(order.delivery_fee_cents)}",
        f"Total: {_money(order.total_cents)}",
        f"Payment: {order.payment_method}",
    ])

    messages = []
    if order.customer_email:
        messages.append(OutboundEmail(
            to=order.customer_email,
            subject=f"Order #{order.id} received",
            body=f"Hi {order.customer_name or 'there'},\n\nWe received your order.\n\n{summary}\n",
            kind="order_confirmation",
        ))
    if admin_email:
        messages.append(OutboundEmail(
            to=admin_email,
            subject=f"New order #{order.id}",
            body=f"New {order.payment_method} order from {order.customer_name}.\n\n{summary}\n",
            kind="admin_new_order",
        ))
    return messages


def notify_order_placed(order: Order) -> None:
    """Queue customer + admin emails for a committed order. Never raises."""
    try:
        admin_email = current_app.config.get("ADMIN_NOTIFICATION_EMAIL")
        queue = get_queue()
        for message in order_placed_messages(order, admin_email):
            queue.enqueue(message)
    except Exception:
        logger.exception("Failed to queue notifications for order %s", order.id)
