# Overview: Inventory consistency guard; the only writer of product and variant stock.

"""
Inventory Consistency Guard

Stock invariants (authoritative):
- Available quantity never goes negative.
- Stock is decremented only when an order is confirmed, and restored only when
  a CONFIRMED order is cancelled.
- Each decrement is a single conditional UPDATE:
      UPDATE ... SET stock = stock - :qty WHERE id = :id AND stock >= :qty
  A row count of zero means concurrent activity already consumed the stock.
- Lines that consumed a specific variant (order_items.variant_id) hit the
  product_variants row; all other lines hit products.stock. Restitution
  targets exactly the same rows.
- A restitution whose row has since been deleted updates nothing; it is
  logged as a warning and the cancellation still goes through.

Transactions:
- These functions never commit. The caller runs them inside one transaction
  together with the order status write, so a failure on line N rolls back the
  decrements of lines 1..N-1.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from ..errors import ConflictError
from ..extensions import db
from ..models import OrderItem, Product, ProductVariant


logger = logging.getLogger(__name__)


def _decrement_statement(item: OrderItem):
    if item.variant_id is not None:
        return (
            update(ProductVariant)
            .where(
                ProductVariant.id == item.variant_id,
                ProductVariant.stock >= item.quantity,
                ProductVariant.out_of_stock.is_(False),
            )
            .values(stock=ProductVariant.stock - item.quantity)
        )
    return (
        update(Product)
        .where(Product.id == item.product_id, Product.stock >= item.quantity)
        .values(stock=Product.stock - item.quantity)
    )


def _restore_statement(item: OrderItem):
    if item.variant_id is not None:
        return (
            update(ProductVariant)
            .where(ProductVariant.id == item.variant_id)
            .values(stock=ProductVariant.stock + item.quantity)
        )
    return (
        update(Product)
        .where(Product.id == item.product_id)
        .values(stock=Product.stock + item.quantity)
    )


def _current_stock(item: OrderItem) -> int:
    if item.variant_id is not None:
        variant = db.session.get(ProductVariant, item.variant_id)
        if variant is None or variant.out_of_stock:
            return 0
        return variant.stock
    product = db.session.get(Product, item.product_id)
    return product.stock if product is not None else 0


def decrement_stock(items: list[OrderItem]) -> None:
    """
    Conditionally decrement stock for every line, in line order.

    Raises ConflictError (OUT_OF_STOCK_CONFIRMATION) naming the first line whose
    decrement did not apply. Earlier decrements in the same transaction are left
    for the caller's rollback to undo.
    """
    for item in items:
        result = db.session.execute(
            _decrement_statement(item),
            execution_options={"synchronize_session": False},
        )
        if result.rowcount != 1:
            available = _current_stock(item)
            raise ConflictError(
                f"{item.product_name} became out of stock; order cannot be confirmed",
                "OUT_OF_STOCK_CONFIRMATION",
                details={
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "variant_id": item.variant_id,
                    "requested": item.quantity,
                    "available": available,
                },
            )


def restore_stock(items: list[OrderItem]) -> None:
    """Return previously decremented stock for every line (restitution)."""
    for item in items:
        result = db.session.execute(
            _restore_statement(item),
            execution_options={"synchronize_session": False},
        )
        if result.rowcount != 1:
            logger.warning(
                "Stock not restored for order item %s (product %s, variant %s, qty %s): row missing",
                item.id, item.product_id, item.variant_id, item.quantity,
            )
