# Overview: Read-only catalog snapshots used to price and check a cart.

"""
Catalog Snapshot Reader

Loads the authoritative price and stock of the products a cart references.
Every call goes to the database; snapshots are plain frozen dataclasses and
are never cached across requests.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product, ProductVariant
from ..models.catalog import PRODUCT_STATUS_ACTIVE


@dataclass(frozen=True)
class VariantSnapshot:
    id: int
    color: str
    size: str
    stock: int
    out_of_stock: bool

    @property
    def available_quantity(self) -> int:
        return 0 if self.out_of_stock else max(self.stock, 0)


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    price_cents: int
    discount_price_cents: int | None
    stock: int
    variants: tuple[VariantSnapshot, ...] = ()

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)

    @property
    def effective_price_cents(self) -> int:
        """Discount price when present, positive and lower than list price."""
        discount = self.discount_price_cents
        if discount is not None and 0 < discount < self.price_cents:
            return discount
        return self.price_cents

    @property
    def available_quantity(self) -> int:
        if self.variants:
            return sum(v.available_quantity for v in self.variants)
        return max(self.stock, 0)

    def variant(self, color: str | None, size: str | None) -> VariantSnapshot | None:
        color = (color or "").strip().lower()
        size = (size or "").strip().lower()
        for v in self.variants:
            if v.color.lower() == color and v.size.lower() == size:
                return v
        return None


def _snapshot(product: Product, variants: list[ProductVariant]) -> ProductSnapshot:
    return ProductSnapshot(
        id=product.id,
        name=product.display_name,
        price_cents=product.price_cents,
        discount_price_cents=product.discount_price_cents,
        stock=product.stock,
        variants=tuple(
            VariantSnapshot(
                id=v.id,
                color=v.color,
                size=v.size,
                stock=v.stock,
                out_of_stock=bool(v.out_of_stock),
            )
            for v in variants
        ),
    )


def load_snapshots(product_ids) -> dict[int, ProductSnapshot]:
    """
    Fetch active, non-deleted products by id.

    Ids that are missing, inactive or soft-deleted are simply absent from the
    returned mapping; the caller decides how to fail.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}

    products = (
        db.session.query(Product)
        .filter(
            Product.id.in_(ids),
            Product.status == PRODUCT_STATUS_ACTIVE,
            Product.deleted_at.is_(None),
        )
        .all()
    )

    variants_by_product: dict[int, list[ProductVariant]] = {p.id: [] for p in products}
    if products:
        rows = (
            db.session.query(ProductVariant)
            .filter(ProductVariant.product_id.in_(list(variants_by_product)))
            .order_by(ProductVariant.id)
            .all()
        )
        for row in rows:
            variants_by_product[row.product_id].append(row)

    return {p.id: _snapshot(p, variants_by_product[p.id]) for p in products}
