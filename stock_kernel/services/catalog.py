"""
Product catalog port.

The catalog subsystem owns products.  The kernel needs two facts from it:
whether a product exists in the organization, and its current unit cost
(snapshotted into count lines on first submission).  ProductCatalog is the
port; DatabaseProductCatalog reads the ``products`` table.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select

from stock_kernel.db.transaction import TransactionRunner
from stock_kernel.exceptions import ProductNotFoundError
from stock_kernel.models.product import Product


@dataclass(frozen=True)
class CatalogProduct:
    id: UUID
    organization_id: UUID
    name: str
    cost_per_unit: Decimal


class ProductCatalog(Protocol):
    def find(self, organization_id: UUID, product_id: UUID) -> CatalogProduct | None:
        ...


class DatabaseProductCatalog:
    """ProductCatalog backed by the products table of the kernel database."""

    def __init__(self, runner: TransactionRunner):
        self._runner = runner

    def find(self, organization_id: UUID, product_id: UUID) -> CatalogProduct | None:
        def _load(session):
            row = session.execute(
                select(Product).where(
                    Product.id == product_id,
                    Product.organization_id == organization_id,
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            return CatalogProduct(
                id=row.id,
                organization_id=row.organization_id,
                name=row.name,
                cost_per_unit=row.cost_per_unit,
            )

        return self._runner.read(_load)


def require_product(
    catalog: ProductCatalog, organization_id: UUID, product_id: UUID
) -> CatalogProduct:
    """Look a product up or raise ProductNotFoundError."""
    product = catalog.find(organization_id, product_id)
    if product is None:
        raise ProductNotFoundError(str(product_id))
    return product
