"""
Module: stock_kernel.models.product
Responsibility: ORM persistence for catalog products.  The catalog is owned
    elsewhere; the kernel reads existence and current unit cost from here,
    through the DatabaseProductCatalog.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class Product(Base):
    """A stockable product with its current cost per unit."""

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_org", "organization_id"),
        CheckConstraint("cost_per_unit >= 0", name="ck_product_cost_non_negative"),
    )

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(50), default="bottle", nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Product {self.name} ({self.id})>"
