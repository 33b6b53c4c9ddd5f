"""
Module: stock_kernel.models.inventory
Responsibility: ORM persistence for ledger rows -- the running quantity of
    one product at one location.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One row per (organization, product, location) (uq_inventory_item_key).
    - current_quantity >= 0 and minimum_quantity >= 0 (CHECK constraints,
      backed by service-level validation that raises typed errors first).
    - Rows are never deleted (ORM listener in db/immutability.py).

Failure modes:
    - IntegrityError on a concurrent lazy insert of the same key; the ledger
      resolves it inside a savepoint and re-locks the winner's row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.domain.dtos import InventoryLevel
from stock_kernel.domain.variance import DEFAULT_LOW_STOCK_FALLBACK, is_low_stock


class InventoryItem(TrackedBase):
    """
    Running stock of one product at one location.

    Contract:
        Only the StockLedger and the ReconciliationApplier write
        current_quantity.  Every change is paired with a StockMovement in the
        same transaction.

    Guarantees:
        - Created lazily on first write with zero quantities.
        - maximum_quantity >= minimum_quantity is NOT enforced.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "product_id", "location_id",
            name="uq_inventory_item_key",
        ),
        Index("idx_inventory_item_location", "location_id"),
        Index("idx_inventory_item_product", "product_id"),
        CheckConstraint("current_quantity >= 0", name="ck_inventory_current_non_negative"),
        CheckConstraint("minimum_quantity >= 0", name="ck_inventory_minimum_non_negative"),
    )

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    location_id: Mapped[UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)

    current_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    minimum_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    maximum_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)

    last_count_date: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(
        self, low_stock_fallback: Decimal = DEFAULT_LOW_STOCK_FALLBACK
    ) -> InventoryLevel:
        return InventoryLevel(
            id=self.id,
            organization_id=self.organization_id,
            product_id=self.product_id,
            location_id=self.location_id,
            current_quantity=self.current_quantity,
            minimum_quantity=self.minimum_quantity,
            maximum_quantity=self.maximum_quantity,
            last_count_date=self.last_count_date,
            is_low_stock=is_low_stock(
                self.current_quantity, self.minimum_quantity, low_stock_fallback
            ),
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryItem product={self.product_id} location={self.location_id} "
            f"qty={self.current_quantity}>"
        )
