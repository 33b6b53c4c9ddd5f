"""
Module: stock_kernel.models.count
Responsibility: ORM persistence for physical counts: the count header, its
    ordered storage areas, and the counted lines inside each area.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One line per (area, product) (uq_count_item_area_product).
    - 0 <= partial_unit <= 0.9 and full_units >= 0 (CHECK constraints).
    - Areas point at their count and items at their area by id only; there
      are no ORM collections, so parents are found by query.
    - An APPROVED count is frozen (ORM listener in db/immutability.py).

Audit relevance:
    approved_at / approved_by_id are the approval provenance.  expected_qty
    and unit_cost are snapshots taken on first submission and never refreshed.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.db.types import enum_type
from stock_kernel.domain.dtos import CountAreaView, CountItemView, CountView
from stock_kernel.domain.values import AreaStatus, CountStatus, CountType

__all__ = [
    "InventoryCount",
    "CountArea",
    "CountItem",
    "CountStatus",
    "CountType",
    "AreaStatus",
]


class InventoryCount(TrackedBase):
    """
    Header of a physical count at one location.

    Guarantees:
        - total_value and items_counted are recomputed from the items after
          every item mutation.
        - approved_at is the clock time of approval, never backdated.
    """

    __tablename__ = "inventory_counts"

    __table_args__ = (
        Index("idx_count_location", "organization_id", "location_id"),
        Index("idx_count_status", "status"),
    )

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    count_type: Mapped[CountType] = mapped_column(
        enum_type(CountType), default=CountType.FULL, nullable=False
    )
    status: Mapped[CountStatus] = mapped_column(
        enum_type(CountStatus), default=CountStatus.DRAFT, nullable=False
    )

    total_value: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    items_counted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self, areas: tuple[CountAreaView, ...] = ()) -> CountView:
        return CountView(
            id=self.id,
            organization_id=self.organization_id,
            location_id=self.location_id,
            name=self.name,
            count_type=self.count_type,
            status=self.status,
            total_value=self.total_value,
            items_counted=self.items_counted,
            notes=self.notes,
            started_at=self.started_at,
            completed_at=self.completed_at,
            approved_at=self.approved_at,
            approved_by_id=self.approved_by_id,
            areas=areas,
        )

    def __repr__(self) -> str:
        return f"<InventoryCount {self.name}: {self.status.value}>"


class CountArea(TrackedBase):
    """A storage area (shelf, cooler, speed rail) walked during a count."""

    __tablename__ = "count_areas"

    __table_args__ = (
        Index("idx_count_area_count", "count_id", "sort_order"),
    )

    count_id: Mapped[UUID] = mapped_column(ForeignKey("inventory_counts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column("sort_order", Integer, default=0, nullable=False)
    status: Mapped[AreaStatus] = mapped_column(
        enum_type(AreaStatus), default=AreaStatus.PENDING, nullable=False
    )

    def to_dto(self, items: tuple[CountItemView, ...] = ()) -> CountAreaView:
        return CountAreaView(
            id=self.id,
            count_id=self.count_id,
            name=self.name,
            order=self.order,
            status=self.status,
            items=items,
        )

    def __repr__(self) -> str:
        return f"<CountArea {self.order}:{self.name} {self.status.value}>"


class CountItem(TrackedBase):
    """
    One counted product within an area.

    Guarantees:
        - total_quantity = full_units + partial_unit
        - variance = total_quantity - expected_qty
        - total_value = total_quantity * unit_cost
    """

    __tablename__ = "count_items"

    __table_args__ = (
        UniqueConstraint("area_id", "product_id", name="uq_count_item_area_product"),
        Index("idx_count_item_product", "product_id"),
        CheckConstraint("full_units >= 0", name="ck_count_item_full_units"),
        CheckConstraint(
            "partial_unit >= 0 AND partial_unit <= 0.9",
            name="ck_count_item_partial_unit",
        ),
    )

    area_id: Mapped[UUID] = mapped_column(ForeignKey("count_areas.id"), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)

    full_units: Mapped[int] = mapped_column(Integer, nullable=False)
    partial_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    expected_qty: Mapped[Decimal] = mapped_column(nullable=False)
    variance: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_value: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    counted_by_id: Mapped[UUID] = mapped_column(nullable=False)
    counted_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> CountItemView:
        return CountItemView(
            id=self.id,
            area_id=self.area_id,
            product_id=self.product_id,
            full_units=self.full_units,
            partial_unit=self.partial_unit,
            total_quantity=self.total_quantity,
            expected_qty=self.expected_qty,
            variance=self.variance,
            unit_cost=self.unit_cost,
            total_value=self.total_value,
            notes=self.notes,
            counted_by_id=self.counted_by_id,
            counted_at=self.counted_at,
        )

    def __repr__(self) -> str:
        return f"<CountItem product={self.product_id} qty={self.total_quantity}>"
