"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the append-only movement log.  Every
    change to a ledger row writes exactly one StockMovement in the same
    transaction.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - quantity > 0; direction is carried by movement_type, never by sign
      (ck_movement_quantity_positive).
    - TRANSFER rows have from_location_id != to_location_id; all other
      types have from_location_id == to_location_id
      (ck_movement_locations).
    - Rows are never updated or deleted (ORM listeners in db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UTCDateTime
from stock_kernel.db.types import enum_type
from stock_kernel.domain.dtos import MovementRecord
from stock_kernel.domain.values import AdjustmentReason, MovementStatus, MovementType


class StockMovement(Base):
    """
    One immutable ledger-affecting event.

    Guarantees:
        - balance_after records the resulting quantity at the affected
          location for single-location movements; None for transfers.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint(
            "(movement_type = 'TRANSFER' AND from_location_id <> to_location_id) "
            "OR (movement_type <> 'TRANSFER' AND from_location_id = to_location_id)",
            name="ck_movement_locations",
        ),
        Index("idx_movement_product", "organization_id", "product_id"),
        Index("idx_movement_from", "from_location_id"),
        Index("idx_movement_to", "to_location_id"),
        Index("idx_movement_completed", "completed_at"),
        Index("idx_movement_count", "count_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    from_location_id: Mapped[UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)
    to_location_id: Mapped[UUID] = mapped_column(ForeignKey("locations.id"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    movement_type: Mapped[MovementType] = mapped_column(
        enum_type(MovementType), nullable=False
    )
    status: Mapped[MovementStatus] = mapped_column(
        enum_type(MovementStatus), default=MovementStatus.COMPLETED, nullable=False
    )
    reason: Mapped[AdjustmentReason | None] = mapped_column(
        enum_type(AdjustmentReason), nullable=True
    )

    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    count_id: Mapped[UUID | None] = mapped_column(nullable=True)
    balance_after: Mapped[Decimal | None] = mapped_column(nullable=True)

    completed_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )

    def to_dto(self) -> MovementRecord:
        return MovementRecord(
            id=self.id,
            organization_id=self.organization_id,
            product_id=self.product_id,
            from_location_id=self.from_location_id,
            to_location_id=self.to_location_id,
            quantity=self.quantity,
            movement_type=self.movement_type,
            status=self.status,
            reason=self.reason,
            actor_id=self.actor_id,
            notes=self.notes,
            count_id=self.count_id,
            balance_after=self.balance_after,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type.value} {self.quantity} "
            f"product={self.product_id}>"
        )
