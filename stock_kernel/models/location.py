"""
Module: stock_kernel.models.location
Responsibility: ORM persistence for storage locations (bars, cellars,
    stores) that hold stock.  Locations are owned by the organization
    administration subsystem; the kernel only reads them.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class Location(Base):
    """
    A physical place that holds stock for one organization.

    Guarantees:
        - Inactive locations are invisible to the access gate.
    """

    __tablename__ = "locations"

    __table_args__ = (
        Index("idx_location_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Location {self.name} ({self.id})>"
