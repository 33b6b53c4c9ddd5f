"""
Module: stock_kernel.models.access
Responsibility: ORM persistence for per-user location assignments, the
    source of location access for non-elevated roles.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one assignment per (user, location) (uq_assignment_user_location).
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class UserLocationAssignment(Base):
    """
    Grants one user read/write/manage flags at one location.

    Contract:
        Only active assignments count.  can_manage implies write and read;
        can_write implies read (see domain.access.assignment_grants).
    """

    __tablename__ = "user_location_assignments"

    __table_args__ = (
        UniqueConstraint("user_id", "location_id", name="uq_assignment_user_location"),
        Index("idx_assignment_user", "organization_id", "user_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    location_id: Mapped[UUID] = mapped_column(
        ForeignKey("locations.id"), nullable=False
    )
    can_read: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_write: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_manage: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        flags = "".join(
            flag for flag, on in (("r", self.can_read), ("w", self.can_write), ("m", self.can_manage)) if on
        )
        return f"<UserLocationAssignment user={self.user_id} location={self.location_id} {flags}>"
