"""
Stock domain value types (``stock_kernel.domain.values``).

Enumerations shared by the ORM models, services and DTOs, plus the Actor
value object that identifies who is calling.  Enum values are the strings
persisted in the database.

Architecture position: Kernel > Domain.  ZERO I/O.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class CountType(str, Enum):
    """Scope of a physical count."""

    FULL = "FULL"
    SPOT = "SPOT"
    CYCLE = "CYCLE"


class CountStatus(str, Enum):
    """Lifecycle of a physical count.

    Contract: DRAFT -> IN_PROGRESS -> COMPLETED -> APPROVED, forward only.
    APPROVED is terminal and locks the count.
    """

    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"


class AreaStatus(str, Enum):
    """Progress of one storage area within a count."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class MovementType(str, Enum):
    """Category of a movement-log entry."""

    TRANSFER = "TRANSFER"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    WASTE = "WASTE"
    COUNT_IN = "COUNT_IN"
    COUNT_OUT = "COUNT_OUT"
    RECEIVED = "RECEIVED"
    SOLD = "SOLD"


class MovementStatus(str, Enum):
    """Processing status of a movement.  The kernel writes only COMPLETED."""

    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AdjustmentReason(str, Enum):
    """Why stock was adjusted or written off."""

    DAMAGE = "DAMAGE"
    LOSS = "LOSS"
    FOUND = "FOUND"
    CORRECTION = "CORRECTION"
    OTHER = "OTHER"


class AccessLevel(str, Enum):
    """Location access levels.  Each level implies the ones before it."""

    READ = "read"
    WRITE = "write"
    MANAGE = "manage"


@dataclass(frozen=True)
class Actor:
    """
    The authenticated caller, as resolved by the identity layer.

    Contract: opaque to the kernel apart from these three fields.  Role is
    matched against the configured access policy; unknown roles get nothing.
    """

    id: UUID
    organization_id: UUID
    role: str
