"""
Pure domain layer.

Value types, DTOs, the count state machine and the count arithmetic, with
NO dependencies on the ORM, the database or I/O.  Time enters only through
an injected Clock.
"""

from stock_kernel.domain.access import AccessPolicy
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    AdjustmentResult,
    ApprovalResult,
    CountAreaView,
    CountItemView,
    CountPage,
    CountReport,
    CountView,
    InventoryLevel,
    MovementRecord,
    ProductLevels,
    ReconciliationResult,
    TransferResult,
)
from stock_kernel.domain.values import (
    AccessLevel,
    Actor,
    AdjustmentReason,
    AreaStatus,
    CountStatus,
    CountType,
    MovementStatus,
    MovementType,
)
from stock_kernel.domain.variance import VariancePolicy

__all__ = [
    "AccessLevel",
    "AccessPolicy",
    "Actor",
    "AdjustmentReason",
    "AdjustmentResult",
    "ApprovalResult",
    "AreaStatus",
    "Clock",
    "CountAreaView",
    "CountItemView",
    "CountPage",
    "CountReport",
    "CountStatus",
    "CountType",
    "CountView",
    "DeterministicClock",
    "InventoryLevel",
    "MovementRecord",
    "MovementStatus",
    "MovementType",
    "ProductLevels",
    "ReconciliationResult",
    "SystemClock",
    "TransferResult",
    "VariancePolicy",
]
