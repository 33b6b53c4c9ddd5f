"""
DTOs -- immutable results returned by the stock kernel.

Responsibility:
    Frozen data structures that services and selectors hand back to callers.
    ORM rows never leave a transaction; each model converts itself with
    ``to_dto()`` before the session closes.

Architecture position:
    Kernel > Domain -- pure, zero I/O, free of ORM dependencies.

Data flow:
    InventoryItem row -> InventoryLevel
    StockMovement row -> MovementRecord
    InventoryCount / CountArea / CountItem rows -> CountView / CountAreaView /
        CountItemView -> CountReport
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.values import (
    AdjustmentReason,
    AreaStatus,
    CountStatus,
    CountType,
    MovementStatus,
    MovementType,
)

# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryLevel:
    """Ledger row for one (product, location)."""

    id: UUID
    organization_id: UUID
    product_id: UUID
    location_id: UUID
    current_quantity: Decimal
    minimum_quantity: Decimal
    maximum_quantity: Decimal | None
    last_count_date: datetime | None
    is_low_stock: bool = False


@dataclass(frozen=True)
class MovementRecord:
    """One entry of the append-only movement log."""

    id: UUID
    organization_id: UUID
    product_id: UUID
    from_location_id: UUID
    to_location_id: UUID
    quantity: Decimal
    movement_type: MovementType
    status: MovementStatus
    reason: AdjustmentReason | None
    actor_id: UUID
    notes: str | None
    count_id: UUID | None
    balance_after: Decimal | None
    completed_at: datetime


@dataclass(frozen=True)
class TransferResult:
    movement: MovementRecord
    source: InventoryLevel
    destination: InventoryLevel


@dataclass(frozen=True)
class AdjustmentResult:
    level: InventoryLevel
    movement: MovementRecord


@dataclass(frozen=True)
class ProductLevels:
    """A product's ledger rows across the locations the caller can read."""

    product_id: UUID
    levels: tuple[InventoryLevel, ...]
    total_quantity: Decimal


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CountItemView:
    id: UUID
    area_id: UUID
    product_id: UUID
    full_units: int
    partial_unit: Decimal
    total_quantity: Decimal
    expected_qty: Decimal
    variance: Decimal
    unit_cost: Decimal
    total_value: Decimal
    notes: str | None
    counted_by_id: UUID
    counted_at: datetime


@dataclass(frozen=True)
class CountAreaView:
    id: UUID
    count_id: UUID
    name: str
    order: int
    status: AreaStatus
    items: tuple[CountItemView, ...] = ()


@dataclass(frozen=True)
class CountView:
    id: UUID
    organization_id: UUID
    location_id: UUID
    name: str
    count_type: CountType
    status: CountStatus
    total_value: Decimal
    items_counted: int
    notes: str | None
    started_at: datetime | None
    completed_at: datetime | None
    approved_at: datetime | None
    approved_by_id: UUID | None
    areas: tuple[CountAreaView, ...] = ()


@dataclass(frozen=True)
class CountPage:
    counts: tuple[CountView, ...]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)


@dataclass(frozen=True)
class VarianceLine:
    """A count line whose variance crossed the significance thresholds."""

    product_id: UUID
    area_id: UUID
    area_name: str
    expected_qty: Decimal
    counted_qty: Decimal
    variance: Decimal
    variance_percent: Decimal
    unit_cost: Decimal
    variance_value: Decimal


@dataclass(frozen=True)
class AreaReport:
    area_id: UUID
    name: str
    order: int
    status: AreaStatus
    items: tuple[CountItemView, ...]
    item_count: int
    subtotal_value: Decimal


@dataclass(frozen=True)
class CountReportSummary:
    total_items: int
    total_value: Decimal
    areas_completed: int
    total_areas: int
    progress_percent: Decimal


@dataclass(frozen=True)
class CountReport:
    count: CountView
    summary: CountReportSummary
    areas: tuple[AreaReport, ...]
    significant_variances: tuple[VarianceLine, ...]


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppliedProduct:
    product_id: UUID
    previous_quantity: Decimal
    new_quantity: Decimal
    movement_id: UUID | None


@dataclass(frozen=True)
class FailedProduct:
    product_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Outcome of applying an approved count to the ledger.

    Each product is applied in its own transaction, so a failure on one
    product leaves the others applied.
    """

    count_id: UUID
    location_id: UUID
    applied: tuple[AppliedProduct, ...]
    failed: tuple[FailedProduct, ...]

    @property
    def is_complete(self) -> bool:
        return not self.failed

    @property
    def failed_product_ids(self) -> tuple[UUID, ...]:
        return tuple(f.product_id for f in self.failed)


@dataclass(frozen=True)
class ApprovalResult:
    count: CountView
    reconciliation: ReconciliationResult
