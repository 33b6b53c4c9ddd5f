"""
Count arithmetic and variance rules (``stock_kernel.domain.variance``).

Responsibility:
    Pure functions for the numbers a physical count produces: counted
    quantity from full and partial units, variance against the ledger
    snapshot, extended value, variance percentage, and the significance
    test used by the variance report.  Also the low-stock predicate shared
    by the ledger selectors.

Architecture position:
    Kernel > Domain.  ZERO I/O.

Invariants enforced:
    - total_quantity = full_units + partial_unit
    - variance = total_quantity - expected_qty
    - total_value = total_quantity * unit_cost
    - full_units is a non-negative integer; 0 <= partial_unit <= 0.9
"""

from dataclasses import dataclass
from decimal import Decimal

from stock_kernel.domain.quantities import ZERO, round_value, to_quantity
from stock_kernel.exceptions import InvalidQuantityError

MAX_PARTIAL_UNIT = Decimal("0.9")
DEFAULT_ABSOLUTE_THRESHOLD = Decimal("1")
DEFAULT_RELATIVE_THRESHOLD = Decimal("0.1")
DEFAULT_LOW_STOCK_FALLBACK = Decimal("5")


@dataclass(frozen=True)
class VariancePolicy:
    """
    Thresholds for flagging a count line as a significant variance.

    A line is significant when |variance| exceeds absolute_threshold units,
    or when |variance| / max(expected, 1) exceeds relative_threshold.
    """

    absolute_threshold: Decimal = DEFAULT_ABSOLUTE_THRESHOLD
    relative_threshold: Decimal = DEFAULT_RELATIVE_THRESHOLD

    def __post_init__(self) -> None:
        if self.absolute_threshold < 0 or self.relative_threshold < 0:
            raise ValueError("Variance thresholds must be non-negative")

    def is_significant(self, variance: Decimal, expected_qty: Decimal) -> bool:
        magnitude = abs(variance)
        if magnitude > self.absolute_threshold:
            return True
        return magnitude / max(expected_qty, Decimal(1)) > self.relative_threshold


@dataclass(frozen=True)
class ItemFigures:
    """Derived values of one count line."""

    total_quantity: Decimal
    variance: Decimal
    total_value: Decimal


def validate_counted_units(full_units: object, partial_unit: object) -> tuple[int, Decimal]:
    """
    Validate and normalize a counter's input.

    Raises:
        InvalidQuantityError: full_units is not a non-negative integer, or
            partial_unit is outside [0, 0.9].
    """
    if isinstance(full_units, bool) or not isinstance(full_units, (int, Decimal)):
        raise InvalidQuantityError("full_units", full_units, "must be a whole number")
    if isinstance(full_units, Decimal):
        if full_units != full_units.to_integral_value():
            raise InvalidQuantityError("full_units", full_units, "must be a whole number")
        full_units = int(full_units)
    if full_units < 0:
        raise InvalidQuantityError("full_units", full_units, "must be zero or more")

    partial = to_quantity(partial_unit, "partial_unit")
    if partial < ZERO or partial > MAX_PARTIAL_UNIT:
        raise InvalidQuantityError(
            "partial_unit", partial_unit, f"must be between 0 and {MAX_PARTIAL_UNIT}"
        )
    return full_units, partial


def compute_item_figures(
    full_units: int,
    partial_unit: Decimal,
    expected_qty: Decimal,
    unit_cost: Decimal,
) -> ItemFigures:
    total = Decimal(full_units) + partial_unit
    return ItemFigures(
        total_quantity=total,
        variance=total - expected_qty,
        total_value=total * unit_cost,
    )


def variance_percent(variance: Decimal, expected_qty: Decimal) -> Decimal:
    """variance / expected * 100, or 0 when nothing was expected."""
    if expected_qty == ZERO:
        return ZERO
    return round_value(variance / expected_qty * 100)


def is_low_stock(
    current_quantity: Decimal,
    minimum_quantity: Decimal,
    fallback_threshold: Decimal = DEFAULT_LOW_STOCK_FALLBACK,
) -> bool:
    """
    Below par when a par level is set; otherwise at or under the fallback.
    """
    if minimum_quantity > ZERO:
        return current_quantity < minimum_quantity
    return current_quantity <= fallback_threshold
