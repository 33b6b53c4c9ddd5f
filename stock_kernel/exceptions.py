"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the stock ledger and count workflow need to react differently to
"not allowed", "not enough stock", and "somebody else got there first".
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (quantities, ids), not just a message

Example:
    try:
        ledger.transfer(product_id, bar_id, cellar_id, Decimal("4"), actor=actor)
    except InsufficientStockError as e:
        api_response(code=e.code, requested=e.requested, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- AccessError
    |   +-- AccessDeniedError
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |   +-- InsufficientStockError
    |   +-- NegativeResultingStockError
    |
    +-- LedgerError
    |   +-- InvalidTransferError
    |   +-- InvalidAdjustmentReasonError
    |
    +-- CountError
    |   +-- CountNotFoundError
    |   +-- CountAreaNotFoundError
    |   +-- CountItemNotFoundError
    |   +-- CountLockedError
    |   +-- CountNotApprovedError
    |   +-- InvalidCountTransitionError
    |   +-- InvalidCompletionTimeError
    |   +-- CountNotDeletableError
    |   +-- InvalidCountDataError
    |
    +-- ReferenceError_
    |   +-- LocationNotFoundError
    |   +-- ProductNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Access          | ACCESS_DENIED               | Actor lacks level/permission on location
----------------|-----------------------------|-----------------------------------------
Quantity        | INVALID_QUANTITY            | Negative, zero or malformed quantity
                | INSUFFICIENT_STOCK          | Transfer source short or missing
                | NEGATIVE_RESULTING_STOCK    | Adjustment/waste would go below zero
----------------|-----------------------------|-----------------------------------------
Ledger          | INVALID_TRANSFER            | Source and destination are the same
----------------|-----------------------------|-----------------------------------------
Count           | COUNT_NOT_FOUND             | Count id unknown in the organization
                | COUNT_AREA_NOT_FOUND        | Area id unknown or not in this count
                | COUNT_ITEM_NOT_FOUND        | Item id unknown or not in this count
                | COUNT_LOCKED                | Mutation attempted on an APPROVED count
                | COUNT_NOT_APPROVED          | Apply/re-apply on a non-APPROVED count
                | INVALID_COUNT_TRANSITION    | Disallowed lifecycle move
                | INVALID_COMPLETION_TIME     | Completion timestamp in the future
                | COUNT_NOT_DELETABLE         | Delete on a count that left DRAFT
                | INVALID_COUNT_DATA          | Empty names, bad area order
----------------|-----------------------------|-----------------------------------------
Reference       | LOCATION_NOT_FOUND          | Location missing at apply time
                | PRODUCT_NOT_FOUND           | Product unknown to the catalog
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Retries exhausted on lock contention
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a movement row

===============================================================================
"""

from decimal import Decimal


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Access-related exceptions


class AccessError(StockKernelError):
    """Base exception for access-control errors."""

    code: str = "ACCESS_ERROR"


class AccessDeniedError(AccessError):
    """
    Actor may not perform the operation at the location.

    The message is identical whether the location does not exist, belongs to
    another organization, or is simply not assigned to the actor.
    """

    code: str = "ACCESS_DENIED"

    def __init__(
        self,
        actor_id: str,
        location_id: str | None,
        level: str,
        permission: str | None = None,
    ):
        self.actor_id = actor_id
        self.location_id = location_id
        self.level = level
        self.permission = permission
        super().__init__(
            f"Access denied: actor {actor_id} lacks {level} access"
            + (f" ({permission})" if permission else "")
            + (f" to location {location_id}" if location_id else "")
        )


# Quantity-related exceptions


class QuantityError(StockKernelError):
    """Base exception for quantity validation errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """A quantity argument is out of range."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InsufficientStockError(QuantityError):
    """Transfer source holds less than the requested quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        location_id: str,
        requested: Decimal,
        available: Decimal,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock of product {product_id} at {location_id}: "
            f"requested {requested}, available {available}"
        )


class NegativeResultingStockError(QuantityError):
    """An adjustment or waste would leave the ledger row below zero."""

    code: str = "NEGATIVE_RESULTING_STOCK"

    def __init__(
        self,
        product_id: str,
        location_id: str,
        current: Decimal,
        delta: Decimal,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Adjustment of {delta} on product {product_id} at {location_id} "
            f"would leave {current + delta} (current {current})"
        )


# Ledger-related exceptions


class LedgerError(StockKernelError):
    """Base exception for stock ledger errors."""

    code: str = "LEDGER_ERROR"


class InvalidTransferError(LedgerError):
    """Transfer request is structurally invalid."""

    code: str = "INVALID_TRANSFER"

    def __init__(self, product_id: str, location_id: str, reason: str):
        self.product_id = product_id
        self.location_id = location_id
        self.reason = reason
        super().__init__(
            f"Invalid transfer of product {product_id} at {location_id}: {reason}"
        )


class InvalidAdjustmentReasonError(LedgerError):
    """Adjustment or waste reason is not a known AdjustmentReason."""

    code: str = "INVALID_ADJUSTMENT_REASON"

    def __init__(self, reason: object):
        self.reason = reason
        super().__init__(f"Unknown adjustment reason: {reason!r}")


# Count-related exceptions


class CountError(StockKernelError):
    """Base exception for physical count errors."""

    code: str = "COUNT_ERROR"


class CountNotFoundError(CountError):
    """Count with given ID was not found."""

    code: str = "COUNT_NOT_FOUND"

    def __init__(self, count_id: str):
        self.count_id = count_id
        super().__init__(f"Inventory count not found: {count_id}")


class CountAreaNotFoundError(CountError):
    """Area with given ID was not found (or belongs to another count)."""

    code: str = "COUNT_AREA_NOT_FOUND"

    def __init__(self, area_id: str):
        self.area_id = area_id
        super().__init__(f"Count area not found: {area_id}")


class CountItemNotFoundError(CountError):
    """Count item with given ID was not found."""

    code: str = "COUNT_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Count item not found: {item_id}")


class CountLockedError(CountError):
    """Count is APPROVED; it and everything under it are read-only."""

    code: str = "COUNT_LOCKED"

    def __init__(self, count_id: str):
        self.count_id = count_id
        super().__init__(f"Inventory count {count_id} is approved and locked")


class CountNotApprovedError(CountError):
    """Reconciliation requested for a count that is not APPROVED."""

    code: str = "COUNT_NOT_APPROVED"

    def __init__(self, count_id: str, status: str):
        self.count_id = count_id
        self.status = status
        super().__init__(
            f"Inventory count {count_id} is {status}; only APPROVED counts "
            "can be applied"
        )


class InvalidCountTransitionError(CountError):
    """Requested lifecycle move is not allowed."""

    code: str = "INVALID_COUNT_TRANSITION"

    def __init__(self, count_id: str, from_status: str, to_status: str):
        self.count_id = count_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Inventory count {count_id} cannot move from {from_status} "
            f"to {to_status}"
        )


class InvalidCompletionTimeError(CountError):
    """Supplied completion timestamp lies in the future."""

    code: str = "INVALID_COMPLETION_TIME"

    def __init__(self, count_id: str, completed_at: str, now: str):
        self.count_id = count_id
        self.completed_at = completed_at
        self.now = now
        super().__init__(
            f"Completion time {completed_at} for count {count_id} is after "
            f"current time {now}"
        )


class CountNotDeletableError(CountError):
    """Only DRAFT counts may be deleted."""

    code: str = "COUNT_NOT_DELETABLE"

    def __init__(self, count_id: str, status: str):
        self.count_id = count_id
        self.status = status
        super().__init__(
            f"Inventory count {count_id} is {status}; only DRAFT counts "
            "can be deleted"
        )


class InvalidCountDataError(CountError):
    """Count, area or item data failed validation."""

    code: str = "INVALID_COUNT_DATA"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Reference-related exceptions


class ReferenceError_(StockKernelError):
    """Base exception for missing referenced entities."""

    code: str = "REFERENCE_ERROR"


class LocationNotFoundError(ReferenceError_):
    """Location with given ID was not found."""

    code: str = "LOCATION_NOT_FOUND"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Location not found: {location_id}")


class ProductNotFoundError(ReferenceError_):
    """Product with given ID was not found in the catalog."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


# Concurrency-related exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Lock contention persisted beyond the retry budget."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Operation {operation} failed after {attempts} attempts "
            "due to concurrent modification"
        )


# Immutability-related exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    StockMovement rows are append-only; InventoryItem rows are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
