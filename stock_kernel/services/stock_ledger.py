"""
StockLedger -- public facade for running-quantity changes.

Responsibility:
    Level upserts, transfers between locations, signed adjustments and waste
    write-offs, plus gated read access to levels and movement history.  Each
    mutation is one transaction: validate, authorize, lock, check, write the
    quantity change and its movement, commit.

Architecture position:
    Kernel > Services.  Owns transaction boundaries through a
    TransactionRunner.  Delegates row locking and paired writes to
    LedgerWriter and reads to LedgerSelector.

Invariants enforced:
    - Conservation: a transfer moves quantity between two rows and changes
      nothing else.
    - Non-negativity: no operation commits a negative current_quantity.
    - Every quantity change is logged as exactly one StockMovement.
    - Validation and authorization happen before any lock is taken.

Failure modes:
    - InvalidQuantityError, InvalidTransferError,
      InvalidAdjustmentReasonError: rejected before the transaction opens.
    - AccessDeniedError: actor lacks WRITE access or the role permission.
    - ProductNotFoundError: product unknown to the catalog.
    - InsufficientStockError: transfer source missing or short.
    - NegativeResultingStockError: adjustment or waste below zero.
    - ConcurrentModificationError: lock conflicts outlasted the retry budget.

Usage:
    ledger = StockLedger(runner, gate, catalog, clock)
    result = ledger.transfer(product_id, bar_id, cellar_id, Decimal("4"), actor=actor)
    assert result.movement.movement_type == MovementType.TRANSFER
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.db.transaction import TransactionRunner
from stock_kernel.domain.access import PERM_ADJUST, PERM_READ, PERM_TRANSFER, PERM_WRITE
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    AdjustmentResult,
    InventoryLevel,
    MovementRecord,
    ProductLevels,
    TransferResult,
)
from stock_kernel.domain.quantities import ZERO, to_quantity
from stock_kernel.domain.values import (
    AccessLevel,
    Actor,
    AdjustmentReason,
    MovementType,
)
from stock_kernel.domain.variance import DEFAULT_LOW_STOCK_FALLBACK
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidAdjustmentReasonError,
    InvalidQuantityError,
    InvalidTransferError,
    NegativeResultingStockError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.ledger_selector import DEFAULT_HISTORY_LIMIT, LedgerSelector
from stock_kernel.services.access_gate import AccessGate
from stock_kernel.services.catalog import ProductCatalog, require_product
from stock_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.stock_ledger")


def _non_negative(value: object, field: str) -> Decimal:
    quantity = to_quantity(value, field)
    if quantity < ZERO:
        raise InvalidQuantityError(field, value, "must be zero or more")
    return quantity


def _positive(value: object, field: str) -> Decimal:
    quantity = to_quantity(value, field)
    if quantity <= ZERO:
        raise InvalidQuantityError(field, value, "must be greater than zero")
    return quantity


def _reason(value: object) -> AdjustmentReason:
    try:
        return AdjustmentReason(value)
    except ValueError:
        logger.warning(
            "adjustment_reason_rejected",
            extra={"code": InvalidAdjustmentReasonError.code, "reason": str(value)},
        )
        raise InvalidAdjustmentReasonError(value) from None


class StockLedger:
    """
    Transactional stock ledger.

    Contract:
        Every public mutation commits exactly one transaction or raises with
        the ledger unchanged.

    Guarantees:
        - Transfers lock both rows in ascending location-id order.
        - A transfer destination created on the fly inherits the source's
          minimum and maximum quantities.
        - Movements carry |delta|; direction is in movement_type.

    Non-goals:
        - Does not decide when to transfer or adjust (caller policy).
    """

    def __init__(
        self,
        runner: TransactionRunner,
        gate: AccessGate,
        catalog: ProductCatalog,
        clock: Clock,
        *,
        low_stock_fallback: Decimal = DEFAULT_LOW_STOCK_FALLBACK,
    ):
        self._runner = runner
        self._gate = gate
        self._catalog = catalog
        self._clock = clock
        self._fallback = low_stock_fallback

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_level(
        self,
        product_id: UUID,
        location_id: UUID,
        *,
        actor: Actor,
        quantity: object | None = None,
        minimum_quantity: object | None = None,
        maximum_quantity: object | None = None,
    ) -> InventoryLevel:
        """
        Idempotent upsert of a ledger row.

        A missing row is created with unspecified fields at zero (maximum
        unset).  A change of current_quantity is logged as an ADJUSTMENT_IN
        or ADJUSTMENT_OUT movement with reason CORRECTION.
        """
        new_qty = _non_negative(quantity, "quantity") if quantity is not None else None
        new_min = (
            _non_negative(minimum_quantity, "minimum_quantity")
            if minimum_quantity is not None
            else None
        )
        new_max = (
            _non_negative(maximum_quantity, "maximum_quantity")
            if maximum_quantity is not None
            else None
        )
        with LogContext.bind(
            actor_id=actor.id, organization_id=actor.organization_id, location_id=location_id
        ):
            self._gate.require(actor, location_id, AccessLevel.WRITE, PERM_WRITE)
            require_product(self._catalog, actor.organization_id, product_id)

            def work(session: Session) -> tuple[InventoryLevel, MovementRecord | None, Decimal]:
                writer = LedgerWriter(session, actor.id)
                item = writer.lock_or_create_item(actor.organization_id, product_id, location_id)
                previous = item.current_quantity
                if new_min is not None:
                    item.minimum_quantity = new_min
                if new_max is not None:
                    item.maximum_quantity = new_max
                item.updated_by_id = actor.id
                movement = None
                if new_qty is not None:
                    movement = writer.set_quantity(
                        item,
                        new_qty,
                        movement_type=(
                            MovementType.ADJUSTMENT_IN
                            if new_qty > previous
                            else MovementType.ADJUSTMENT_OUT
                        ),
                        completed_at=self._clock.now(),
                        reason=AdjustmentReason.CORRECTION,
                        notes="Level set",
                    )
                session.flush()
                return (
                    item.to_dto(self._fallback),
                    movement.to_dto() if movement is not None else None,
                    previous,
                )

            level, movement, previous = self._runner.run("set_level", work)
            logger.info(
                "stock_level_set",
                extra={
                    "product_id": str(product_id),
                    "previous_quantity": previous,
                    "current_quantity": level.current_quantity,
                    "minimum_quantity": level.minimum_quantity,
                    "maximum_quantity": level.maximum_quantity,
                    "movement_id": str(movement.id) if movement else None,
                },
            )
            return level

    def transfer(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: object,
        *,
        actor: Actor,
        notes: str | None = None,
    ) -> TransferResult:
        """
        Move quantity from one location to another in one transaction.

        Raises:
            InvalidQuantityError: quantity <= 0.
            InvalidTransferError: from and to are the same location.
            AccessDeniedError: no WRITE access on either location.
            InsufficientStockError: source row missing or short.
        """
        amount = _positive(quantity, "quantity")
        if from_location_id == to_location_id:
            logger.warning(
                "transfer_rejected",
                extra={"code": InvalidTransferError.code, "product_id": str(product_id)},
            )
            raise InvalidTransferError(
                str(product_id), str(from_location_id), "source and destination are the same"
            )

        with LogContext.bind(actor_id=actor.id, organization_id=actor.organization_id):
            self._gate.require(actor, from_location_id, AccessLevel.WRITE, PERM_TRANSFER)
            self._gate.require(actor, to_location_id, AccessLevel.WRITE, PERM_TRANSFER)
            require_product(self._catalog, actor.organization_id, product_id)

            def work(session: Session) -> TransferResult:
                writer = LedgerWriter(session, actor.id)
                org = actor.organization_id
                locked = writer.lock_items(org, product_id, [from_location_id, to_location_id])
                source = locked[from_location_id]
                available = source.current_quantity if source is not None else ZERO
                if source is None or available < amount:
                    logger.warning(
                        "transfer_rejected",
                        extra={
                            "code": InsufficientStockError.code,
                            "product_id": str(product_id),
                            "from_location_id": str(from_location_id),
                            "requested": amount,
                            "available": available,
                        },
                    )
                    raise InsufficientStockError(
                        str(product_id), str(from_location_id), amount, available
                    )
                destination = locked[to_location_id]
                if destination is None:
                    destination = writer.lock_or_create_item(
                        org,
                        product_id,
                        to_location_id,
                        minimum_quantity=source.minimum_quantity,
                        maximum_quantity=source.maximum_quantity,
                    )
                movement = writer.move(
                    source,
                    destination,
                    amount,
                    completed_at=self._clock.now(),
                    notes=notes,
                )
                return TransferResult(
                    movement=movement.to_dto(),
                    source=source.to_dto(self._fallback),
                    destination=destination.to_dto(self._fallback),
                )

            result = self._runner.run("transfer", work)
            logger.info(
                "stock_transferred",
                extra={
                    "product_id": str(product_id),
                    "from_location_id": str(from_location_id),
                    "to_location_id": str(to_location_id),
                    "quantity": amount,
                    "source_quantity": result.source.current_quantity,
                    "destination_quantity": result.destination.current_quantity,
                    "movement_id": str(result.movement.id),
                },
            )
            return result

    def adjust(
        self,
        product_id: UUID,
        location_id: UUID,
        delta: object,
        reason: AdjustmentReason,
        *,
        actor: Actor,
        notes: str | None = None,
    ) -> AdjustmentResult:
        """
        Apply a signed correction to one ledger row.

        Raises:
            InvalidQuantityError: delta == 0.
            InvalidAdjustmentReasonError: reason is not an AdjustmentReason.
            NegativeResultingStockError: current + delta < 0.
        """
        amount = to_quantity(delta, "delta")
        if amount == ZERO:
            raise InvalidQuantityError("delta", delta, "must not be zero")
        movement_type = MovementType.ADJUSTMENT_IN if amount > ZERO else MovementType.ADJUSTMENT_OUT
        return self._write_off_or_adjust(
            "adjust",
            product_id,
            location_id,
            amount,
            _reason(reason),
            movement_type,
            actor=actor,
            notes=notes,
            permission=PERM_ADJUST,
        )

    def record_waste(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: object,
        *,
        actor: Actor,
        reason: AdjustmentReason = AdjustmentReason.DAMAGE,
        notes: str | None = None,
    ) -> AdjustmentResult:
        """Write off spoiled, broken or lost stock as a WASTE movement."""
        amount = _positive(quantity, "quantity")
        return self._write_off_or_adjust(
            "record_waste",
            product_id,
            location_id,
            -amount,
            _reason(reason),
            MovementType.WASTE,
            actor=actor,
            notes=notes,
            permission=PERM_ADJUST,
        )

    def _write_off_or_adjust(
        self,
        operation: str,
        product_id: UUID,
        location_id: UUID,
        delta: Decimal,
        reason: AdjustmentReason,
        movement_type: MovementType,
        *,
        actor: Actor,
        notes: str | None,
        permission: str,
    ) -> AdjustmentResult:
        with LogContext.bind(
            actor_id=actor.id, organization_id=actor.organization_id, location_id=location_id
        ):
            self._gate.require(actor, location_id, AccessLevel.WRITE, permission)
            require_product(self._catalog, actor.organization_id, product_id)

            def work(session: Session) -> AdjustmentResult:
                writer = LedgerWriter(session, actor.id)
                org = actor.organization_id
                item = writer.lock_item(org, product_id, location_id)
                current = item.current_quantity if item is not None else ZERO
                if current + delta < ZERO:
                    logger.warning(
                        f"{operation}_rejected",
                        extra={
                            "code": NegativeResultingStockError.code,
                            "product_id": str(product_id),
                            "current": current,
                            "delta": delta,
                        },
                    )
                    raise NegativeResultingStockError(
                        str(product_id), str(location_id), current, delta
                    )
                if item is None:
                    item = writer.lock_or_create_item(org, product_id, location_id)
                movement = writer.set_quantity(
                    item,
                    item.current_quantity + delta,
                    movement_type=movement_type,
                    completed_at=self._clock.now(),
                    reason=reason,
                    notes=notes,
                )
                return AdjustmentResult(
                    level=item.to_dto(self._fallback),
                    movement=movement.to_dto(),
                )

            result = self._runner.run(operation, work)
            logger.info(
                "stock_adjusted",
                extra={
                    "operation": operation,
                    "product_id": str(product_id),
                    "movement_type": movement_type.value,
                    "reason": reason.value,
                    "delta": delta,
                    "current_quantity": result.level.current_quantity,
                    "movement_id": str(result.movement.id),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_level(
        self, product_id: UUID, location_id: UUID, *, actor: Actor
    ) -> InventoryLevel | None:
        self._gate.require(actor, location_id, AccessLevel.READ, PERM_READ)
        return self._runner.read(
            lambda s: LedgerSelector(s, self._fallback).get_level(
                actor.organization_id, product_id, location_id
            )
        )

    def levels_for_location(
        self, location_id: UUID, *, actor: Actor, low_stock_only: bool = False
    ) -> tuple[InventoryLevel, ...]:
        self._gate.require(actor, location_id, AccessLevel.READ, PERM_READ)
        return self._runner.read(
            lambda s: LedgerSelector(s, self._fallback).levels_for_location(
                actor.organization_id, location_id, low_stock_only=low_stock_only
            )
        )

    def levels_for_product(self, product_id: UUID, *, actor: Actor) -> ProductLevels:
        """Only locations the actor can read contribute to the total."""
        self._gate.require_permission(actor, PERM_READ)
        readable = self._gate.accessible_location_ids(actor, AccessLevel.READ)
        return self._runner.read(
            lambda s: LedgerSelector(s, self._fallback).levels_for_product(
                actor.organization_id, product_id, readable
            )
        )

    def low_stock(
        self, *, actor: Actor, location_id: UUID | None = None
    ) -> tuple[InventoryLevel, ...]:
        location_ids = self._readable_scope(actor, location_id)
        return self._runner.read(
            lambda s: LedgerSelector(s, self._fallback).low_stock(
                actor.organization_id, location_ids
            )
        )

    def movement_history(
        self,
        *,
        actor: Actor,
        location_id: UUID | None = None,
        product_id: UUID | None = None,
        movement_type: MovementType | None = None,
        count_id: UUID | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> tuple[MovementRecord, ...]:
        """Movements at locations the actor can read, newest first."""
        location_ids = self._readable_scope(actor, location_id)
        return self._runner.read(
            lambda s: LedgerSelector(s, self._fallback).movements(
                actor.organization_id,
                location_ids,
                product_id=product_id,
                movement_type=movement_type,
                count_id=count_id,
                limit=limit,
                offset=offset,
            )
        )

    def _readable_scope(self, actor: Actor, location_id: UUID | None) -> frozenset[UUID]:
        if location_id is not None:
            self._gate.require(actor, location_id, AccessLevel.READ, PERM_READ)
            return frozenset({location_id})
        self._gate.require_permission(actor, PERM_READ)
        return self._gate.accessible_location_ids(actor, AccessLevel.READ)
